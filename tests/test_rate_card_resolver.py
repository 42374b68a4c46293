import uuid
from datetime import datetime, timedelta, timezone

import pytest

from rate_engine.core.errors import NoActiveRateCardError
from rate_engine.services.rate_card_resolver import RateCardResolver, is_effective, resolve_rate_card
from tests.factories import COMPANY_ID, OTHER_COMPANY_ID, make_rate_card


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
SERVICE_ID = uuid.uuid4()


def resolve(cards, company_id=COMPANY_ID, service_id=SERVICE_ID, carrier="Delhivery", at=NOW):
    return resolve_rate_card(cards, company_id, service_id, carrier, "surface", at)


def card(**overrides):
    overrides.setdefault("effective_start", NOW - timedelta(days=30))
    return make_rate_card(**overrides)


class TestEffectiveWindow:
    def test_start_is_inclusive_end_is_exclusive(self):
        assert is_effective(card(effective_start=NOW), NOW)
        assert not is_effective(card(effective_end=NOW), NOW)
        assert is_effective(card(effective_end=NOW + timedelta(seconds=1)), NOW)

    def test_future_and_undated_cards_are_not_effective(self):
        assert not is_effective(card(effective_start=NOW + timedelta(days=1)), NOW)
        assert not is_effective(card(effective_start=None), NOW)

    def test_naive_datetimes_are_read_as_utc(self):
        assert is_effective(card(effective_start=datetime(2024, 6, 1, 12, 0)), NOW)


class TestResolution:
    def test_service_scoped_card_beats_company_wide(self):
        wide = card(version=7)
        scoped = card(service_id=SERVICE_ID, base_rates=[])
        assert resolve([wide, scoped]) is scoped

    def test_service_scoped_card_for_another_service_is_ignored(self):
        wide = card()
        assert resolve([wide, card(service_id=uuid.uuid4())]) is wide

    def test_company_card_beats_global_card(self):
        own = card(version=1)
        shared = card(company_id=None, version=5)
        assert resolve([shared, own]) is own

    def test_global_card_applies_when_company_has_none(self):
        shared = card(company_id=None)
        assert resolve([shared]) is shared

    def test_highest_version_then_latest_start(self):
        older = card(version=2, effective_start=NOW - timedelta(days=10))
        newer = card(version=2, effective_start=NOW - timedelta(days=1))
        lower = card(version=1, effective_start=NOW - timedelta(hours=1))
        assert resolve([older, lower, newer]) is newer

    def test_inactive_and_foreign_cards_are_skipped(self):
        with pytest.raises(NoActiveRateCardError) as exc_info:
            resolve([card(status="draft"), card(status="inactive"), card(company_id=OTHER_COMPANY_ID)])

        details = exc_info.value.details
        assert details["carrier"] == "Delhivery"
        assert details["company_id"] == str(COMPANY_ID)
        assert details["effective_at"] == NOW.isoformat()

    def test_company_wide_card_must_cover_the_carrier(self):
        with pytest.raises(NoActiveRateCardError):
            resolve([card()], carrier="BlueDart")


class TestResolverLoad:
    async def test_snapshot_holds_effective_active_cards(self, db_session):
        live = card()
        db_session.add_all([
            live,
            card(status="draft"),
            card(effective_start=NOW + timedelta(days=1)),
            card(company_id=OTHER_COMPANY_ID),
            card(shipment_type="reverse"),
        ])
        await db_session.commit()

        snapshot = await RateCardResolver(db_session).load(COMPANY_ID, NOW, "forward")

        assert len(snapshot) == 1
        assert snapshot.resolve(SERVICE_ID, "Delhivery", "surface").id == live.id

    async def test_resolve_from_database(self, db_session):
        shared = card(company_id=None)
        db_session.add(shared)
        await db_session.commit()

        resolved = await RateCardResolver(db_session).resolve(COMPANY_ID, None, "delhivery", "SURFACE", NOW)
        assert resolved.id == shared.id
