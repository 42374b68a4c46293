import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from rate_engine.core.errors import (
    CrossCompanyBulkError, OverlappingSlabError, StaleVersionError, ValidationError,
)
from rate_engine.models.rate_card import RateCard
from rate_engine.schemas.rate_card import RateCardCreate, RateCardUpdate
from rate_engine.services.audit_service import AuditService
from rate_engine.services.rate_card_lifecycle_service import RateCardLifecycleService
from rate_engine.services.rate_card_service import RateCardService
from tests.factories import COMPANY_ID, OTHER_COMPANY_ID, make_rate_card


USER_ID = uuid.UUID("44444444-4444-4444-4444-444444444444")
START = datetime.now(timezone.utc) - timedelta(hours=1)


def create_payload(**overrides):
    values = dict(
        company_id=COMPANY_ID,
        name="Surface Lite",
        base_rates=[{
            "carrier": "Delhivery", "service_type": "surface",
            "base_price": "50", "min_weight": "0", "max_weight": "5",
        }],
        zone_rules=[{"zone": "C", "additional_price": "20"}],
        effective_start=START,
    )
    values.update(overrides)
    return RateCardCreate(**values)


async def history(db_session, rate_card_id):
    entries, _ = await AuditService(db_session).get_entity_history(AuditService.RATE_CARD, rate_card_id)
    return sorted(entry.action for entry in entries)


async def stored(db_session, *cards):
    db_session.add_all(cards)
    await db_session.commit()
    return cards


class TestCreateAndUpdate:
    async def test_create_starts_as_draft_version_one(self, db_session):
        card = await RateCardService(db_session).create_rate_card(create_payload(), created_by=USER_ID)

        assert card.status == "draft"
        assert card.version == 1
        assert card.zone_rules[0]["zone"] == "zoneC"
        assert await history(db_session, card.id) == ["CREATE"]

    async def test_overlapping_weight_rules_are_rejected(self, db_session):
        payload = create_payload(weight_rules=[
            {"min_weight": "0", "max_weight": "1", "price_per_kg": "10"},
            {"min_weight": "0.5", "max_weight": "2", "price_per_kg": "8"},
        ])
        with pytest.raises(OverlappingSlabError):
            await RateCardService(db_session).create_rate_card(payload)

        _, total = await RateCardService(db_session).list_rate_cards(company_id=COMPANY_ID)
        assert total == 0

    async def test_update_bumps_version_and_rejects_stale_writers(self, db_session):
        service = RateCardService(db_session)
        card = await service.create_rate_card(create_payload())

        updated = await service.update_rate_card(
            card.id, RateCardUpdate(expected_version=1, minimum_fare=Decimal("40")), user_id=USER_ID,
        )
        assert updated.version == 2
        assert updated.minimum_fare == Decimal("40")

        with pytest.raises(StaleVersionError) as exc_info:
            await service.update_rate_card(card.id, RateCardUpdate(expected_version=1, name="Late write"))
        assert exc_info.value.details["actual_version"] == 2
        assert await history(db_session, card.id) == ["CREATE", "UPDATE"]

    async def test_update_cannot_introduce_a_second_scheme(self, db_session):
        service = RateCardService(db_session)
        card = await service.create_rate_card(create_payload())

        with pytest.raises(ValidationError):
            await service.update_rate_card(
                card.id, RateCardUpdate(expected_version=1, zone_multipliers={"zoneA": "1.1"}),
            )

    async def test_versioned_update_with_an_old_read_fails(self, db_session):
        (card,) = await stored(db_session, make_rate_card(version=3))

        with pytest.raises(StaleVersionError) as exc_info:
            await RateCardService(db_session).versioned_update(card, 2, {"name": "Conflicting"})

        assert exc_info.value.details == {
            "rate_card_id": str(card.id),
            "expected_version": 2,
            "actual_version": 3,
        }

    def test_validation_collects_every_error(self):
        result = RateCardService(None).validate_rate_card({
            "base_rates": [],
            "weight_rules": [
                {"min_weight": "0", "max_weight": "2", "price_per_kg": "10"},
                {"min_weight": "1", "max_weight": "3", "price_per_kg": "8"},
            ],
            "zone_rules": [{"zone": "zoneA", "additional_price": "5"}],
            "zone_multipliers": {"zoneA": "1.1"},
        })

        assert result.valid is False
        assert [e["type"] for e in result.errors] == [
            "OverlappingSlabError", "AmbiguousPricingSchemeError", "ValidationError",
        ]


class TestActivation:
    async def test_activate_is_idempotent(self, db_session):
        card = await RateCardService(db_session).create_rate_card(create_payload())
        lifecycle = RateCardLifecycleService(db_session)

        activated = await lifecycle.activate(card.id, USER_ID)
        assert activated.status == "active"
        assert activated.version == 2

        again = await lifecycle.activate(card.id, USER_ID)
        assert again.version == 2
        assert await history(db_session, card.id) == ["ACTIVATE", "CREATE"]

    async def test_activation_requires_an_effective_start(self, db_session):
        card = await RateCardService(db_session).create_rate_card(create_payload(effective_start=None))

        with pytest.raises(ValidationError):
            await RateCardLifecycleService(db_session).activate(card.id)

    async def test_activation_with_stale_version(self, db_session):
        card = await RateCardService(db_session).create_rate_card(create_payload())
        lifecycle = RateCardLifecycleService(db_session)
        await lifecycle.deactivate(card.id)

        with pytest.raises(StaleVersionError):
            await lifecycle.activate(card.id, expected_version=1)

    async def test_deactivate(self, db_session):
        (card,) = await stored(db_session, make_rate_card())

        result = await RateCardLifecycleService(db_session).deactivate(card.id, USER_ID)
        assert result.status == "inactive"
        assert result.version == 2


class TestClone:
    async def test_clone_is_an_independent_draft(self, db_session):
        (source,) = await stored(db_session, make_rate_card(
            version=4,
            zone_rules=[{"zone": "zoneC", "additional_price": "20"}],
            effective_end=datetime.now(timezone.utc) + timedelta(days=30),
        ))

        clone = await RateCardLifecycleService(db_session).clone(source.id, user_id=USER_ID)

        assert clone.id != source.id
        assert clone.name == "Standard Surface (Copy)"
        assert clone.status == "draft"
        assert clone.version == 1
        assert clone.effective_start is None
        assert clone.effective_end is None
        assert clone.zone_rules == source.zone_rules
        assert clone.zone_rules is not source.zone_rules
        assert await history(db_session, clone.id) == ["CLONE"]

    async def test_clone_with_name(self, db_session):
        (source,) = await stored(db_session, make_rate_card())
        clone = await RateCardLifecycleService(db_session).clone(source.id, name="Festive Surface")
        assert clone.name == "Festive Surface"


class TestBulkOperations:
    async def test_bulk_adjust_price(self, db_session):
        additive, banded = await stored(
            db_session,
            make_rate_card(zone_rules=[{"zone": "zoneC", "additional_price": "22.50"}]),
            make_rate_card(
                service_id=uuid.uuid4(),
                base_rates=[],
                zone_slabs=[{
                    "zone": "zoneA",
                    "slabs": [{"min_kg": "0", "max_kg": "0.5", "charge": "31"}],
                    "additional_per_kg": "20",
                }],
            ),
        )

        result = await RateCardLifecycleService(db_session).bulk_adjust_price(
            COMPANY_ID, [additive.id, banded.id], "increase", Decimal("10"), USER_ID,
        )

        assert result.succeeded == [additive.id, banded.id]
        assert result.failed == []
        assert additive.base_rates[0]["base_price"] == "55.00"
        assert additive.zone_rules[0]["additional_price"] == "24.75"
        assert additive.version == 2
        assert banded.zone_slabs[0]["slabs"][0]["charge"] == "34.10"
        assert banded.zone_slabs[0]["additional_per_kg"] == "22.00"
        assert await history(db_session, additive.id) == ["BULK_ADJUST_PRICE"]

    async def test_bulk_adjust_carries_on_past_a_concurrent_edit(self, db_session, session_factory):
        first, second = await stored(db_session, make_rate_card(), make_rate_card())

        async with session_factory() as other:
            elsewhere = await other.get(RateCard, second.id)
            await RateCardService(other).versioned_update(elsewhere, 1, {"minimum_fare": Decimal("45")})
            await other.commit()

        result = await RateCardLifecycleService(db_session).bulk_adjust_price(
            COMPANY_ID, [first.id, second.id], "increase", Decimal("10"), USER_ID,
        )

        assert result.succeeded == [first.id]
        assert [f.rate_card_id for f in result.failed] == [second.id]
        assert result.failed[0].details["actual_version"] == 2
        assert first.base_rates[0]["base_price"] == "55.00"
        assert await history(db_session, first.id) == ["BULK_ADJUST_PRICE"]
        assert await history(db_session, second.id) == []

        await db_session.refresh(second)
        assert second.version == 2
        assert second.base_rates[0]["base_price"] == "50"

    async def test_bulk_decrease_rounds_half_up(self, db_session):
        (card,) = await stored(db_session, make_rate_card(zone_rules=[{"zone": "zoneC", "additional_price": "22.50"}]))

        await RateCardLifecycleService(db_session).bulk_adjust_price(
            COMPANY_ID, [card.id], "decrease", Decimal("15"),
        )
        assert card.zone_rules[0]["additional_price"] == "19.13"

    async def test_bulk_rejects_cards_of_another_company(self, db_session):
        own, foreign = await stored(db_session, make_rate_card(), make_rate_card(company_id=OTHER_COMPANY_ID))

        with pytest.raises(CrossCompanyBulkError) as exc_info:
            await RateCardLifecycleService(db_session).bulk_adjust_price(
                COMPANY_ID, [own.id, foreign.id], "increase", Decimal("10"),
            )

        assert exc_info.value.details["foreign_ids"] == [str(foreign.id)]
        await db_session.refresh(own)
        assert own.version == 1
        assert own.base_rates[0]["base_price"] == "50"

    async def test_bulk_percentage_bounds(self, db_session):
        (card,) = await stored(db_session, make_rate_card())
        with pytest.raises(ValidationError):
            await RateCardLifecycleService(db_session).bulk_adjust_price(
                COMPANY_ID, [card.id], "increase", Decimal("150"),
            )

    async def test_bulk_update_status_reports_each_card(self, db_session):
        ready, already, undated = await stored(
            db_session,
            make_rate_card(status="draft"),
            make_rate_card(status="active"),
            make_rate_card(status="draft", effective_start=None),
        )

        result = await RateCardLifecycleService(db_session).bulk_update_status(
            COMPANY_ID, [ready.id, already.id, undated.id], "activate", USER_ID,
        )

        assert result.succeeded == [ready.id]
        assert result.unchanged == [already.id]
        assert [f.rate_card_id for f in result.failed] == [undated.id]
        assert ready.status == "active"
        assert undated.status == "draft"

        reloaded = await db_session.get(RateCard, already.id)
        assert reloaded.version == 1
