from datetime import datetime, timezone
from decimal import Decimal

import pytest

from rate_engine.core.errors import MultipleSchemesWarning
from rate_engine.models.courier_service import PaymentMode
from rate_engine.schemas.quote import ShipmentRequest
from rate_engine.services.quote_collector import QuoteCollector, check_eligibility
from tests.factories import COMPANY_ID, make_courier_service, make_rate_card


NOW = datetime.now(timezone.utc)


def shipment(**overrides):
    values = dict(company_id=COMPANY_ID, zone="C", weight_kg=Decimal("1.2"))
    values.update(overrides)
    return ShipmentRequest(**values)


class TestEligibility:
    def test_eligible(self):
        assert check_eligibility(make_courier_service(), shipment(), Decimal("1.2")) is None

    def test_inactive_service(self):
        reason = check_eligibility(make_courier_service(status="inactive"), shipment(), Decimal("1.2"))
        assert reason == "Service is inactive"

    def test_zone_support(self):
        service = make_courier_service(zone_support=["zoneA", "zoneB"])
        assert check_eligibility(service, shipment(), Decimal("1")) == "Zone zoneC not supported"
        assert check_eligibility(service, shipment(zone="zone_b"), Decimal("1")) is None

    def test_weight_limits(self):
        service = make_courier_service(constraints={"min_weight_kg": "0.5", "max_weight_kg": "10"})
        assert "below" in check_eligibility(service, shipment(), Decimal("0.2"))
        assert "above" in check_eligibility(service, shipment(), Decimal("12"))
        assert check_eligibility(service, shipment(), Decimal("10")) is None

    def test_payment_mode(self):
        service = make_courier_service(constraints={"payment_modes": ["prepaid"]})
        reason = check_eligibility(service, shipment(payment_mode=PaymentMode.COD), Decimal("1"))
        assert reason == "Payment mode cod not supported"

    def test_order_value_limits(self):
        service = make_courier_service(constraints={"max_cod_value": "1000", "max_prepaid_value": "50000"})
        cod = shipment(payment_mode=PaymentMode.COD, order_value=Decimal("2000"))
        assert "COD limit" in check_eligibility(service, cod, Decimal("1"))

        prepaid = shipment(order_value=Decimal("2000"))
        assert check_eligibility(service, prepaid, Decimal("1")) is None
        assert "prepaid limit" in check_eligibility(service, shipment(order_value=Decimal("60000")), Decimal("1"))


class TestCollect:
    async def seed(self, db_session):
        self.delhivery = make_courier_service()
        self.bluedart = make_courier_service(
            provider="BlueDart", service_code="BD-AIR", service_type="air",
            display_name="BlueDart Air", zone_support=["zoneA"],
        )
        self.shadowfax = make_courier_service(
            provider="Shadowfax", service_code="SFX-SURFACE", display_name="Shadowfax Surface",
        )
        self.returns = make_courier_service(
            provider="Delhivery", service_code="DEL-RVP", display_name="Delhivery Reverse", flow_type="reverse",
        )
        db_session.add_all([self.delhivery, self.bluedart, self.shadowfax, self.returns])
        db_session.add(make_rate_card(
            weight_rules=[{"min_weight": "1", "max_weight": "2", "price_per_kg": "10"}],
            zone_multipliers={"zoneC": "1.2"},
            minimum_fare=Decimal("40"),
        ))
        await db_session.commit()

    async def test_every_forward_service_is_quoted(self, db_session):
        await self.seed(db_session)

        quotes = await QuoteCollector(db_session).collect(shipment(), NOW)
        by_name = {q.service_name: q for q in quotes}

        assert set(by_name) == {"Delhivery Surface", "BlueDart Air", "Shadowfax Surface"}

        priced = by_name["Delhivery Surface"]
        assert priced.eligible is True
        assert priced.total == Decimal("84.96")
        assert priced.rate_card_version == 1
        assert priced.breakdown.zone_charge == Decimal("10.00")
        assert priced.eta_days.max == 4

        assert by_name["BlueDart Air"].eligible is False
        assert by_name["BlueDart Air"].ineligible_reason == "Zone zoneC not supported"

        assert by_name["Shadowfax Surface"].eligible is False
        assert by_name["Shadowfax Surface"].ineligible_reason.startswith("No active rate card")

    async def test_reverse_shipments_only_see_reverse_services(self, db_session):
        await self.seed(db_session)

        quotes = await QuoteCollector(db_session).collect(shipment(flow_type="reverse"), NOW)

        assert [q.service_name for q in quotes] == ["Delhivery Reverse"]
        # The only card is a forward card
        assert quotes[0].eligible is False

    async def test_ambiguous_card_makes_the_service_ineligible(self, db_session):
        db_session.add(make_courier_service())
        db_session.add(make_rate_card(
            zone_rules=[{"zone": "zoneC", "additional_price": "20"}],
            zone_multipliers={"zoneC": "1.2"},
        ))
        await db_session.commit()

        with pytest.warns(MultipleSchemesWarning):
            quotes = await QuoteCollector(db_session).collect(shipment(), NOW)

        assert quotes[0].eligible is False
        assert "multiple pricing schemes" in quotes[0].ineligible_reason
        assert quotes[0].total is None
