"""
Courier Quote Collector.

Fans a shipment out to every courier service for its flow type. Services
that cannot carry the shipment are returned with eligible=False and the
reason; the rest are priced against one rate card snapshot.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.core.errors import NoActiveRateCardError, ValidationError
from rate_engine.core.zones import ALL_ZONES
from rate_engine.models.courier_service import CourierService, FlowType, PaymentMode, ServiceStatus
from rate_engine.schemas.quote import EtaDays, Quote, ShipmentRequest
from rate_engine.services.charge_aggregator import aggregate
from rate_engine.services.pricing_schemes import PricingInput, chargeable_weight, evaluate, to_decimal
from rate_engine.services.rate_card_resolver import RateCardResolver, RateCardSnapshot

logger = logging.getLogger(__name__)


def shipment_dimensions(shipment: ShipmentRequest):
    if shipment.dimensions is None:
        return None
    d = shipment.dimensions
    return (d.length_cm, d.width_cm, d.height_cm)


def check_eligibility(service: CourierService, shipment: ShipmentRequest, weight: Decimal) -> Optional[str]:
    """Return why a service cannot carry the shipment, or None when it can."""
    if service.status != ServiceStatus.ACTIVE.value:
        return "Service is inactive"

    zones = service.zone_support or []
    if ALL_ZONES not in zones and shipment.zone not in zones:
        return f"Zone {shipment.zone} not supported"

    constraints = service.constraints or {}
    min_weight = constraints.get("min_weight_kg")
    if min_weight is not None and weight < to_decimal(min_weight):
        return f"Weight {weight} kg below service minimum {min_weight} kg"
    max_weight = constraints.get("max_weight_kg")
    if max_weight is not None and weight > to_decimal(max_weight):
        return f"Weight {weight} kg above service maximum {max_weight} kg"

    payment_mode = shipment.payment_mode.value
    payment_modes = constraints.get("payment_modes") or [m.value for m in PaymentMode]
    if payment_mode not in payment_modes:
        return f"Payment mode {payment_mode} not supported"

    if shipment.payment_mode == PaymentMode.COD:
        limit = constraints.get("max_cod_value")
        if limit is not None and shipment.order_value > to_decimal(limit):
            return f"Order value {shipment.order_value} exceeds COD limit {limit}"
    else:
        limit = constraints.get("max_prepaid_value")
        if limit is not None and shipment.order_value > to_decimal(limit):
            return f"Order value {shipment.order_value} exceeds prepaid limit {limit}"
    return None


def _eta(service: CourierService) -> EtaDays:
    sla = service.sla or {}
    low = int(sla.get("edd_min_days", 1))
    return EtaDays(min=low, max=int(sla.get("edd_max_days", low)))


def price_service(
    service: CourierService,
    shipment: ShipmentRequest,
    snapshot: RateCardSnapshot,
) -> Quote:
    """Quote one courier service. Never raises for pricing misses."""
    weight = chargeable_weight(shipment.weight_kg, shipment_dimensions(shipment))
    quote = Quote(
        service_id=service.id,
        provider=service.provider,
        service_type=service.service_type,
        service_name=service.display_name,
        zone=shipment.zone,
        chargeable_weight=weight,
        eta_days=_eta(service),
    )

    reason = check_eligibility(service, shipment, weight)
    if reason:
        quote.eligible = False
        quote.ineligible_reason = reason
        return quote

    try:
        card = snapshot.resolve(service.id, service.provider, service.service_type)
        charges = evaluate(
            card,
            PricingInput(
                carrier=service.provider,
                service_type=service.service_type,
                zone=shipment.zone,
                actual_weight=shipment.weight_kg,
                dimensions=shipment_dimensions(shipment),
            ),
        )
    except (NoActiveRateCardError, ValidationError) as e:
        logger.info("Service %s (%s) not priced: %s", service.display_name, service.id, e.message)
        quote.eligible = False
        quote.ineligible_reason = e.message
        return quote

    breakdown = aggregate(
        charges,
        card,
        payment_mode=shipment.payment_mode,
        order_value=shipment.order_value,
        origin_state=shipment.origin_state,
        destination_state=shipment.destination_state,
    )
    quote.rate_card_id = card.id
    quote.rate_card_version = card.version
    quote.chargeable_weight = charges.chargeable_weight
    quote.total = breakdown.total
    quote.breakdown = breakdown.to_schema()
    quote.estimated = charges.flags.estimated
    return quote


class QuoteCollector:
    """Collects quotes from every courier service for a shipment."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.resolver = RateCardResolver(db)

    async def list_services(self, flow_type: str) -> List[CourierService]:
        stmt = (
            select(CourierService)
            .where(CourierService.flow_type.in_([flow_type, FlowType.BOTH.value]))
            .order_by(CourierService.provider, CourierService.display_name)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def collect(self, shipment: ShipmentRequest, effective_at: datetime) -> List[Quote]:
        flow_type = shipment.flow_type.value
        services = await self.list_services(flow_type)
        snapshot = await self.resolver.load(shipment.company_id, effective_at, flow_type)

        quotes = [price_service(service, shipment, snapshot) for service in services]
        logger.info(
            "Collected %d quotes (%d eligible) for zone %s, %s kg",
            len(quotes), sum(1 for q in quotes if q.eligible), shipment.zone, shipment.weight_kg,
        )
        return quotes
