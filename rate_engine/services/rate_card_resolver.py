"""
Rate Card Resolver.

Selects the single active rate card that prices a courier service at an
instant. Cards are loaded once per request into a RateCardSnapshot so every
service in one quoting call is priced against the same data.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.core.errors import NoActiveRateCardError
from rate_engine.models.rate_card import RateCard, RateCardStatus
from rate_engine.services.pricing_schemes import same_text

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_effective(card: RateCard, effective_at: datetime) -> bool:
    """effective_start <= effective_at < effective_end (open-ended when end is NULL)."""
    start = as_utc(card.effective_start)
    end = as_utc(card.effective_end)
    at = as_utc(effective_at)
    if start is None or start > at:
        return False
    return end is None or at < end


def _covers_service(card: RateCard, carrier: str, service_type: str) -> bool:
    return any(
        same_text(r.get("carrier"), carrier) and same_text(r.get("service_type"), service_type)
        for r in card.base_rates or []
    )


def resolve_rate_card(
    cards: List[RateCard],
    company_id: Optional[uuid.UUID],
    service_id: Optional[uuid.UUID],
    carrier: str,
    service_type: str,
    effective_at: datetime,
) -> RateCard:
    """
    Pick the card that prices carrier/service_type for company_id.

    Precedence: service-scoped card for service_id, then company-wide cards
    with a base rate for carrier + service_type. Within a tier a company's own
    card beats a global one, then highest version, then latest effective_start.
    """
    candidates = []
    for card in cards:
        if card.status != RateCardStatus.ACTIVE.value or not is_effective(card, effective_at):
            continue
        if card.company_id is not None and card.company_id != company_id:
            continue
        if card.service_id is not None:
            if service_id is None or card.service_id != service_id:
                continue
        elif not _covers_service(card, carrier, service_type):
            continue
        candidates.append(card)

    if not candidates:
        raise NoActiveRateCardError(
            f"No active rate card for {carrier}/{service_type}",
            {
                "company_id": str(company_id) if company_id else None,
                "service_id": str(service_id) if service_id else None,
                "carrier": carrier,
                "service_type": service_type,
                "effective_at": as_utc(effective_at).isoformat(),
            },
        )

    candidates.sort(
        key=lambda c: (
            c.service_id is not None,
            c.company_id is not None,
            c.version,
            as_utc(c.effective_start),
            str(c.id),
        ),
        reverse=True,
    )
    return candidates[0]


class RateCardSnapshot:
    """Active rate cards visible to one company at one instant."""

    def __init__(self, company_id: Optional[uuid.UUID], effective_at: datetime, cards: List[RateCard]):
        self.company_id = company_id
        self.effective_at = effective_at
        self.cards = cards

    def resolve(self, service_id: Optional[uuid.UUID], carrier: str, service_type: str) -> RateCard:
        return resolve_rate_card(
            self.cards, self.company_id, service_id, carrier, service_type, self.effective_at
        )

    def __len__(self) -> int:
        return len(self.cards)


class RateCardResolver:
    """Loads rate cards and resolves the one that applies."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(
        self,
        company_id: Optional[uuid.UUID],
        effective_at: datetime,
        shipment_type: Optional[str] = None,
    ) -> RateCardSnapshot:
        stmt = select(RateCard).where(
            RateCard.status == RateCardStatus.ACTIVE.value,
            or_(RateCard.company_id == company_id, RateCard.company_id.is_(None))
            if company_id is not None
            else RateCard.company_id.is_(None),
        )
        if shipment_type:
            stmt = stmt.where(RateCard.shipment_type == shipment_type)

        result = await self.db.execute(stmt)
        cards = [card for card in result.scalars().all() if is_effective(card, effective_at)]
        logger.debug(
            "Loaded %d active rate cards for company %s at %s",
            len(cards), company_id, effective_at.isoformat(),
        )
        return RateCardSnapshot(company_id, effective_at, cards)

    async def resolve(
        self,
        company_id: Optional[uuid.UUID],
        service_id: Optional[uuid.UUID],
        carrier: str,
        service_type: str,
        effective_at: datetime,
    ) -> RateCard:
        snapshot = await self.load(company_id, effective_at)
        return snapshot.resolve(service_id, carrier, service_type)
