"""
Selection Policy Engine.

Applies a seller's allow/block rules to collected quotes, ranks the
survivors and shapes the result for the seller's selection mode:

- manual_only:                 ranked list, no recommendation
- manual_with_recommendation:  ranked list, top entry flagged recommended
- auto:                        only the top entry, binding
"""
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.config import settings
from rate_engine.models.courier_service import AutoPriority, SelectionMode, SellerCourierPolicy
from rate_engine.schemas.quote import ExcludedQuote, Quote, SelectionResult

logger = logging.getLogger(__name__)

NO_ELIGIBLE_COURIER = "NoEligibleCourier"


@dataclass
class SelectionPolicy:
    selection_mode: SelectionMode
    auto_priority: AutoPriority
    balanced_delta_percent: Decimal
    allowed_providers: Set[str] = field(default_factory=set)
    blocked_providers: Set[str] = field(default_factory=set)
    allowed_service_ids: Set[str] = field(default_factory=set)
    blocked_service_ids: Set[str] = field(default_factory=set)
    source: str = "default"

    @property
    def has_allow_list(self) -> bool:
        return bool(self.allowed_providers or self.allowed_service_ids)

    @classmethod
    def defaults(cls) -> "SelectionPolicy":
        return cls(
            selection_mode=SelectionMode(settings.DEFAULT_SELECTION_MODE),
            auto_priority=AutoPriority(settings.DEFAULT_AUTO_PRIORITY),
            balanced_delta_percent=Decimal(str(settings.DEFAULT_BALANCED_DELTA_PERCENT)),
        )

    @classmethod
    def from_model(cls, policy: SellerCourierPolicy) -> "SelectionPolicy":
        return cls(
            selection_mode=SelectionMode(policy.selection_mode),
            auto_priority=AutoPriority(policy.auto_priority),
            balanced_delta_percent=Decimal(str(policy.balanced_delta_percent)),
            allowed_providers={p.strip().lower() for p in policy.allowed_providers or []},
            blocked_providers={p.strip().lower() for p in policy.blocked_providers or []},
            allowed_service_ids={str(s) for s in policy.allowed_service_ids or []},
            blocked_service_ids={str(s) for s in policy.blocked_service_ids or []},
            source="seller_policy",
        )


# ============================================
# FILTERS
# ============================================

def exclusion_reason(quote: Quote, policy: SelectionPolicy) -> Optional[str]:
    service_id = str(quote.service_id)
    provider = quote.provider.strip().lower()

    # A service-level block always wins
    if service_id in policy.blocked_service_ids:
        return "Service blocked by seller policy"
    # A service-level allow overrides a provider-level block
    if provider in policy.blocked_providers and service_id not in policy.allowed_service_ids:
        return f"Provider {quote.provider} blocked by seller policy"
    if policy.has_allow_list and provider not in policy.allowed_providers \
            and service_id not in policy.allowed_service_ids:
        return "Not in seller allow-list"
    if not quote.eligible:
        return quote.ineligible_reason or "Ineligible"
    return None


def apply_policy_filters(quotes: List[Quote], policy: SelectionPolicy) -> Tuple[List[Quote], List[ExcludedQuote]]:
    kept, excluded = [], []
    for quote in quotes:
        reason = exclusion_reason(quote, policy)
        if reason is None:
            kept.append(quote)
        else:
            excluded.append(ExcludedQuote(
                service_id=quote.service_id,
                provider=quote.provider,
                service_name=quote.service_name,
                reason=reason,
            ))
    return kept, excluded


# ============================================
# RANKING
# ============================================

def _price_key(quote: Quote):
    return (quote.total, quote.eta_days.max, str(quote.service_id))


def _speed_key(quote: Quote):
    return (quote.eta_days.max, quote.total, str(quote.service_id))


def rank_quotes(quotes: List[Quote], priority: AutoPriority, balanced_delta_percent: Decimal) -> List[Quote]:
    """
    Order eligible quotes best first.

    balanced: the winner is the fastest quote whose total is within
    balanced_delta_percent of the cheapest; everything else follows in
    price order.
    """
    if not quotes:
        return []

    priority = AutoPriority(priority)
    if priority == AutoPriority.SPEED:
        return sorted(quotes, key=_speed_key)

    by_price = sorted(quotes, key=_price_key)
    if priority == AutoPriority.PRICE:
        return by_price

    cheapest = by_price[0].total
    band_limit = cheapest * (1 + Decimal(str(balanced_delta_percent)) / 100)
    band = [q for q in by_price if q.total <= band_limit]
    winner = min(band, key=_speed_key)
    return [winner] + [q for q in by_price if q is not winner]


def select_from_quotes(quotes: List[Quote], policy: SelectionPolicy) -> SelectionResult:
    kept, excluded = apply_policy_filters(quotes, policy)
    result = SelectionResult(
        status="ok",
        selection_mode=policy.selection_mode,
        auto_priority=policy.auto_priority,
        balanced_delta_percent=policy.balanced_delta_percent,
        policy_source=policy.source,
        excluded=excluded,
    )
    if not kept:
        result.status = "no_eligible_courier"
        result.reason = NO_ELIGIBLE_COURIER
        return result

    ranked = [
        q.model_copy(update={"recommended": False})
        for q in rank_quotes(kept, policy.auto_priority, policy.balanced_delta_percent)
    ]

    if policy.selection_mode == SelectionMode.MANUAL_ONLY:
        result.quotes = ranked
    elif policy.selection_mode == SelectionMode.MANUAL_WITH_RECOMMENDATION:
        ranked[0].recommended = True
        result.quotes = ranked
    else:
        ranked[0].recommended = True
        result.quotes = ranked[:1]
        result.selected = ranked[0]
    return result


class CourierSelectionService:
    """Loads the seller's policy and applies it to quotes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_policy(self, seller_id: uuid.UUID, company_id: Optional[uuid.UUID] = None) -> SelectionPolicy:
        stmt = select(SellerCourierPolicy).where(SellerCourierPolicy.seller_id == seller_id)
        result = await self.db.execute(stmt)
        policies = list(result.scalars().all())

        # The company's own policy for the seller wins over a company-less one
        policy = next((p for p in policies if company_id is not None and p.company_id == company_id), None)
        if policy is None:
            policy = next((p for p in policies if p.company_id is None), None)

        if policy is None or not policy.is_active:
            logger.debug("No active courier policy for seller %s, using defaults", seller_id)
            return SelectionPolicy.defaults()
        return SelectionPolicy.from_model(policy)

    async def select(
        self,
        seller_id: uuid.UUID,
        quotes: List[Quote],
        company_id: Optional[uuid.UUID] = None,
    ) -> SelectionResult:
        policy = await self.get_policy(seller_id, company_id)
        result = select_from_quotes(quotes, policy)
        if result.status == "no_eligible_courier":
            logger.info("No eligible courier for seller %s (%d excluded)", seller_id, len(result.excluded))
        return result
