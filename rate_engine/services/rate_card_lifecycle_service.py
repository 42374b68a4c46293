"""
Rate Card Lifecycle Manager.

Activation, deactivation, cloning and bulk operations on stored rate cards.
Every change is a version-checked read-modify-write with an audit entry
flushed in the same transaction before commit.
"""
import copy
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.core.errors import CrossCompanyBulkError, StaleVersionError, ValidationError
from rate_engine.models.rate_card import RateCard, RateCardStatus
from rate_engine.schemas.rate_card import BulkFailure, BulkOperationResult
from rate_engine.services.rate_card_service import JSON_FIELDS, RateCardService, card_snapshot
from rate_engine.services.pricing_schemes import to_decimal

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def adjust_amount(amount: Any, factor: Decimal) -> str:
    """Scale one stored amount and round to 2 decimal places."""
    return str((to_decimal(amount) * factor).quantize(CENT, rounding=ROUND_HALF_UP))


def adjusted_pricing(rate_card: RateCard, factor: Decimal) -> Dict[str, Any]:
    """
    Scale every absolute price on the card by factor.

    Touches base prices, banded slab charges and their per-kg tail, and
    additive zone surcharges. Multipliers and per-kg weight rule prices are
    left as they are.
    """
    values: Dict[str, Any] = {}

    base_rates = copy.deepcopy(rate_card.base_rates or [])
    for rate in base_rates:
        rate["base_price"] = adjust_amount(rate.get("base_price"), factor)
    values["base_rates"] = base_rates

    if rate_card.zone_slabs:
        zone_slabs = copy.deepcopy(rate_card.zone_slabs)
        for entry in zone_slabs:
            for slab in entry.get("slabs") or []:
                slab["charge"] = adjust_amount(slab.get("charge"), factor)
            entry["additional_per_kg"] = adjust_amount(entry.get("additional_per_kg"), factor)
        values["zone_slabs"] = zone_slabs

    if rate_card.zone_rules:
        zone_rules = copy.deepcopy(rate_card.zone_rules)
        for rule in zone_rules:
            rule["additional_price"] = adjust_amount(rule.get("additional_price"), factor)
        values["zone_rules"] = zone_rules

    return values


class RateCardLifecycleService:
    """Lifecycle transitions and bulk operations for rate cards."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.rate_card_service = RateCardService(db)
        self.audit = self.rate_card_service.audit

    # ============================================
    # STATUS TRANSITIONS
    # ============================================

    async def _transition(
        self,
        rate_card: RateCard,
        target: RateCardStatus,
        user_id: Optional[uuid.UUID] = None,
        expected_version: Optional[int] = None,
    ) -> bool:
        """Move a card to target status. Returns False for a no-op. Does not commit."""
        if rate_card.status == target.value:
            return False

        if target == RateCardStatus.ACTIVE:
            if rate_card.effective_start is None:
                raise ValidationError(
                    "Rate card needs an effective_start before it can be activated",
                    {"rate_card_id": str(rate_card.id), "field": "effective_start"},
                )
            self.rate_card_service.ensure_valid(rate_card)

        old_data = card_snapshot(rate_card)
        read_version = expected_version if expected_version is not None else rate_card.version
        await self.rate_card_service.versioned_update(rate_card, read_version, {"status": target.value})

        action = "ACTIVATE" if target == RateCardStatus.ACTIVE else "DEACTIVATE"
        await self.audit.log_rate_card_change(
            action, rate_card.id, old_data=old_data, new_data=card_snapshot(rate_card), user_id=user_id,
        )
        return True

    async def activate(
        self,
        rate_card_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        expected_version: Optional[int] = None,
    ) -> RateCard:
        """Activate a card. Activating an active card returns it unchanged."""
        rate_card = await self.rate_card_service.get_rate_card(rate_card_id)
        if await self._transition(rate_card, RateCardStatus.ACTIVE, user_id, expected_version):
            await self.db.commit()
            logger.info("Activated rate card %s (version %d)", rate_card.id, rate_card.version)
        return rate_card

    async def deactivate(
        self,
        rate_card_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        expected_version: Optional[int] = None,
    ) -> RateCard:
        """Deactivate a card. Deactivating an inactive card returns it unchanged."""
        rate_card = await self.rate_card_service.get_rate_card(rate_card_id)
        if await self._transition(rate_card, RateCardStatus.INACTIVE, user_id, expected_version):
            await self.db.commit()
            logger.info("Deactivated rate card %s (version %d)", rate_card.id, rate_card.version)
        return rate_card

    # ============================================
    # CLONE
    # ============================================

    async def clone(
        self,
        rate_card_id: uuid.UUID,
        name: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> RateCard:
        """Copy a card into a new draft with version 1 and no effective dates."""
        source = await self.rate_card_service.get_rate_card(rate_card_id)

        clone = RateCard(
            company_id=source.company_id,
            service_id=source.service_id,
            name=name or f"{source.name} (Copy)",
            description=source.description,
            category=source.category,
            shipment_type=source.shipment_type,
            status=RateCardStatus.DRAFT.value,
            version=1,
            cod_percentage=source.cod_percentage,
            cod_minimum_charge=source.cod_minimum_charge,
            gst=source.gst,
            fuel_surcharge=source.fuel_surcharge,
            minimum_fare=source.minimum_fare,
            effective_start=None,
            effective_end=None,
            created_by=user_id,
            **{field_name: copy.deepcopy(getattr(source, field_name)) for field_name in JSON_FIELDS},
        )
        if clone.base_rates is None:
            clone.base_rates = []
        if clone.weight_rules is None:
            clone.weight_rules = []

        self.db.add(clone)
        await self.db.flush()
        await self.audit.log_rate_card_change(
            "CLONE",
            clone.id,
            new_data=card_snapshot(clone),
            user_id=user_id,
            description=f"Cloned rate card {source.id} as '{clone.name}'",
        )
        await self.db.commit()
        await self.db.refresh(clone)

        logger.info("Cloned rate card %s into %s", source.id, clone.id)
        return clone

    # ============================================
    # BULK OPERATIONS
    # ============================================

    async def _load_owned(self, company_id: uuid.UUID, rate_card_ids: List[uuid.UUID]) -> List[RateCard]:
        """Load cards for a bulk run; the whole run fails if any id is foreign or unknown."""
        unique_ids = list(dict.fromkeys(rate_card_ids))
        result = await self.db.execute(select(RateCard).where(RateCard.id.in_(unique_ids)))
        cards = {card.id: card for card in result.scalars().all()}

        missing = [str(i) for i in unique_ids if i not in cards]
        foreign = [str(i) for i, card in cards.items() if card.company_id != company_id]
        if missing or foreign:
            raise CrossCompanyBulkError(
                f"Bulk operation includes rate cards outside company {company_id}",
                {"company_id": str(company_id), "foreign_ids": foreign, "missing_ids": missing},
            )
        return [cards[i] for i in unique_ids]

    async def bulk_adjust_price(
        self,
        company_id: uuid.UUID,
        rate_card_ids: List[uuid.UUID],
        adjustment_type: str,
        percentage: Decimal,
        user_id: Optional[uuid.UUID] = None,
    ) -> BulkOperationResult:
        """
        Raise or lower every absolute price on the given cards by percentage.

        new = round(old x (1 +/- percentage / 100), 2). Cards that changed
        underneath the run are reported in failed[] and the rest still apply.
        """
        percentage = to_decimal(percentage)
        if adjustment_type not in ("increase", "decrease"):
            raise ValidationError(
                f"Unknown adjustment type '{adjustment_type}'",
                {"field": "adjustment_type"},
            )
        if not Decimal("1") <= percentage <= Decimal("100"):
            raise ValidationError(
                "Percentage must be between 1 and 100",
                {"field": "percentage", "value": str(percentage)},
            )

        cards = await self._load_owned(company_id, rate_card_ids)
        sign = 1 if adjustment_type == "increase" else -1
        factor = Decimal("1") + sign * percentage / Decimal("100")

        outcome = BulkOperationResult()
        for card in cards:
            old_data = card_snapshot(card)
            try:
                await self.rate_card_service.versioned_update(card, card.version, adjusted_pricing(card, factor))
            except StaleVersionError as e:
                outcome.failed.append(BulkFailure(rate_card_id=card.id, reason=e.message, details=e.details))
                continue
            await self.audit.log_rate_card_change(
                "BULK_ADJUST_PRICE",
                card.id,
                old_data=old_data,
                new_data=card_snapshot(card),
                user_id=user_id,
                description=f"Bulk {adjustment_type} of {percentage}% on rate card: {card.name}",
            )
            outcome.succeeded.append(card.id)

        await self.db.commit()
        logger.info(
            "Bulk %s %s%% for company %s: %d succeeded, %d failed",
            adjustment_type, percentage, company_id, len(outcome.succeeded), len(outcome.failed),
        )
        return outcome

    async def bulk_update_status(
        self,
        company_id: uuid.UUID,
        rate_card_ids: List[uuid.UUID],
        action: str,
        user_id: Optional[uuid.UUID] = None,
    ) -> BulkOperationResult:
        """Activate or deactivate several cards with the same per-card semantics as the single calls."""
        targets = {"activate": RateCardStatus.ACTIVE, "deactivate": RateCardStatus.INACTIVE}
        if action not in targets:
            raise ValidationError(f"Unknown bulk action '{action}'", {"field": "action"})

        cards = await self._load_owned(company_id, rate_card_ids)
        outcome = BulkOperationResult()
        for card in cards:
            try:
                changed = await self._transition(card, targets[action], user_id)
            except (StaleVersionError, ValidationError) as e:
                outcome.failed.append(BulkFailure(rate_card_id=card.id, reason=e.message, details=e.details))
                continue
            (outcome.succeeded if changed else outcome.unchanged).append(card.id)

        await self.db.commit()
        logger.info(
            "Bulk %s for company %s: %d succeeded, %d unchanged, %d failed",
            action, company_id, len(outcome.succeeded), len(outcome.unchanged), len(outcome.failed),
        )
        return outcome
