"""Service for managing rate cards: CRUD, validation and version-guarded writes."""
from typing import Any, Dict, List, Optional, Tuple, Union
from datetime import datetime, timezone
from enum import Enum
import logging
import uuid

from pydantic import BaseModel
from sqlalchemy import select, func, and_, update
from sqlalchemy.ext.asyncio import AsyncSession

from rate_engine.core.errors import (
    AmbiguousPricingSchemeError, RateCardNotFoundError, RateEngineError,
    StaleVersionError, ValidationError,
)
from rate_engine.models.rate_card import RateCard, RateCardStatus
from rate_engine.schemas.rate_card import (
    RateCardCreate, RateCardPricingFields, RateCardResponse, RateCardUpdate,
    RateCardValidationResult,
)
from rate_engine.services.audit_service import AuditService
from rate_engine.services.pricing_schemes import populated_schemes, to_decimal
from rate_engine.services.weight_slab_validator import validate_weight_rules, validate_zone_slabs

logger = logging.getLogger(__name__)

JSON_FIELDS = ("base_rates", "weight_rules", "zone_rules", "zone_multipliers", "zone_slabs", "calculation")
PRICING_FIELDS = JSON_FIELDS + ("cod_percentage", "cod_minimum_charge", "gst", "fuel_surcharge", "minimum_fare")


def column_values(data: BaseModel, exclude_unset: bool = False, exclude: Optional[set] = None) -> Dict[str, Any]:
    """Column values from a schema; JSON documents are dumped in JSON mode so Decimals become strings."""
    exclude = set(exclude or ())
    values = data.model_dump(exclude_unset=exclude_unset, exclude=exclude | set(JSON_FIELDS))
    values = {k: v.value if isinstance(v, Enum) else v for k, v in values.items()}
    values.update(data.model_dump(mode="json", exclude_unset=exclude_unset, include=set(JSON_FIELDS) - exclude))
    return values


def card_snapshot(card: RateCard) -> Dict[str, Any]:
    """JSON-safe copy of a card for audit entries."""
    return RateCardResponse.model_validate(card).model_dump(mode="json")


class _PricingDocument:
    """Attribute view over a dict so validation reads models and payloads alike."""

    def __init__(self, values: Dict[str, Any], rate_card_id: Any = None):
        self.id = rate_card_id
        self.service_id = values.get("service_id")
        for name in JSON_FIELDS:
            setattr(self, name, values.get(name))


def collect_validation_errors(
    card: Union[RateCard, RateCardPricingFields, Dict[str, Any]],
    service_id: Optional[uuid.UUID] = None,
) -> Tuple[List[RateEngineError], List[str], Optional[str]]:
    """
    Run every rate card check and collect errors instead of stopping at the first.

    Returns (errors, warnings, scheme).
    """
    if isinstance(card, RateCard):
        doc = card
    elif isinstance(card, BaseModel):
        values = card.model_dump(mode="json")
        values.setdefault("service_id", service_id)
        doc = _PricingDocument(values)
    else:
        doc = _PricingDocument({"service_id": service_id, **card}, card.get("id"))

    errors: List[RateEngineError] = []
    warnings: List[str] = []

    try:
        validate_weight_rules(doc.weight_rules or [])
    except ValidationError as e:
        errors.append(e)
    try:
        validate_zone_slabs(doc.zone_slabs or [])
    except ValidationError as e:
        errors.append(e)

    for index, rate in enumerate(doc.base_rates or []):
        if to_decimal(rate.get("max_weight")) < to_decimal(rate.get("min_weight")):
            errors.append(ValidationError(
                f"Base rate base_rates[{index}] has max_weight below min_weight",
                {"field": "base_rates", "index": index},
            ))

    schemes = populated_schemes(doc)
    scheme = schemes[0] if len(schemes) == 1 else None
    if len(schemes) > 1:
        errors.append(AmbiguousPricingSchemeError(doc.id or "(unsaved)", schemes))
    elif not schemes:
        warnings.append("No zone pricing scheme configured; zone charge will be 0")

    if doc.zone_slabs:
        if doc.service_id is None:
            errors.append(ValidationError(
                "Banded slab pricing is only allowed on service-scoped rate cards",
                {"field": "zone_slabs"},
            ))
        if not doc.calculation:
            warnings.append("No calculation block; weights round up to 0.5 kg on max(actual, volumetric)")
    elif not doc.base_rates:
        errors.append(ValidationError(
            "At least one base rate is required",
            {"field": "base_rates"},
        ))

    return errors, warnings, scheme


class RateCardService:
    """Service for rate card management."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # ============================================
    # VALIDATION
    # ============================================

    def validate_rate_card(
        self,
        card: Union[RateCard, RateCardPricingFields, Dict[str, Any]],
        service_id: Optional[uuid.UUID] = None,
    ) -> RateCardValidationResult:
        errors, warnings, scheme = collect_validation_errors(card, service_id)
        return RateCardValidationResult(
            valid=not errors,
            scheme=scheme,
            errors=[
                {"type": type(e).__name__, "message": e.message, "details": e.details}
                for e in errors
            ],
            warnings=warnings,
        )

    def ensure_valid(self, card: Union[RateCard, RateCardPricingFields, Dict[str, Any]], service_id=None) -> None:
        """Raise the first validation error, if any."""
        errors, _, _ = collect_validation_errors(card, service_id)
        if errors:
            raise errors[0]

    # ============================================
    # RATE CARD CRUD
    # ============================================

    async def get_rate_card(self, rate_card_id: uuid.UUID) -> RateCard:
        rate_card = await self.db.get(RateCard, rate_card_id)
        if not rate_card:
            raise RateCardNotFoundError(
                f"Rate card {rate_card_id} not found",
                {"rate_card_id": str(rate_card_id)},
            )
        return rate_card

    async def list_rate_cards(
        self,
        company_id: Optional[uuid.UUID] = None,
        service_id: Optional[uuid.UUID] = None,
        status: Optional[RateCardStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[RateCard], int]:
        """List rate cards with filters and pagination."""
        stmt = select(RateCard).order_by(RateCard.created_at.desc(), RateCard.id)

        filters = []
        if company_id:
            filters.append(RateCard.company_id == company_id)
        if service_id:
            filters.append(RateCard.service_id == service_id)
        if status:
            filters.append(RateCard.status == RateCardStatus(status).value)

        if filters:
            stmt = stmt.where(and_(*filters))

        # Count query
        count_stmt = select(func.count(RateCard.id))
        if filters:
            count_stmt = count_stmt.where(and_(*filters))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        # Paginate
        stmt = stmt.offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def create_rate_card(
        self,
        data: RateCardCreate,
        created_by: Optional[uuid.UUID] = None,
    ) -> RateCard:
        """Create a draft rate card after validating its pricing data."""
        self.ensure_valid(data, data.service_id)

        values = column_values(data)
        values["created_by"] = created_by
        values["status"] = RateCardStatus.DRAFT.value
        values["version"] = 1
        rate_card = RateCard(**values)

        self.db.add(rate_card)
        await self.db.flush()
        await self.audit.log_rate_card_change(
            "CREATE", rate_card.id, new_data=card_snapshot(rate_card), user_id=created_by,
        )
        await self.db.commit()
        await self.db.refresh(rate_card)

        logger.info("Created rate card %s (%s)", rate_card.id, rate_card.name)
        return rate_card

    async def update_rate_card(
        self,
        rate_card_id: uuid.UUID,
        data: RateCardUpdate,
        user_id: Optional[uuid.UUID] = None,
    ) -> RateCard:
        """Partial update guarded by data.expected_version."""
        rate_card = await self.get_rate_card(rate_card_id)
        if rate_card.version != data.expected_version:
            raise StaleVersionError(rate_card_id, data.expected_version, rate_card.version)

        update_data = column_values(data, exclude_unset=True, exclude={"expected_version"})
        if not update_data:
            return rate_card
        for key in ("base_rates", "weight_rules"):
            if key in update_data and update_data[key] is None:
                update_data[key] = []

        merged = {name: getattr(rate_card, name) for name in JSON_FIELDS}
        merged.update({k: v for k, v in update_data.items() if k in JSON_FIELDS})
        merged["service_id"] = rate_card.service_id
        self.ensure_valid({"id": rate_card.id, **merged})

        old_data = card_snapshot(rate_card)
        await self.versioned_update(rate_card, data.expected_version, update_data)
        await self.audit.log_rate_card_change(
            "UPDATE", rate_card.id, old_data=old_data, new_data=card_snapshot(rate_card), user_id=user_id,
        )
        await self.db.commit()
        return rate_card

    async def versioned_update(
        self,
        rate_card: RateCard,
        read_version: int,
        values: Dict[str, Any],
    ) -> RateCard:
        """
        UPDATE ... WHERE id = :id AND version = :read_version.

        Bumps the version on success. Raises StaleVersionError when another
        writer got there first. Does not commit.
        """
        stmt = (
            update(RateCard)
            .where(RateCard.id == rate_card.id, RateCard.version == read_version)
            .values(**values, version=read_version + 1, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            actual = (await self.db.execute(
                select(RateCard.version).where(RateCard.id == rate_card.id)
            )).scalar_one_or_none()
            raise StaleVersionError(rate_card.id, read_version, actual)

        await self.db.refresh(rate_card)
        return rate_card
