"""Pydantic schemas for rate cards and their lifecycle operations."""
from pydantic import BaseModel, Field, field_validator, model_validator

from rate_engine.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from rate_engine.core.zones import normalize_zone_key, ZONE_KEYS
from typing import Optional, List, Dict, Literal
from datetime import datetime
from decimal import Decimal
import uuid

from rate_engine.models.rate_card import (
    RateCardStatus, ShipmentType, RoundingMode, WeightBasis,
)


def _zone_or_raise(value: str) -> str:
    zone = normalize_zone_key(value)
    if zone is None or zone not in ZONE_KEYS:
        raise ValueError(f"Unknown zone '{value}', expected one of {', '.join(ZONE_KEYS)}")
    return zone


def _multipliers_or_raise(value: Optional[Dict[str, Decimal]]) -> Optional[Dict[str, Decimal]]:
    if value is None:
        return value
    normalized = {}
    for key, multiplier in value.items():
        if multiplier <= 0:
            raise ValueError(f"Multiplier for {key} must be positive")
        normalized[_zone_or_raise(key)] = multiplier
    return normalized


# ============================================
# PRICING DOCUMENTS
# ============================================

class BaseRateEntry(BaseModel):
    """Base price for a carrier + service type over a weight range (inclusive)."""
    carrier: str = Field(..., min_length=1, max_length=100)
    service_type: str = Field(..., min_length=1, max_length=50)
    base_price: Decimal = Field(..., ge=0)
    min_weight: Decimal = Field(default=Decimal("0"), ge=0)
    max_weight: Decimal = Field(..., gt=0)


class WeightRuleEntry(BaseModel):
    """Per-kg price over the half-open range [min_weight, max_weight)."""
    min_weight: Decimal = Field(..., ge=0)
    max_weight: Decimal = Field(..., gt=0)
    price_per_kg: Decimal = Field(..., ge=0)
    carrier: Optional[str] = None
    service_type: Optional[str] = None


class ZoneRuleEntry(BaseModel):
    zone: str
    additional_price: Decimal = Field(default=Decimal("0"), ge=0)
    transit_days: Optional[int] = Field(default=None, ge=0)
    carrier: Optional[str] = None
    service_type: Optional[str] = None

    _normalize_zone = field_validator("zone")(_zone_or_raise)


class BandSlab(BaseModel):
    min_kg: Decimal = Field(..., ge=0)
    max_kg: Decimal = Field(..., gt=0)
    charge: Decimal = Field(..., ge=0)


class ZoneSlabEntry(BaseModel):
    """Banded slabs for one zone on a service-scoped card."""
    zone: str
    slabs: List[BandSlab] = Field(..., min_length=1)
    additional_per_kg: Decimal = Field(default=Decimal("0"), ge=0)

    _normalize_zone = field_validator("zone")(_zone_or_raise)


class CalculationConfig(BaseModel):
    rounding_mode: RoundingMode = RoundingMode.CEIL
    rounding_unit_kg: Decimal = Field(default=Decimal("0.5"), gt=0)
    weight_basis: WeightBasis = WeightBasis.MAX
    dim_divisor: Optional[int] = Field(default=None, gt=0)


# ============================================
# RATE CARD SCHEMAS
# ============================================

class RateCardPricingFields(BaseModel):
    """Fields shared by create payloads and standalone validation."""
    base_rates: List[BaseRateEntry] = Field(default_factory=list)
    weight_rules: List[WeightRuleEntry] = Field(default_factory=list)
    zone_rules: Optional[List[ZoneRuleEntry]] = None
    zone_multipliers: Optional[Dict[str, Decimal]] = None
    zone_slabs: Optional[List[ZoneSlabEntry]] = None
    calculation: Optional[CalculationConfig] = None

    cod_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)
    cod_minimum_charge: Optional[Decimal] = Field(default=None, ge=0)
    gst: Decimal = Field(default=Decimal("18"), ge=0, le=100)
    fuel_surcharge: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    minimum_fare: Decimal = Field(default=Decimal("0"), ge=0)

    _normalize_multipliers = field_validator("zone_multipliers")(_multipliers_or_raise)


class RateCardCreate(BaseCreateSchema, RateCardPricingFields):
    """Create schema for a rate card. Cards always start as draft."""
    company_id: Optional[uuid.UUID] = None
    service_id: Optional[uuid.UUID] = None
    name: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=50)
    shipment_type: ShipmentType = ShipmentType.FORWARD
    effective_start: Optional[datetime] = None
    effective_end: Optional[datetime] = None

    @model_validator(mode="after")
    def check_effective_window(self):
        if self.effective_start and self.effective_end and self.effective_end <= self.effective_start:
            raise ValueError("effective_end must be after effective_start")
        return self


class RateCardValidateRequest(RateCardPricingFields):
    """Standalone validation payload."""
    service_id: Optional[uuid.UUID] = None


class RateCardUpdate(BaseUpdateSchema):
    """Update schema for a rate card. expected_version guards against lost updates."""
    expected_version: int = Field(..., ge=1)
    name: Optional[str] = Field(default=None, min_length=2, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=50)
    base_rates: Optional[List[BaseRateEntry]] = None
    weight_rules: Optional[List[WeightRuleEntry]] = None
    zone_rules: Optional[List[ZoneRuleEntry]] = None
    zone_multipliers: Optional[Dict[str, Decimal]] = None
    zone_slabs: Optional[List[ZoneSlabEntry]] = None
    calculation: Optional[CalculationConfig] = None
    cod_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)
    cod_minimum_charge: Optional[Decimal] = Field(default=None, ge=0)
    gst: Optional[Decimal] = Field(default=None, ge=0, le=100)
    fuel_surcharge: Optional[Decimal] = Field(default=None, ge=0, le=100)
    minimum_fare: Optional[Decimal] = Field(default=None, ge=0)
    effective_start: Optional[datetime] = None
    effective_end: Optional[datetime] = None

    _normalize_multipliers = field_validator("zone_multipliers")(_multipliers_or_raise)


class RateCardResponse(BaseResponseSchema):
    """Response schema for a rate card."""
    id: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    service_id: Optional[uuid.UUID] = None
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    shipment_type: ShipmentType
    status: RateCardStatus
    version: int
    base_rates: List[BaseRateEntry] = []
    weight_rules: List[WeightRuleEntry] = []
    zone_rules: Optional[List[ZoneRuleEntry]] = None
    zone_multipliers: Optional[Dict[str, Decimal]] = None
    zone_slabs: Optional[List[ZoneSlabEntry]] = None
    calculation: Optional[CalculationConfig] = None
    cod_percentage: Optional[Decimal] = None
    cod_minimum_charge: Optional[Decimal] = None
    gst: Decimal
    fuel_surcharge: Decimal
    minimum_fare: Decimal
    effective_start: Optional[datetime] = None
    effective_end: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class RateCardListResponse(BaseModel):
    """Paginated rate card list."""
    items: List[RateCardResponse]
    total: int
    page: int
    size: int
    pages: int


class RateCardValidationResult(BaseModel):
    """Outcome of ValidateRateCard. Errors carry the same details as the raised exceptions."""
    valid: bool
    scheme: Optional[str] = None
    errors: List[dict] = []
    warnings: List[str] = []


# ============================================
# LIFECYCLE SCHEMAS
# ============================================

class RateCardCloneRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=200)


class BulkAdjustPriceRequest(BaseModel):
    """Percentage price adjustment across a company's rate cards."""
    company_id: uuid.UUID
    rate_card_ids: List[uuid.UUID] = Field(..., min_length=1)
    adjustment_type: Literal["increase", "decrease"]
    percentage: Decimal = Field(..., ge=1, le=100)


class BulkUpdateStatusRequest(BaseModel):
    company_id: uuid.UUID
    rate_card_ids: List[uuid.UUID] = Field(..., min_length=1)
    action: Literal["activate", "deactivate"]


class BulkFailure(BaseModel):
    rate_card_id: uuid.UUID
    reason: str
    details: dict = {}


class BulkOperationResult(BaseModel):
    """Per-card outcome of a bulk operation."""
    succeeded: List[uuid.UUID] = []
    unchanged: List[uuid.UUID] = []
    failed: List[BulkFailure] = []
