"""Pydantic schemas for shipment quoting and courier selection."""
from pydantic import BaseModel, Field, field_validator

from rate_engine.core.zones import normalize_zone_key, ZONE_KEYS
from typing import Optional, List, Literal
from datetime import datetime
from decimal import Decimal
import uuid

from rate_engine.models.courier_service import PaymentMode, SelectionMode, AutoPriority
from rate_engine.models.rate_card import ShipmentType


# ============================================
# SHIPMENT
# ============================================

class Dimensions(BaseModel):
    length_cm: Decimal = Field(..., gt=0)
    width_cm: Decimal = Field(..., gt=0)
    height_cm: Decimal = Field(..., gt=0)


class ShipmentRequest(BaseModel):
    """Shipment to be priced. zone is the destination zone already resolved upstream."""
    company_id: Optional[uuid.UUID] = None
    zone: str
    weight_kg: Decimal = Field(..., gt=0)
    dimensions: Optional[Dimensions] = None
    payment_mode: PaymentMode = PaymentMode.PREPAID
    order_value: Decimal = Field(default=Decimal("0"), ge=0)
    flow_type: ShipmentType = ShipmentType.FORWARD
    origin_state: Optional[str] = None
    destination_state: Optional[str] = None

    @field_validator("zone")
    @classmethod
    def normalize_zone(cls, v: str) -> str:
        zone = normalize_zone_key(v)
        if zone not in ZONE_KEYS:
            raise ValueError(f"Unknown zone '{v}'")
        return zone


# ============================================
# QUOTE
# ============================================

class QuoteBreakdown(BaseModel):
    """Displayed components, each rounded from the unrounded intermediates."""
    base: Decimal = Decimal("0")
    weight_charge: Decimal = Decimal("0")
    zone_charge: Decimal = Decimal("0")
    subtotal: Decimal = Decimal("0")
    gst: Decimal = Decimal("0")
    cgst: Optional[Decimal] = None
    sgst: Optional[Decimal] = None
    igst: Optional[Decimal] = None
    fuel_surcharge: Decimal = Decimal("0")
    cod_fee: Decimal = Decimal("0")
    minimum_fare_applied: bool = False
    minimum_fare_adjustment: Decimal = Decimal("0")
    scheme: str
    zone_rule_matched: bool = True
    weight_rule_matched: bool = True
    base_rate_matched: bool = True
    notes: List[str] = []


class EtaDays(BaseModel):
    min: int
    max: int


class Quote(BaseModel):
    service_id: uuid.UUID
    provider: str
    service_type: str
    service_name: str
    rate_card_id: Optional[uuid.UUID] = None
    rate_card_version: Optional[int] = None
    zone: str
    chargeable_weight: Decimal
    total: Optional[Decimal] = None
    breakdown: Optional[QuoteBreakdown] = None
    eta_days: EtaDays
    eligible: bool = True
    ineligible_reason: Optional[str] = None
    estimated: bool = False
    recommended: bool = False


class ExcludedQuote(BaseModel):
    service_id: uuid.UUID
    provider: str
    service_name: str
    reason: str


class SelectionResult(BaseModel):
    """
    Outcome of courier selection.

    status is "ok" when at least one quote survived the filters and
    "no_eligible_courier" otherwise (reason is then "NoEligibleCourier").
    """
    status: Literal["ok", "no_eligible_courier"]
    reason: Optional[str] = None
    selection_mode: SelectionMode
    auto_priority: AutoPriority
    balanced_delta_percent: Decimal
    policy_source: Literal["seller_policy", "default"]
    quotes: List[Quote] = []
    selected: Optional[Quote] = None
    excluded: List[ExcludedQuote] = []


# ============================================
# REQUESTS / RESPONSES
# ============================================

class QuoteRequest(BaseModel):
    shipment: ShipmentRequest
    seller_id: Optional[uuid.UUID] = None
    effective_at: Optional[datetime] = None


class QuoteResponse(BaseModel):
    effective_at: datetime
    quotes: List[Quote]


class SelectRequest(BaseModel):
    seller_id: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    quotes: List[Quote]


class AllocateRequest(BaseModel):
    shipment: ShipmentRequest
    seller_id: uuid.UUID
    effective_at: Optional[datetime] = None


class AllocateResponse(BaseModel):
    effective_at: datetime
    quotes: List[Quote]
    selection: SelectionResult
