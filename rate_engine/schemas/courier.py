"""Pydantic schemas for courier services and seller courier policies."""
from pydantic import BaseModel, Field, field_validator, model_validator

from rate_engine.schemas.base import BaseResponseSchema, BaseCreateSchema
from rate_engine.core.zones import normalize_zone_key
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from rate_engine.models.courier_service import (
    FlowType, ServiceStatus, PaymentMode, SelectionMode, AutoPriority,
)


# ============================================
# COURIER SERVICE SCHEMAS
# ============================================

class CourierConstraints(BaseModel):
    min_weight_kg: Optional[Decimal] = Field(default=None, ge=0)
    max_weight_kg: Optional[Decimal] = Field(default=None, gt=0)
    max_cod_value: Optional[Decimal] = Field(default=None, ge=0)
    max_prepaid_value: Optional[Decimal] = Field(default=None, ge=0)
    payment_modes: List[PaymentMode] = Field(
        default_factory=lambda: [PaymentMode.PREPAID, PaymentMode.COD]
    )


class CourierSLA(BaseModel):
    edd_min_days: int = Field(default=1, ge=0)
    edd_max_days: int = Field(default=5, ge=0)

    @model_validator(mode="after")
    def check_range(self):
        if self.edd_max_days < self.edd_min_days:
            raise ValueError("edd_max_days must be >= edd_min_days")
        return self


class CourierServiceCreate(BaseCreateSchema):
    """Create schema for a courier service."""
    provider: str = Field(..., min_length=1, max_length=100)
    service_code: str = Field(..., min_length=1, max_length=100)
    service_type: str = Field(..., min_length=1, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=200)
    flow_type: FlowType = FlowType.FORWARD
    zone_support: List[str] = Field(default_factory=lambda: ["all"])
    constraints: CourierConstraints = Field(default_factory=CourierConstraints)
    sla: CourierSLA = Field(default_factory=CourierSLA)
    status: ServiceStatus = ServiceStatus.ACTIVE

    @field_validator("zone_support")
    @classmethod
    def normalize_zones(cls, v: List[str]) -> List[str]:
        zones = []
        for raw in v:
            zone = normalize_zone_key(raw)
            if zone is None:
                raise ValueError(f"Unknown zone '{raw}'")
            if zone not in zones:
                zones.append(zone)
        return zones


class CourierServiceResponse(BaseResponseSchema):
    """Response schema for a courier service."""
    id: uuid.UUID
    provider: str
    service_code: str
    service_type: str
    display_name: str
    flow_type: FlowType
    zone_support: List[str]
    constraints: CourierConstraints
    sla: CourierSLA
    status: ServiceStatus
    created_at: datetime
    updated_at: datetime


class CourierServiceListResponse(BaseModel):
    items: List[CourierServiceResponse]
    total: int


# ============================================
# SELLER POLICY SCHEMAS
# ============================================

class SellerCourierPolicyUpsert(BaseCreateSchema):
    """Create-or-replace payload for a seller's courier policy."""
    company_id: Optional[uuid.UUID] = None
    is_active: bool = True
    selection_mode: SelectionMode = SelectionMode.MANUAL_WITH_RECOMMENDATION
    auto_priority: AutoPriority = AutoPriority.BALANCED
    balanced_delta_percent: Decimal = Field(default=Decimal("5"), ge=0, le=100)
    allowed_providers: List[str] = []
    blocked_providers: List[str] = []
    allowed_service_ids: List[uuid.UUID] = []
    blocked_service_ids: List[uuid.UUID] = []

    @model_validator(mode="after")
    def check_service_lists_disjoint(self):
        both = set(self.allowed_service_ids) & set(self.blocked_service_ids)
        if both:
            raise ValueError(
                "Service ids cannot be both allowed and blocked: "
                + ", ".join(sorted(str(i) for i in both))
            )
        return self


class SellerCourierPolicyResponse(BaseResponseSchema):
    id: uuid.UUID
    company_id: Optional[uuid.UUID] = None
    seller_id: uuid.UUID
    is_active: bool
    selection_mode: SelectionMode
    auto_priority: AutoPriority
    balanced_delta_percent: Decimal
    allowed_providers: List[str]
    blocked_providers: List[str]
    allowed_service_ids: List[uuid.UUID]
    blocked_service_ids: List[uuid.UUID]
    created_at: datetime
    updated_at: datetime
