"""Courier service catalogue and per-seller courier policies."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    String, DateTime, Boolean, Numeric, Index, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from rate_engine.database import Base
from rate_engine.db_types import JSONType, UUIDType


class FlowType(str, Enum):
    FORWARD = "forward"
    REVERSE = "reverse"
    BOTH = "both"


class ServiceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PaymentMode(str, Enum):
    PREPAID = "prepaid"
    COD = "cod"


class SelectionMode(str, Enum):
    """How the courier choice is handed back to the seller."""
    MANUAL_ONLY = "manual_only"
    MANUAL_WITH_RECOMMENDATION = "manual_with_recommendation"
    AUTO = "auto"


class AutoPriority(str, Enum):
    """Ranking strategy for courier quotes."""
    PRICE = "price"
    SPEED = "speed"
    BALANCED = "balanced"


# ============================================
# COURIER SERVICE
# ============================================

class CourierService(Base):
    """
    A carrier product a shipment can be booked on (e.g. Delhivery Surface).

    constraints: {min_weight_kg, max_weight_kg, max_cod_value, max_prepaid_value, payment_modes}
    sla:         {edd_min_days, edd_max_days}
    """
    __tablename__ = "courier_services"
    __table_args__ = (
        UniqueConstraint("provider", "service_code", name="uq_courier_service_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    provider: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    service_code: Mapped[str] = mapped_column(String(100), nullable=False)
    service_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Matches base_rates[].service_type on rate cards"
    )
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)

    flow_type: Mapped[str] = mapped_column(
        String(20),
        default=FlowType.FORWARD.value,
        nullable=False
    )
    zone_support: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    constraints: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    sla: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ServiceStatus.ACTIVE.value,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CourierService(provider='{self.provider}', code='{self.service_code}')>"


# ============================================
# SELLER COURIER POLICY
# ============================================

class SellerCourierPolicy(Base):
    """
    Allow/block rules and selection strategy for one seller of a company.

    A service-level block beats a service-level allow; a service-level allow
    overrides a provider-level block for that service.
    """
    __tablename__ = "seller_courier_policies"
    __table_args__ = (
        UniqueConstraint("company_id", "seller_id", name="uq_seller_courier_policy"),
        Index("idx_seller_policy_seller", "seller_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    seller_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    selection_mode: Mapped[str] = mapped_column(
        String(40),
        default=SelectionMode.MANUAL_WITH_RECOMMENDATION.value,
        nullable=False
    )
    auto_priority: Mapped[str] = mapped_column(
        String(20),
        default=AutoPriority.BALANCED.value,
        nullable=False
    )
    balanced_delta_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("5"),
        nullable=False,
        comment="Price band above the cheapest quote for balanced ranking"
    )

    allowed_providers: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    blocked_providers: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    allowed_service_ids: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    blocked_service_ids: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<SellerCourierPolicy(seller_id='{self.seller_id}', mode='{self.selection_mode}')>"
