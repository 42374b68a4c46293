"""Rate Card model for shipment pricing across zone pricing schemes."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    String, DateTime, Integer, Text, Numeric, Index
)
from sqlalchemy.orm import Mapped, mapped_column

from rate_engine.database import Base
from rate_engine.db_types import JSONType, UUIDType


# ============================================
# ENUMS
# ============================================

class RateCardStatus(str, Enum):
    """Rate card lifecycle status."""
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class ShipmentType(str, Enum):
    """Direction of the shipment a rate card prices."""
    FORWARD = "forward"
    REVERSE = "reverse"


class ZoneCode(str, Enum):
    """Zone classification for delivery."""
    A = "zoneA"  # Local / Within City
    B = "zoneB"  # Within State
    C = "zoneC"  # Regional / Metro to Metro
    D = "zoneD"  # Rest of India
    E = "zoneE"  # Special (NE / J&K / Remote)


class RoundingMode(str, Enum):
    """How chargeable weight is snapped to the rounding unit."""
    CEIL = "ceil"
    FLOOR = "floor"
    NEAREST = "nearest"


class WeightBasis(str, Enum):
    """Which weight a banded card charges on."""
    ACTUAL = "actual"
    VOLUMETRIC = "volumetric"
    MAX = "max"


# ============================================
# RATE CARD
# ============================================

class RateCard(Base):
    """
    Versioned pricing configuration owned by a company (or global when
    company_id is NULL). A card with service_id set is service-scoped and
    takes precedence over company-wide cards for that service.

    Pricing data is stored as embedded JSON documents so that clone and
    bulk adjustment operate on a single row:
      base_rates:       [{carrier, service_type, base_price, min_weight, max_weight}]
      weight_rules:     [{min_weight, max_weight, price_per_kg, carrier, service_type}]
      zone_rules:       [{zone, additional_price, transit_days, carrier, service_type}]
      zone_multipliers: {zoneA: 1.0, ..., zoneE: 1.6}
      zone_slabs:       [{zone, slabs: [{min_kg, max_kg, charge}], additional_per_kg}]
      calculation:      {rounding_mode, rounding_unit_kg, weight_basis, dim_divisor}
    """
    __tablename__ = "rate_cards"
    __table_args__ = (
        Index("idx_rate_card_lookup", "company_id", "status"),
        Index("idx_rate_card_service", "service_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Ownership
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        index=True,
        comment="Owning company, NULL for a global card"
    )
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        comment="Set for service-scoped cards"
    )

    # Identification
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="e.g. lite, basic, advanced, pro"
    )
    shipment_type: Mapped[str] = mapped_column(
        String(20),
        default=ShipmentType.FORWARD.value,
        nullable=False
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        default=RateCardStatus.DRAFT.value,
        nullable=False,
        comment="draft, active, inactive, expired"
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Pricing documents
    base_rates: Mapped[List[dict]] = mapped_column(JSONType, default=list, nullable=False)
    weight_rules: Mapped[List[dict]] = mapped_column(JSONType, default=list, nullable=False)
    zone_rules: Mapped[Optional[List[dict]]] = mapped_column(JSONType, nullable=True)
    zone_multipliers: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    zone_slabs: Mapped[Optional[List[dict]]] = mapped_column(JSONType, nullable=True)
    calculation: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Overheads
    # NULL on both means COD terms are not configured; settings defaults apply
    cod_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 3), nullable=True)
    cod_minimum_charge: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    gst: Mapped[Decimal] = mapped_column(
        Numeric(6, 3),
        default=Decimal("18"),
        nullable=False,
        comment="GST percentage (18% for logistics in India)"
    )
    fuel_surcharge: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=0, nullable=False)
    minimum_fare: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)

    # Validity Period
    effective_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    effective_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Audit
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
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

    @property
    def is_service_scoped(self) -> bool:
        return self.service_id is not None

    def __repr__(self) -> str:
        return f"<RateCard(name='{self.name}', status='{self.status}', version={self.version})>"
