from rate_engine.models.audit_log import AuditLog
from rate_engine.models.courier_service import (
    AutoPriority,
    CourierService,
    FlowType,
    PaymentMode,
    SelectionMode,
    SellerCourierPolicy,
    ServiceStatus,
)
from rate_engine.models.rate_card import (
    RateCard,
    RateCardStatus,
    RoundingMode,
    ShipmentType,
    WeightBasis,
    ZoneCode,
)

__all__ = [
    "AuditLog",
    "AutoPriority",
    "CourierService",
    "FlowType",
    "PaymentMode",
    "RateCard",
    "RateCardStatus",
    "RoundingMode",
    "SelectionMode",
    "SellerCourierPolicy",
    "ServiceStatus",
    "ShipmentType",
    "WeightBasis",
    "ZoneCode",
]
