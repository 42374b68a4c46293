"""
Error taxonomy for the pricing and courier selection engine.

Every error carries a human readable message and a details dict so the HTTP
layer can surface the exact reason (offending slabs, stale versions, foreign
rate card ids) verbatim to the caller.
"""
from typing import Any, Dict, Optional


class RateEngineError(Exception):
    """Base exception for rate engine errors."""
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(RateEngineError):
    """Input rejected before any persistence."""
    status_code = 422


class OverlappingSlabError(ValidationError):
    """Two weight slabs share part of their range."""

    def __init__(self, first: Dict[str, Any], second: Dict[str, Any], field: str = "weight_rules"):
        self.first = first
        self.second = second
        super().__init__(
            f"Overlapping slabs in {field}: "
            f"[{first['min']}, {first['max']}) and [{second['min']}, {second['max']})",
            {"field": field, "slabs": [first, second]},
        )


class AmbiguousPricingSchemeError(ValidationError):
    """A rate card has more than one zone pricing scheme populated."""

    def __init__(self, rate_card_id: Any, schemes: list):
        super().__init__(
            f"Rate card {rate_card_id} has multiple pricing schemes populated: "
            f"{', '.join(schemes)}. Migrate it to a single scheme before quoting.",
            {"rate_card_id": str(rate_card_id), "schemes": schemes},
        )


class NoActiveRateCardError(RateEngineError):
    """No active rate card covers the request at the effective instant."""
    status_code = 404


class RateCardNotFoundError(RateEngineError):
    status_code = 404


class CourierServiceNotFoundError(RateEngineError):
    status_code = 404


class StaleVersionError(RateEngineError):
    """Optimistic concurrency conflict: the card changed since it was read."""
    status_code = 409

    def __init__(self, rate_card_id: Any, expected_version: int, actual_version: Optional[int] = None):
        self.rate_card_id = rate_card_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Rate card {rate_card_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            {
                "rate_card_id": str(rate_card_id),
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class CrossCompanyBulkError(RateEngineError):
    """Bulk operation targets rate cards outside the caller's company."""
    status_code = 403


class MultipleSchemesWarning(UserWarning):
    """Emitted when a legacy rate card is loaded with more than one scheme."""
