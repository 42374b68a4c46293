"""
Weight slab validation.

Slabs are half-open ranges [min, max). After sorting by min, a slab whose
min is below the previous slab's max overlaps it. Touching slabs such as
[0, 1) and [1, 2) are valid. Input is never corrected, only rejected.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from rate_engine.core.errors import OverlappingSlabError, ValidationError


def _as_decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def validate_slabs(slabs: Iterable[Dict[str, Any]], field: str = "weight_rules") -> List[Dict[str, Decimal]]:
    """
    Validate a list of {min, max} slabs.

    Returns the slabs sorted by min. Raises ValidationError for a malformed
    slab and OverlappingSlabError naming the first offending pair.
    """
    normalized = []
    for index, slab in enumerate(slabs):
        lower = _as_decimal(slab["min"])
        upper = _as_decimal(slab["max"])
        if lower < 0 or upper < 0:
            raise ValidationError(
                f"Negative weight bound in {field}[{index}]",
                {"field": field, "index": index, "slab": {"min": str(lower), "max": str(upper)}},
            )
        if upper <= lower:
            raise ValidationError(
                f"Slab {field}[{index}] has max <= min",
                {"field": field, "index": index, "slab": {"min": str(lower), "max": str(upper)}},
            )
        normalized.append({"min": lower, "max": upper})

    normalized.sort(key=lambda s: (s["min"], s["max"]))

    previous: Optional[Dict[str, Decimal]] = None
    for slab in normalized:
        if previous is not None and slab["min"] < previous["max"]:
            raise OverlappingSlabError(
                {"min": str(previous["min"]), "max": str(previous["max"])},
                {"min": str(slab["min"]), "max": str(slab["max"])},
                field=field,
            )
        previous = slab
    return normalized


def validate_weight_rules(weight_rules: Iterable[Dict[str, Any]]) -> None:
    validate_slabs(
        ({"min": rule["min_weight"], "max": rule["max_weight"]} for rule in weight_rules),
        field="weight_rules",
    )


def validate_zone_slabs(zone_slabs: Iterable[Dict[str, Any]]) -> None:
    """Each zone's banded slabs are validated independently."""
    for entry in zone_slabs:
        validate_slabs(
            ({"min": slab["min_kg"], "max": slab["max_kg"]} for slab in entry.get("slabs") or []),
            field=f"zone_slabs[{entry.get('zone')}]",
        )
