"""
Pricing Scheme Evaluators.

A rate card prices the zone component with exactly one of three schemes:

1. Zone-Additive:    flat surcharge per zone on top of base + weight charge
2. Zone-Multiplier:  base price scaled by a per-zone multiplier
3. Zone-Banded-Slab: per-zone weight bands with a per-kg tail (service-scoped cards only)

Each evaluator returns the unrounded components separately. Totals, taxes and
rounding belong to the charge aggregator.
"""
import logging
import warnings
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple, Union

from rate_engine.config import settings
from rate_engine.core.errors import (
    AmbiguousPricingSchemeError, MultipleSchemesWarning, ValidationError,
)
from rate_engine.models.rate_card import RateCard, RoundingMode, WeightBasis

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """JSON documents store amounts as strings or numbers; normalize to Decimal."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def same_text(left: Optional[str], right: Optional[str]) -> bool:
    return (left or "").strip().lower() == (right or "").strip().lower()


# ============================================
# SCHEME VARIANTS
# ============================================

@dataclass(frozen=True)
class ZoneAdditiveScheme:
    rules: List[dict]
    name: str = "zone_additive"


@dataclass(frozen=True)
class ZoneMultiplierScheme:
    multipliers: Dict[str, Any]
    name: str = "zone_multiplier"


@dataclass(frozen=True)
class BandedSlabScheme:
    zone_slabs: List[dict]
    calculation: Dict[str, Any]
    name: str = "zone_banded_slab"


PricingScheme = Union[ZoneAdditiveScheme, ZoneMultiplierScheme, BandedSlabScheme]


@dataclass
class SchemeFlags:
    scheme: str
    zone_rule_matched: bool = True
    weight_rule_matched: bool = True
    base_rate_matched: bool = True
    estimated: bool = False
    notes: List[str] = field(default_factory=list)


@dataclass
class SchemeCharges:
    """Unrounded components produced by one scheme evaluation."""
    base_charge: Decimal
    weight_charge: Decimal
    zone_charge: Decimal
    chargeable_weight: Decimal
    flags: SchemeFlags

    @property
    def subtotal(self) -> Decimal:
        return self.base_charge + self.weight_charge + self.zone_charge


@dataclass
class PricingInput:
    """What a scheme needs to know about the shipment and the courier service."""
    carrier: str
    service_type: str
    zone: str
    actual_weight: Decimal
    dimensions: Optional[Tuple[Decimal, Decimal, Decimal]] = None
    volumetric_divisor: int = settings.VOLUMETRIC_DIVISOR


# ============================================
# SCHEME DETECTION
# ============================================

def populated_schemes(card: RateCard) -> List[str]:
    schemes = []
    if card.zone_rules:
        schemes.append(ZoneAdditiveScheme.name)
    if card.zone_multipliers:
        schemes.append(ZoneMultiplierScheme.name)
    if card.zone_slabs:
        schemes.append(BandedSlabScheme.name)
    return schemes


def detect_scheme(card: RateCard) -> PricingScheme:
    """
    Classify a rate card into its pricing scheme.

    Cards with more than one scheme populated are legacy data. They are
    reported through MultipleSchemesWarning and rejected rather than priced
    under a guessed precedence.
    """
    schemes = populated_schemes(card)
    if len(schemes) > 1:
        message = f"Rate card {card.id} has multiple pricing schemes: {', '.join(schemes)}"
        warnings.warn(message, MultipleSchemesWarning, stacklevel=2)
        logger.warning(message)
        raise AmbiguousPricingSchemeError(card.id, schemes)

    if card.zone_slabs:
        if card.service_id is None:
            raise ValidationError(
                "Banded slab pricing is only allowed on service-scoped rate cards",
                {"rate_card_id": str(card.id), "field": "zone_slabs"},
            )
        return BandedSlabScheme(zone_slabs=card.zone_slabs, calculation=card.calculation or {})
    if card.zone_multipliers:
        return ZoneMultiplierScheme(multipliers=card.zone_multipliers)
    # No zone scheme at all prices the zone component as zero
    return ZoneAdditiveScheme(rules=card.zone_rules or [])


# ============================================
# WEIGHT
# ============================================

def volumetric_weight(dimensions: Tuple[Decimal, Decimal, Decimal], divisor: int) -> Decimal:
    length, width, height = (to_decimal(d) for d in dimensions)
    return (length * width * height) / Decimal(divisor)


def chargeable_weight(
    actual_weight: Decimal,
    dimensions: Optional[Tuple[Decimal, Decimal, Decimal]] = None,
    divisor: Optional[int] = None,
    basis: WeightBasis = WeightBasis.MAX,
) -> Decimal:
    """Weight to charge on: actual, volumetric (L x W x H / divisor) or the larger of the two."""
    actual = to_decimal(actual_weight)
    if not dimensions or not all(dimensions):
        return actual

    volumetric = volumetric_weight(dimensions, divisor or settings.VOLUMETRIC_DIVISOR)
    if basis == WeightBasis.ACTUAL:
        return actual
    if basis == WeightBasis.VOLUMETRIC:
        return volumetric
    return max(actual, volumetric)


def round_weight(weight: Decimal, unit: Decimal, mode: RoundingMode) -> Decimal:
    """Snap weight to a multiple of unit."""
    rounding = {
        RoundingMode.CEIL: ROUND_CEILING,
        RoundingMode.FLOOR: ROUND_FLOOR,
        RoundingMode.NEAREST: ROUND_HALF_UP,
    }[RoundingMode(mode)]
    return (weight / unit).to_integral_value(rounding=rounding) * unit


# ============================================
# RULE MATCHING
# ============================================

def match_base_rate(
    base_rates: List[dict],
    carrier: str,
    service_type: str,
    weight: Decimal,
) -> Tuple[Optional[dict], bool]:
    """
    Find the base rate whose [min_weight, max_weight] contains weight.

    Returns (entry, estimated). When weight exceeds every range the entry
    with the largest range is returned and estimated is True.
    """
    candidates = sorted(
        (r for r in base_rates or [] if same_text(r.get("carrier"), carrier) and same_text(r.get("service_type"), service_type)),
        key=lambda r: (to_decimal(r.get("min_weight")), to_decimal(r.get("max_weight"))),
    )
    if not candidates:
        return None, False

    for entry in candidates:
        if to_decimal(entry.get("min_weight")) <= weight <= to_decimal(entry.get("max_weight")):
            return entry, False

    largest = max(candidates, key=lambda r: to_decimal(r.get("max_weight")))
    if weight > to_decimal(largest.get("max_weight")):
        return largest, True
    return None, False


def _scoped_matches(rules: List[dict], carrier: str, service_type: str) -> List[dict]:
    """Rules applicable to a carrier/service, carrier-specific ones first."""
    applicable = [
        r for r in rules or []
        if (not r.get("carrier") or same_text(r.get("carrier"), carrier))
        and (not r.get("service_type") or same_text(r.get("service_type"), service_type))
    ]
    return sorted(applicable, key=lambda r: (not r.get("carrier"), not r.get("service_type")))


def match_weight_rule(
    weight_rules: List[dict],
    carrier: str,
    service_type: str,
    weight: Decimal,
) -> Optional[dict]:
    for rule in _scoped_matches(weight_rules, carrier, service_type):
        if to_decimal(rule.get("min_weight")) <= weight < to_decimal(rule.get("max_weight")):
            return rule
    return None


def _base_and_weight(card: RateCard, inp: PricingInput, weight: Decimal, flags: SchemeFlags) -> Tuple[Decimal, Decimal]:
    base_rate, estimated = match_base_rate(card.base_rates, inp.carrier, inp.service_type, weight)
    if base_rate is None:
        flags.base_rate_matched = False
        flags.notes.append(f"No base rate for {inp.carrier}/{inp.service_type} at {weight} kg")
        base = ZERO
    else:
        base = to_decimal(base_rate.get("base_price"))
        if estimated:
            flags.estimated = True
            flags.notes.append(
                f"Weight {weight} kg exceeds every base rate range, "
                f"priced on the {base_rate.get('min_weight')}-{base_rate.get('max_weight')} kg rate"
            )

    weight_rule = match_weight_rule(card.weight_rules, inp.carrier, inp.service_type, weight)
    if weight_rule is None:
        flags.weight_rule_matched = False
        flags.notes.append(f"No weight rule covers {weight} kg")
        weight_charge = ZERO
    else:
        weight_charge = weight * to_decimal(weight_rule.get("price_per_kg"))
    return base, weight_charge


# ============================================
# EVALUATORS
# ============================================

def evaluate_zone_additive(card: RateCard, scheme: ZoneAdditiveScheme, inp: PricingInput) -> SchemeCharges:
    flags = SchemeFlags(scheme=scheme.name)
    weight = chargeable_weight(inp.actual_weight, inp.dimensions, inp.volumetric_divisor)
    base, weight_charge = _base_and_weight(card, inp, weight, flags)

    zone_rule = next(
        (r for r in _scoped_matches(scheme.rules, inp.carrier, inp.service_type) if r.get("zone") == inp.zone),
        None,
    )
    if zone_rule is None:
        flags.zone_rule_matched = False
        flags.notes.append(f"No zone rule for {inp.zone}")
        logger.info("Rate card %s has no zone rule for %s, zone charge is 0", card.id, inp.zone)
        zone_charge = ZERO
    else:
        zone_charge = to_decimal(zone_rule.get("additional_price"))

    return SchemeCharges(base, weight_charge, zone_charge, weight, flags)


def evaluate_zone_multiplier(card: RateCard, scheme: ZoneMultiplierScheme, inp: PricingInput) -> SchemeCharges:
    flags = SchemeFlags(scheme=scheme.name)
    weight = chargeable_weight(inp.actual_weight, inp.dimensions, inp.volumetric_divisor)
    base, weight_charge = _base_and_weight(card, inp, weight, flags)

    if inp.zone in scheme.multipliers:
        multiplier = to_decimal(scheme.multipliers[inp.zone])
    else:
        flags.zone_rule_matched = False
        flags.notes.append(f"No multiplier for {inp.zone}, using 1.0")
        logger.info("Rate card %s has no multiplier for %s", card.id, inp.zone)
        multiplier = ONE

    # Reported as the delta over base so the aggregator can sum components
    zone_charge = base * multiplier - base
    return SchemeCharges(base, weight_charge, zone_charge, weight, flags)


def evaluate_banded_slab(card: RateCard, scheme: BandedSlabScheme, inp: PricingInput) -> SchemeCharges:
    flags = SchemeFlags(scheme=scheme.name)
    calculation = scheme.calculation
    basis = WeightBasis(calculation.get("weight_basis") or WeightBasis.MAX.value)
    divisor = calculation.get("dim_divisor") or inp.volumetric_divisor
    raw_weight = chargeable_weight(inp.actual_weight, inp.dimensions, divisor, basis)

    unit = to_decimal(calculation.get("rounding_unit_kg"), Decimal("0.5"))
    mode = calculation.get("rounding_mode") or RoundingMode.CEIL.value
    weight = round_weight(raw_weight, unit, mode)

    entry = next((z for z in scheme.zone_slabs if z.get("zone") == inp.zone), None)
    if entry is None or not entry.get("slabs"):
        flags.zone_rule_matched = False
        flags.base_rate_matched = False
        flags.notes.append(f"No slabs configured for {inp.zone}")
        logger.info("Rate card %s has no banded slabs for %s", card.id, inp.zone)
        return SchemeCharges(ZERO, ZERO, ZERO, weight, flags)

    slabs = sorted(entry["slabs"], key=lambda s: to_decimal(s.get("min_kg")))
    last = slabs[-1]
    weight_charge = ZERO

    if weight >= to_decimal(last.get("max_kg")):
        base = to_decimal(last.get("charge"))
        extra = weight - to_decimal(last.get("max_kg"))
        weight_charge = extra * to_decimal(entry.get("additional_per_kg"))
        if extra > 0:
            flags.notes.append(f"{extra} kg above the last slab charged per kg")
    else:
        # First slab whose upper bound lies above the weight; covers gaps below a slab too
        slab = next(s for s in slabs if weight < to_decimal(s.get("max_kg")))
        base = to_decimal(slab.get("charge"))

    return SchemeCharges(base, weight_charge, ZERO, weight, flags)


def evaluate(card: RateCard, inp: PricingInput) -> SchemeCharges:
    """Detect the card's scheme and evaluate it for one courier service."""
    scheme = detect_scheme(card)
    match scheme:
        case ZoneAdditiveScheme():
            return evaluate_zone_additive(card, scheme, inp)
        case ZoneMultiplierScheme():
            return evaluate_zone_multiplier(card, scheme, inp)
        case BandedSlabScheme():
            return evaluate_banded_slab(card, scheme, inp)
