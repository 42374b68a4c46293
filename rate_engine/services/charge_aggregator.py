"""
Charge Aggregator.

Combines scheme components with taxes and overheads:

    total = (base + weight + zone) x (1 + gst/100) x (1 + fuel/100)
    total = max(total, minimum_fare)
    total += cod_fee                     (COD shipments only, never floored)

A card with neither COD term set uses the configured default COD terms and
says so in the breakdown notes.

All arithmetic is carried unrounded in Decimal and the total is quantized
once (ROUND_HALF_UP, 0.01). Displayed components are rounded individually
from the same unrounded intermediates.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from rate_engine.config import settings
from rate_engine.models.courier_service import PaymentMode
from rate_engine.models.rate_card import RateCard
from rate_engine.schemas.quote import QuoteBreakdown
from rate_engine.services.pricing_schemes import SchemeCharges, to_decimal, ZERO

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class ChargeBreakdown:
    """Unrounded charge components for one quote."""
    def __init__(self, charges: SchemeCharges):
        self.charges = charges
        self.subtotal: Decimal = charges.subtotal
        self.gst: Decimal = ZERO
        self.cgst: Optional[Decimal] = None
        self.sgst: Optional[Decimal] = None
        self.igst: Optional[Decimal] = None
        self.fuel_surcharge: Decimal = ZERO
        self.minimum_fare_applied: bool = False
        self.minimum_fare_adjustment: Decimal = ZERO
        self.cod_fee: Decimal = ZERO
        self.unrounded_total: Decimal = ZERO
        self.notes: List[str] = []

    @property
    def total(self) -> Decimal:
        return quantize(self.unrounded_total)

    def to_schema(self) -> QuoteBreakdown:
        flags = self.charges.flags
        gst = quantize(self.gst)
        cgst = sgst = None
        if self.cgst is not None:
            # Halves are displayed so that they add back up to the displayed GST
            cgst = quantize(self.cgst)
            sgst = gst - cgst
        return QuoteBreakdown(
            base=quantize(self.charges.base_charge),
            weight_charge=quantize(self.charges.weight_charge),
            zone_charge=quantize(self.charges.zone_charge),
            subtotal=quantize(self.subtotal),
            gst=gst,
            cgst=cgst,
            sgst=sgst,
            igst=quantize(self.igst) if self.igst is not None else None,
            fuel_surcharge=quantize(self.fuel_surcharge),
            cod_fee=quantize(self.cod_fee),
            minimum_fare_applied=self.minimum_fare_applied,
            minimum_fare_adjustment=quantize(self.minimum_fare_adjustment),
            scheme=flags.scheme,
            zone_rule_matched=flags.zone_rule_matched,
            weight_rule_matched=flags.weight_rule_matched,
            base_rate_matched=flags.base_rate_matched,
            notes=list(flags.notes) + self.notes,
        )


def cod_terms(card: RateCard) -> Tuple[Decimal, Decimal, bool]:
    """(percentage, minimum, defaulted). Settings defaults apply only when the card sets neither term."""
    if card.cod_percentage is None and card.cod_minimum_charge is None:
        return (
            Decimal(str(settings.DEFAULT_COD_PERCENTAGE)),
            Decimal(str(settings.DEFAULT_COD_MINIMUM_CHARGE)),
            True,
        )
    return to_decimal(card.cod_percentage), to_decimal(card.cod_minimum_charge), False


def calculate_cod_fee(card: RateCard, order_value: Decimal) -> Decimal:
    """max(order_value x cod_percentage / 100, cod_minimum_charge)."""
    percentage, minimum, _ = cod_terms(card)
    return max(to_decimal(order_value) * percentage / HUNDRED, minimum)


def aggregate(
    charges: SchemeCharges,
    card: RateCard,
    payment_mode: PaymentMode = PaymentMode.PREPAID,
    order_value: Decimal = ZERO,
    origin_state: Optional[str] = None,
    destination_state: Optional[str] = None,
) -> ChargeBreakdown:
    breakdown = ChargeBreakdown(charges)
    subtotal = breakdown.subtotal

    # GST
    breakdown.gst = subtotal * to_decimal(card.gst) / HUNDRED
    if origin_state and destination_state:
        if origin_state.strip().lower() == destination_state.strip().lower():
            breakdown.cgst = breakdown.gst / 2
            breakdown.sgst = breakdown.gst / 2
        else:
            breakdown.igst = breakdown.gst
    after_gst = subtotal + breakdown.gst

    # Fuel surcharge compounds on the GST-inclusive amount
    breakdown.fuel_surcharge = after_gst * to_decimal(card.fuel_surcharge) / HUNDRED
    total = after_gst + breakdown.fuel_surcharge

    # Minimum fare floor
    minimum_fare = to_decimal(card.minimum_fare)
    if total < minimum_fare:
        breakdown.minimum_fare_applied = True
        breakdown.minimum_fare_adjustment = minimum_fare - total
        total = minimum_fare

    # COD fee is added after the floor
    if PaymentMode(payment_mode) == PaymentMode.COD:
        percentage, minimum, defaulted = cod_terms(card)
        if defaulted:
            breakdown.notes.append(
                f"COD terms not configured, default {percentage}%/{minimum} minimum applied"
            )
        breakdown.cod_fee = calculate_cod_fee(card, order_value)
        total += breakdown.cod_fee

    breakdown.unrounded_total = total
    return breakdown
