"""
Pricing engine: pure computation of a booking total.

All arithmetic stays in full Decimal precision; amounts are only quantized to
two places when a breakdown is rounded for display or persistence.
"""

from dataclasses import dataclass, fields, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol, Sequence, Tuple

from ..config import get_settings
from ..models.seat import SeatClass

CENT = Decimal("0.01")
ZERO = Decimal("0")


def quantize_currency(amount: Decimal) -> Decimal:
    """Round an amount to centavos, half up."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class PricedSeat(Protocol):
    seat_class: SeatClass


class PricedScreening(Protocol):
    standard_price: Decimal
    deluxe_price: Decimal


class PricedConcession(Protocol):
    price: Decimal


class Discount(Protocol):
    def calculate_discount(self, purchase_amount: Decimal) -> Decimal: ...


@dataclass(frozen=True)
class PriceBreakdown:
    """Every intermediate amount of a price calculation."""

    seat_subtotal: Decimal
    concession_subtotal: Decimal
    discount: Decimal
    tax_rate: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.seat_subtotal + self.concession_subtotal

    @property
    def pre_tax(self) -> Decimal:
        """Subtotal after discount, floored at zero."""
        return max(self.subtotal - self.discount, ZERO)

    @property
    def tax(self) -> Decimal:
        return self.pre_tax * self.tax_rate

    @property
    def total(self) -> Decimal:
        return self.pre_tax + self.tax

    def rounded(self) -> "RoundedPrice":
        return RoundedPrice(
            seat_subtotal=quantize_currency(self.seat_subtotal),
            concession_subtotal=quantize_currency(self.concession_subtotal),
            subtotal=quantize_currency(self.subtotal),
            discount=quantize_currency(self.discount),
            pre_tax=quantize_currency(self.pre_tax),
            tax=quantize_currency(self.tax),
            total=quantize_currency(self.total)
        )


@dataclass(frozen=True)
class RoundedPrice:
    """A breakdown with every amount quantized to two places."""

    seat_subtotal: Decimal
    concession_subtotal: Decimal
    subtotal: Decimal
    discount: Decimal
    pre_tax: Decimal
    tax: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {field.name: getattr(self, field.name) for field in fields(self)}


class PricingEngine:
    """Computes totals from seats, concessions, a screening and an optional promo."""

    def __init__(self, tax_rate: Optional[Decimal] = None):
        self.tax_rate = Decimal(tax_rate if tax_rate is not None else get_settings().tax_rate)

    def seat_price(self, seat: PricedSeat, screening: PricedScreening) -> Decimal:
        if seat.seat_class == SeatClass.DELUXE:
            return Decimal(screening.deluxe_price)
        return Decimal(screening.standard_price)

    def price(
        self,
        seats: Sequence[PricedSeat],
        concessions: Iterable[Tuple[PricedConcession, int]],
        screening: PricedScreening,
        promo: Optional[Discount] = None
    ) -> PriceBreakdown:
        """
        Price a selection.

        The promo discount is computed against the pre-tax subtotal; tax is
        applied to what remains after the discount.
        """
        seat_subtotal = sum((self.seat_price(seat, screening) for seat in seats), ZERO)
        concession_subtotal = sum(
            (Decimal(item.price) * quantity for item, quantity in concessions if quantity > 0),
            ZERO
        )

        breakdown = PriceBreakdown(
            seat_subtotal=seat_subtotal,
            concession_subtotal=concession_subtotal,
            discount=ZERO,
            tax_rate=self.tax_rate
        )
        if promo is not None:
            discount = max(Decimal(promo.calculate_discount(breakdown.subtotal)), ZERO)
            breakdown = replace(breakdown, discount=min(discount, breakdown.subtotal))
        return breakdown
