"""
PromoCode model for discount codes and their usage counters.
"""

import enum
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from ..utils.exceptions import PromoRejection


class DiscountType(enum.Enum):
    """Enumeration for discount types."""
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


class PromoCode(Base):
    """Promo code definition; ``current_uses`` only ever grows."""

    __tablename__ = "promo_codes"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    discount_type: Mapped[DiscountType] = mapped_column(Enum(DiscountType, name="discount_type"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Inclusive validity window
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[date] = mapped_column(Date, nullable=False)

    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_uses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_purchase_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("discount_amount > 0", name="ck_promo_codes_discount_positive"),
        CheckConstraint(
            "discount_type <> 'PERCENTAGE' OR discount_amount <= 100",
            name="ck_promo_codes_percentage_range"
        ),
        CheckConstraint("valid_from <= valid_until", name="ck_promo_codes_window_order"),
        CheckConstraint("current_uses >= 0", name="ck_promo_codes_uses_non_negative"),
        CheckConstraint("max_uses IS NULL OR current_uses <= max_uses", name="ck_promo_codes_uses_within_cap"),
        CheckConstraint("min_purchase_amount >= 0", name="ck_promo_codes_min_purchase_non_negative"),
    )

    @property
    def uses_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses

    def rejection_for(self, as_of: date, purchase_amount: Optional[Decimal] = None) -> Optional[PromoRejection]:
        """
        Return the first failing check, or None if the code may be used.

        The minimum-purchase check is skipped when no amount is given.
        """
        if not self.is_active:
            return PromoRejection.INACTIVE
        if as_of < self.valid_from:
            return PromoRejection.NOT_YET_VALID
        if as_of > self.valid_until:
            return PromoRejection.EXPIRED
        if self.uses_exhausted:
            return PromoRejection.MAX_USES_REACHED
        if purchase_amount is not None and purchase_amount < self.min_purchase_amount:
            return PromoRejection.BELOW_MINIMUM_PURCHASE
        return None

    def calculate_discount(self, purchase_amount: Decimal) -> Decimal:
        """Discount for a purchase amount; never more than the amount itself."""
        if purchase_amount <= 0:
            return Decimal("0")
        if self.discount_type == DiscountType.PERCENTAGE:
            discount = purchase_amount * (Decimal(self.discount_amount) / Decimal(100))
        else:
            discount = Decimal(self.discount_amount)
        return min(discount, purchase_amount)

    def __repr__(self) -> str:
        return f"<PromoCode(code='{self.code}', uses={self.current_uses}/{self.max_uses})>"
