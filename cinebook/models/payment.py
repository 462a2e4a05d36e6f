"""
Payment model recording a charge against a reservation.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .reservation import Reservation


class PaymentMethod(enum.Enum):
    """Enumeration for accepted payment methods."""
    GCASH = "GCASH"
    PAYMAYA = "PAYMAYA"
    CREDIT_CARD = "CREDIT_CARD"

    @property
    def display_name(self) -> str:
        return {
            PaymentMethod.GCASH: "GCash",
            PaymentMethod.PAYMAYA: "PayMaya",
            PaymentMethod.CREDIT_CARD: "Credit Card",
        }[self]


class Payment(Base):
    """Payment attempt for a reservation, pending until the gateway answers."""

    __tablename__ = "payments"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod, name="payment_method"), nullable=False)
    transaction_reference: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # NULL while the gateway is being asked; True or False once settled
    successful: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    reservation: Mapped["Reservation"] = relationship("Reservation", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, reservation_id={self.reservation_id}, "
            f"ref='{self.transaction_reference}', successful={self.successful})>"
        )
