"""
Reservation model: a finalized checkout for one screening.
"""

import uuid
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from ..schemas.purchaser import GuestPurchaser, Purchaser, RegisteredPurchaser

if TYPE_CHECKING:
    from .screening import Screening
    from .reservation_seat import ReservationSeat
    from .reservation_concession import ReservationConcession
    from .payment import Payment
    from .ticket import Ticket
    from .promo_code import PromoCode


class Reservation(Base):
    """
    Persisted booking linking a purchaser, a screening, seats and concessions.

    Exactly one of ``user_id`` or the guest contact triple is set; callers go
    through :attr:`purchaser` rather than the nullable columns.
    """

    __tablename__ = "reservations"

    # Purchaser identity
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    guest_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    screening_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("screenings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    promo_code_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("promo_codes.id", ondelete="SET NULL"),
        nullable=True
    )

    # Amounts frozen at finalize time
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    screening: Mapped["Screening"] = relationship("Screening")
    promo_code: Mapped[Optional["PromoCode"]] = relationship("PromoCode")

    reservation_seats: Mapped[List["ReservationSeat"]] = relationship(
        "ReservationSeat",
        back_populates="reservation",
        cascade="all, delete-orphan"
    )

    reservation_concessions: Mapped[List["ReservationConcession"]] = relationship(
        "ReservationConcession",
        back_populates="reservation",
        cascade="all, delete-orphan"
    )

    payments: Mapped[List["Payment"]] = relationship(
        "Payment",
        back_populates="reservation",
        cascade="all, delete-orphan"
    )

    tickets: Mapped[List["Ticket"]] = relationship(
        "Ticket",
        back_populates="reservation",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NOT NULL AND guest_name IS NULL AND guest_email IS NULL AND guest_phone IS NULL) OR "
            "(user_id IS NULL AND guest_name IS NOT NULL AND guest_email IS NOT NULL AND guest_phone IS NOT NULL)",
            name="ck_reservations_single_purchaser"
        ),
        CheckConstraint("total_amount >= 0", name="ck_reservations_total_amount_non_negative"),
        CheckConstraint("discount_amount >= 0", name="ck_reservations_discount_non_negative"),
    )

    @property
    def purchaser(self) -> Purchaser:
        """The purchaser as a tagged value instead of nullable columns."""
        if self.user_id is not None:
            return RegisteredPurchaser(user_id=self.user_id)
        return GuestPurchaser(name=self.guest_name, email=self.guest_email, phone=self.guest_phone)

    @purchaser.setter
    def purchaser(self, value: Purchaser) -> None:
        if isinstance(value, RegisteredPurchaser):
            self.user_id = value.user_id
            self.guest_name = self.guest_email = self.guest_phone = None
        else:
            self.user_id = None
            self.guest_name = value.name
            self.guest_email = str(value.email)
            self.guest_phone = value.phone

    @property
    def seat_ids(self) -> List[uuid.UUID]:
        return [rs.seat_id for rs in self.reservation_seats]

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, screening_id={self.screening_id}, "
            f"total={self.total_amount}, paid={self.paid})>"
        )
