"""
ReservationConcession model for concessions attached to a reservation.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .concession import Concession
    from .reservation import Reservation


class ReservationConcession(Base):
    """A (concession, quantity) line of a reservation."""

    __tablename__ = "reservation_concessions"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    concession_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("concessions.id", ondelete="RESTRICT"),
        nullable=False
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Price per item at finalize time
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    reservation: Mapped["Reservation"] = relationship("Reservation", back_populates="reservation_concessions")
    concession: Mapped["Concession"] = relationship("Concession")

    __table_args__ = (
        UniqueConstraint("reservation_id", "concession_id", name="uq_reservation_concessions_line"),
        CheckConstraint("quantity >= 1", name="ck_reservation_concessions_quantity_positive"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReservationConcession(reservation_id={self.reservation_id}, "
            f"concession_id={self.concession_id}, quantity={self.quantity})>"
        )
