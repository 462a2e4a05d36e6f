"""
ReservationSeat model for linking reservations to specific seats.
"""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .reservation import Reservation
    from .seat import Seat


class ReservationSeat(Base):
    """ReservationSeat model for linking reservations to specific seats."""

    __tablename__ = "reservation_seats"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    seat_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("seats.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    reservation: Mapped["Reservation"] = relationship("Reservation", back_populates="reservation_seats")
    seat: Mapped["Seat"] = relationship("Seat")

    # A seat belongs to at most one live reservation.
    __table_args__ = (
        UniqueConstraint("reservation_id", "seat_id", name="uq_reservation_seats_reservation_seat"),
        UniqueConstraint("seat_id", name="uq_reservation_seats_seat"),
    )

    def __repr__(self) -> str:
        return f"<ReservationSeat(reservation_id={self.reservation_id}, seat_id={self.seat_id})>"
