"""
Ticket model: one entry pass per reserved seat.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .reservation import Reservation
    from .seat import Seat


class Ticket(Base):
    """Entry ticket for one seat of a paid reservation."""

    __tablename__ = "tickets"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    seat_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("seats.id", ondelete="RESTRICT"),
        nullable=False
    )

    ticket_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reservation: Mapped["Reservation"] = relationship("Reservation", back_populates="tickets")
    seat: Mapped["Seat"] = relationship("Seat")

    __table_args__ = (
        UniqueConstraint("reservation_id", "seat_id", name="uq_tickets_reservation_seat"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(code='{self.ticket_code}', seat_id={self.seat_id}, used={self.used})>"
