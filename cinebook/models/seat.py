"""
Seat model: the per-screening seat inventory.
"""

import enum
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .screening import Screening


class SeatClass(enum.Enum):
    """Enumeration for seat classes."""
    STANDARD = "STANDARD"
    DELUXE = "DELUXE"


class Seat(Base):
    """
    A seat of one screening.

    ``reserved`` is the only availability flag; nothing else on the row says
    whether the seat can be sold.
    """

    __tablename__ = "seats"

    screening_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("screenings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Seat location information
    label: Mapped[str] = mapped_column(String(10), nullable=False)
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    column_number: Mapped[int] = mapped_column(Integer, nullable=False)

    seat_class: Mapped[SeatClass] = mapped_column(
        Enum(SeatClass, name="seat_class"),
        default=SeatClass.STANDARD,
        nullable=False
    )

    reserved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    screening: Mapped["Screening"] = relationship("Screening", back_populates="seats")

    __table_args__ = (
        UniqueConstraint("screening_id", "label", name="uq_seats_screening_label"),
        UniqueConstraint("screening_id", "row_number", "column_number", name="uq_seats_screening_position"),
    )

    def __repr__(self) -> str:
        return (
            f"<Seat(id={self.id}, screening_id={self.screening_id}, "
            f"label='{self.label}', reserved={self.reserved})>"
        )
