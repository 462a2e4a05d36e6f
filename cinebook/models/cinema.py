"""
Cinema model describing a hall and its seating layout.
"""

from typing import List, TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .screening import Screening


class Cinema(Base):
    """Cinema hall; its layout is copied into seats when a screening is created."""

    __tablename__ = "cinemas"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Seating layout
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False)
    seats_per_row: Mapped[int] = mapped_column(Integer, nullable=False)
    has_deluxe_seats: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deluxe_rows: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    screenings: Mapped[List["Screening"]] = relationship("Screening", back_populates="cinema")

    __table_args__ = (
        CheckConstraint("total_rows > 0", name="ck_cinemas_rows_positive"),
        CheckConstraint("seats_per_row > 0", name="ck_cinemas_seats_per_row_positive"),
        CheckConstraint("deluxe_rows >= 0 AND deluxe_rows <= total_rows", name="ck_cinemas_deluxe_rows_range"),
    )

    @property
    def capacity(self) -> int:
        """Total number of seats generated for each screening."""
        return self.total_rows * self.seats_per_row

    def __repr__(self) -> str:
        return (
            f"<Cinema(id={self.id}, name='{self.name}', "
            f"layout={self.total_rows}x{self.seats_per_row})>"
        )
