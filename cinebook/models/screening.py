"""
Screening model: a movie shown in a cinema at a given time.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Numeric, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .cinema import Cinema
    from .movie import Movie
    from .seat import Seat


class Screening(Base):
    """Screening with its standard and deluxe seat prices."""

    __tablename__ = "screenings"

    movie_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("movies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    cinema_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("cinemas.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # Pricing
    standard_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    deluxe_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    movie: Mapped["Movie"] = relationship("Movie", back_populates="screenings")
    cinema: Mapped["Cinema"] = relationship("Cinema", back_populates="screenings")
    seats: Mapped[List["Seat"]] = relationship("Seat", back_populates="screening")

    __table_args__ = (
        CheckConstraint("standard_price >= 0", name="ck_screenings_standard_price_non_negative"),
        CheckConstraint("deluxe_price >= 0", name="ck_screenings_deluxe_price_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Screening(id={self.id}, movie_id={self.movie_id}, "
            f"cinema_id={self.cinema_id}, start={self.start_time})>"
        )
