"""
Concession model for snacks and drinks sold with tickets.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Concession(Base):
    """A purchasable item that can be attached to a reservation."""

    __tablename__ = "concessions"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_concessions_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Concession(id={self.id}, name='{self.name}', price={self.price})>"
