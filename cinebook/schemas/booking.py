"""
Schemas for the checkout workflow.
"""

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from .purchaser import Purchaser


class BookingState(str, enum.Enum):
    """States of a checkout session."""
    EMPTY = "EMPTY"
    SEATS_SELECTED = "SEATS_SELECTED"
    ITEMS_SELECTED = "ITEMS_SELECTED"
    FINALIZED = "FINALIZED"
    ABORTED = "ABORTED"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingState.FINALIZED, BookingState.ABORTED)


class ConcessionSelection(BaseModel):
    """A concession picked during checkout."""
    model_config = ConfigDict(frozen=True)

    concession_id: UUID
    quantity: int = Field(..., ge=1, le=99)


class BookingSession(BaseModel):
    """
    Caller-owned checkout context.

    Each customer's checkout holds its own instance and passes it to every
    workflow call; the workflow only changes it through explicit transitions.
    Nothing here is persisted until finalize.
    """

    session_id: UUID = Field(default_factory=uuid4)
    purchaser: Purchaser
    screening_id: UUID
    state: BookingState = BookingState.EMPTY
    seat_ids: List[UUID] = Field(default_factory=list)
    concessions: List[ConcessionSelection] = Field(default_factory=list)
    reservation_id: Optional[UUID] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_seats(self) -> bool:
        return bool(self.seat_ids)


class ReservationSummary(BaseModel):
    """Read model for a persisted reservation."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    screening_id: UUID
    purchaser: Purchaser
    seat_ids: List[UUID] = []
    subtotal_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid: bool
    created_at: datetime
