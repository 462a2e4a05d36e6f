"""
Pydantic schemas for seat inventory views.
"""

from typing import Dict, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..models.seat import SeatClass


class SeatView(BaseModel):
    """One seat as shown on a seat map."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    label: str
    row_number: int
    column_number: int
    seat_class: SeatClass
    reserved: bool


class SeatMap(BaseModel):
    """Seats of a screening grouped by row label, with availability totals."""
    screening_id: UUID
    rows: Dict[str, List[SeatView]]
    total_seats: int
    available_seats: int
    reserved_seats: int
