"""
Payload handed to the Fulfillment Service once tickets exist.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class FulfillmentTicket(BaseModel):
    """One ticket line for rendering."""
    ticket_code: str
    seat_label: str
    seat_class: str


class FulfillmentConcession(BaseModel):
    """One concession line for the receipt."""
    name: str
    quantity: int
    unit_price: Decimal


class FulfillmentPayload(BaseModel):
    """Everything ticket rendering, e-mail and printing need."""
    reservation_id: UUID
    screening_id: UUID
    screening_start: datetime
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    user_id: Optional[UUID] = None
    tickets: List[FulfillmentTicket]
    concessions: List[FulfillmentConcession] = []
    subtotal_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    transaction_reference: Optional[str] = None
    issued_at: datetime
