"""Booking engine services."""

from .seat_inventory import SeatInventory
from .promo_code_ledger import PromoCodeLedger
from .pricing_engine import PricingEngine, PriceBreakdown
from .catalog_service import CatalogService
from .reservation_workflow import ReservationWorkflow
from .payment_service import PaymentService, SimulatedPaymentGateway
from .ticket_service import TicketService

__all__ = [
    "SeatInventory",
    "PromoCodeLedger",
    "PricingEngine",
    "PriceBreakdown",
    "CatalogService",
    "ReservationWorkflow",
    "PaymentService",
    "SimulatedPaymentGateway",
    "TicketService",
]
