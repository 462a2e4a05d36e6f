"""
Database models for the CineBook booking engine.
"""

from .base import Base
from .movie import Movie
from .cinema import Cinema
from .screening import Screening
from .concession import Concession
from .seat import Seat, SeatClass
from .promo_code import PromoCode, DiscountType
from .reservation import Reservation
from .reservation_seat import ReservationSeat
from .reservation_concession import ReservationConcession
from .payment import Payment, PaymentMethod
from .ticket import Ticket

__all__ = [
    "Base",
    "Movie",
    "Cinema",
    "Screening",
    "Concession",
    "Seat",
    "SeatClass",
    "PromoCode",
    "DiscountType",
    "Reservation",
    "ReservationSeat",
    "ReservationConcession",
    "Payment",
    "PaymentMethod",
    "Ticket",
]
