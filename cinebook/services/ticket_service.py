"""
Ticket issuance and entry validation.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..config import Settings, get_settings
from ..database import AbortTransaction, execute_atomically, read_session
from ..models.payment import Payment, PaymentMethod
from ..models.reservation import Reservation
from ..models.reservation_concession import ReservationConcession
from ..models.reservation_seat import ReservationSeat
from ..models.ticket import Ticket
from ..schemas.fulfillment import FulfillmentConcession, FulfillmentPayload, FulfillmentTicket
from ..schemas.purchaser import GuestPurchaser
from ..tasks.fulfillment import FulfillmentPublisher
from ..utils.exceptions import (
    CinebookError,
    ReservationNotFoundError,
    ReservationNotPaidError,
    TicketAlreadyUsedError,
    TicketNotFoundError,
)
from ..utils.logging_config import log_business_event
from ..utils.result import Ok, Result
from .payment_service import PaymentService, generate_reference

logger = logging.getLogger(__name__)


class TicketService:
    """Service for issuing tickets of paid reservations and validating them at entry."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        payments: PaymentService,
        publisher: Optional[FulfillmentPublisher] = None,
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory
        self.payments = payments
        self.publisher = publisher
        self.settings = settings or get_settings()

    async def issue_tickets(self, reservation_id: UUID) -> Result[List[Ticket], CinebookError]:
        """
        Issue one ticket per reserved seat of a paid reservation.

        Issuing again returns the tickets that already exist. The reservation
        row is locked while checking, so concurrent calls cannot both insert.
        Newly issued tickets are published for fulfillment after commit.
        """

        async def work(db: AsyncSession) -> Tuple[List[Ticket], Optional[FulfillmentPayload]]:
            result = await db.execute(
                select(Reservation)
                .options(
                    selectinload(Reservation.reservation_seats).selectinload(ReservationSeat.seat),
                    selectinload(Reservation.reservation_concessions).selectinload(ReservationConcession.concession),
                    selectinload(Reservation.screening),
                )
                .where(Reservation.id == reservation_id)
                .with_for_update(of=Reservation)
                .execution_options(populate_existing=True)
            )
            reservation = result.scalar_one_or_none()
            if reservation is None:
                raise AbortTransaction(ReservationNotFoundError(str(reservation_id)))
            if not reservation.paid:
                raise AbortTransaction(ReservationNotPaidError(str(reservation_id)))

            existing = await self._tickets_for(db, reservation_id)
            if existing:
                return existing, None

            issued_at = datetime.now(timezone.utc)
            seats = sorted(
                (rs.seat for rs in reservation.reservation_seats),
                key=lambda seat: (seat.row_number, seat.column_number)
            )
            tickets = [
                Ticket(
                    reservation_id=reservation_id,
                    seat_id=seat.id,
                    ticket_code=generate_reference(self.settings.ticket_code_prefix, issued_at),
                    used=False,
                    issued_at=issued_at
                )
                for seat in seats
            ]
            db.add_all(tickets)
            await db.flush()

            payment = await self._successful_payment_reference(db, reservation_id)
            payload = self._payload(reservation, tickets, seats, payment, issued_at)
            return tickets, payload

        outcome = await execute_atomically(
            self.session_factory,
            work,
            operation="issue_tickets",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_err():
            return outcome

        tickets, payload = outcome.value
        if payload is None:
            logger.info(f"Tickets for reservation {reservation_id} were already issued")
            return Ok(tickets)

        log_business_event(
            "tickets_issued",
            {"reservation_id": str(reservation_id), "ticket_count": len(tickets)}
        )
        if self.publisher is not None:
            await self.publisher.publish(payload)
        return Ok(tickets)

    async def checkout(
        self,
        reservation_id: UUID,
        method: PaymentMethod
    ) -> Result[List[Ticket], CinebookError]:
        """Pay for a reservation and issue its tickets."""
        paid = await self.payments.process_payment(reservation_id, method)
        if paid.is_err():
            return paid
        return await self.issue_tickets(reservation_id)

    async def get_tickets(self, reservation_id: UUID) -> List[Ticket]:
        async with read_session(self.session_factory) as db:
            return await self._tickets_for(db, reservation_id)

    async def get_ticket_by_code(self, ticket_code: str) -> Optional[Ticket]:
        async with read_session(self.session_factory) as db:
            result = await db.execute(select(Ticket).where(Ticket.ticket_code == ticket_code))
            return result.scalar_one_or_none()

    async def mark_ticket_used(self, ticket_code: str) -> Result[Ticket, CinebookError]:
        """Admit a ticket once; presenting it again is a conflict."""

        async def work(db: AsyncSession) -> Ticket:
            result = await db.execute(
                update(Ticket)
                .where(Ticket.ticket_code == ticket_code, Ticket.used.is_(False))
                .values(used=True)
                .execution_options(synchronize_session=False)
            )
            ticket = (await db.execute(
                select(Ticket)
                .where(Ticket.ticket_code == ticket_code)
                .execution_options(populate_existing=True)
            )).scalar_one_or_none()

            if ticket is None:
                raise AbortTransaction(TicketNotFoundError(ticket_code))
            if result.rowcount == 0:
                raise AbortTransaction(TicketAlreadyUsedError(ticket_code))
            return ticket

        outcome = await execute_atomically(
            self.session_factory,
            work,
            operation="mark_ticket_used",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            logger.info(f"Ticket {ticket_code} admitted")
        return outcome

    @staticmethod
    async def _tickets_for(db: AsyncSession, reservation_id: UUID) -> List[Ticket]:
        result = await db.execute(
            select(Ticket)
            .where(Ticket.reservation_id == reservation_id)
            .order_by(Ticket.ticket_code)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _successful_payment_reference(db: AsyncSession, reservation_id: UUID) -> Optional[str]:
        result = await db.execute(
            select(Payment.transaction_reference)
            .where(Payment.reservation_id == reservation_id, Payment.successful.is_(True))
            .order_by(Payment.paid_at.desc())
        )
        return result.scalars().first()

    @staticmethod
    def _payload(reservation, tickets, seats, transaction_reference, issued_at) -> FulfillmentPayload:
        purchaser = reservation.purchaser
        seat_by_id = {seat.id: seat for seat in seats}
        if isinstance(purchaser, GuestPurchaser):
            contact = {
                "customer_name": purchaser.name,
                "customer_email": str(purchaser.email),
                "customer_phone": purchaser.phone,
            }
        else:
            contact = {"customer_name": "Registered customer", "user_id": purchaser.user_id}

        return FulfillmentPayload(
            reservation_id=reservation.id,
            screening_id=reservation.screening_id,
            screening_start=reservation.screening.start_time,
            tickets=[
                FulfillmentTicket(
                    ticket_code=ticket.ticket_code,
                    seat_label=seat_by_id[ticket.seat_id].label,
                    seat_class=seat_by_id[ticket.seat_id].seat_class.value
                )
                for ticket in tickets
            ],
            concessions=[
                FulfillmentConcession(
                    name=line.concession.name,
                    quantity=line.quantity,
                    unit_price=line.unit_price
                )
                for line in reservation.reservation_concessions
            ],
            subtotal_amount=reservation.subtotal_amount,
            discount_amount=reservation.discount_amount,
            tax_amount=reservation.tax_amount,
            total_amount=reservation.total_amount,
            transaction_reference=transaction_reference,
            issued_at=issued_at,
            **contact
        )
