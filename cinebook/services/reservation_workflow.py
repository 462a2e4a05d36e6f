"""
Reservation workflow: the checkout state machine.

A checkout moves EMPTY -> SEATS_SELECTED -> ITEMS_SELECTED -> FINALIZED, or
to ABORTED from any non-terminal state. Nothing touches the store until
``finalize``, which reserves the seats, redeems the promo code and inserts the
reservation in one transaction.
"""

import logging
import time
from contextlib import contextmanager
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..config import Settings, get_settings
from ..database import AbortTransaction, execute_atomically, read_session
from ..models.payment import Payment
from ..models.reservation import Reservation
from ..models.reservation_concession import ReservationConcession
from ..models.reservation_seat import ReservationSeat
from ..models.screening import Screening
from ..models.ticket import Ticket
from ..schemas.booking import BookingSession, BookingState, ConcessionSelection, ReservationSummary
from ..schemas.catalog import ConcessionSnapshot
from ..schemas.purchaser import GuestPurchaser, Purchaser, RegisteredPurchaser
from ..utils.dates import day_bounds
from ..utils.exceptions import (
    CinebookError,
    ConcessionNotFoundError,
    InvalidSessionStateError,
    PaymentInProgressError,
    ReservationNotFoundError,
    ScreeningInactiveError,
    ScreeningNotFoundError,
    SeatNotFoundError,
    SeatsUnavailableError,
    ValidationError,
)
from ..utils.logging_config import booking_session_id_var, log_business_event, log_performance
from ..utils.result import Ack, Err, Ok, Result
from .catalog_service import CatalogService
from .pricing_engine import PriceBreakdown, PricingEngine
from .promo_code_ledger import PromoCodeLedger
from .seat_inventory import SeatInventory

logger = logging.getLogger(__name__)

ConcessionItem = Union[ConcessionSelection, Tuple[UUID, int]]

SEAT_SELECTION_STATES = {BookingState.EMPTY, BookingState.SEATS_SELECTED, BookingState.ITEMS_SELECTED}
CONCESSION_SELECTION_STATES = {BookingState.SEATS_SELECTED, BookingState.ITEMS_SELECTED}
FINALIZE_STATES = {BookingState.SEATS_SELECTED, BookingState.ITEMS_SELECTED}


@contextmanager
def _logging_context(booking: BookingSession):
    token = booking_session_id_var.set(str(booking.session_id))
    try:
        yield
    finally:
        booking_session_id_var.reset(token)


def _check_state(booking: BookingSession, operation: str, allowed: set) -> Optional[InvalidSessionStateError]:
    if booking.state in allowed:
        return None
    return InvalidSessionStateError(operation, booking.state.value, [state.value for state in allowed])


def _summary(reservation: Reservation) -> ReservationSummary:
    return ReservationSummary(
        id=reservation.id,
        screening_id=reservation.screening_id,
        purchaser=reservation.purchaser,
        seat_ids=reservation.seat_ids,
        subtotal_amount=reservation.subtotal_amount,
        discount_amount=reservation.discount_amount,
        tax_amount=reservation.tax_amount,
        total_amount=reservation.total_amount,
        paid=reservation.paid,
        created_at=reservation.created_at
    )


class ReservationWorkflow:
    """Drives caller-owned booking sessions through checkout."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: CatalogService,
        seat_inventory: SeatInventory,
        promo_ledger: PromoCodeLedger,
        pricing: PricingEngine,
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.seat_inventory = seat_inventory
        self.promo_ledger = promo_ledger
        self.pricing = pricing
        self.settings = settings or get_settings()

    # Session start

    async def start_for_user(self, user_id: UUID, screening_id: UUID) -> Result[BookingSession, CinebookError]:
        """Start a checkout for a registered user."""
        return await self._start(RegisteredPurchaser(user_id=user_id), screening_id)

    async def start_for_guest(
        self,
        name: str,
        email: str,
        phone: str,
        screening_id: UUID
    ) -> Result[BookingSession, CinebookError]:
        """Start a checkout for a guest identified by contact details."""
        try:
            purchaser = GuestPurchaser(name=name, email=email, phone=phone)
        except PydanticValidationError as e:
            field_errors = {}
            for error in e.errors():
                field = ".".join(str(part) for part in error["loc"]) or "purchaser"
                field_errors.setdefault(field, []).append(error["msg"])
            return Err(ValidationError("Invalid guest details", field_errors=field_errors))
        return await self._start(purchaser, screening_id)

    async def _start(self, purchaser: Purchaser, screening_id: UUID) -> Result[BookingSession, CinebookError]:
        screening = await self.catalog.require_bookable_screening(screening_id)
        if screening.is_err():
            return screening

        booking = BookingSession(purchaser=purchaser, screening_id=screening_id)
        with _logging_context(booking):
            logger.info(f"Booking session started for screening {screening_id} ({purchaser.kind})")
        return Ok(booking)

    # Selection

    async def select_seats(
        self,
        booking: BookingSession,
        seat_ids: Sequence[UUID]
    ) -> Result[BookingSession, CinebookError]:
        """
        Replace the seat selection.

        Availability is only read here; seats are locked at finalize time.
        Concessions already picked are kept.
        """
        with _logging_context(booking):
            error = _check_state(booking, "select seats", SEAT_SELECTION_STATES)
            if error:
                return Err(error)

            ids = list(dict.fromkeys(seat_ids))
            if not ids:
                return Err(ValidationError("Select at least one seat", field_errors={"seat_ids": ["empty selection"]}))
            limit = self.settings.max_seats_per_reservation
            if len(ids) > limit:
                return Err(ValidationError(
                    f"You can reserve at most {limit} seats per booking",
                    field_errors={"seat_ids": [f"more than {limit} seats"]}
                ))

            seats = {seat.id: seat for seat in await self.seat_inventory.get_seats(ids)}
            missing = [str(seat_id) for seat_id in ids if seat_id not in seats]
            foreign = [str(seat_id) for seat_id in ids if seat_id in seats and seats[seat_id].screening_id != booking.screening_id]
            if missing:
                return Err(SeatNotFoundError(missing[0]))
            if foreign:
                return Err(ValidationError(
                    "Some seats do not belong to this screening",
                    field_errors={"seat_ids": [f"seat {seat_id} belongs to another screening" for seat_id in foreign]}
                ))

            taken = [seats[seat_id].label for seat_id in ids if seats[seat_id].reserved]
            if taken:
                return Err(SeatsUnavailableError(unavailable=taken))

            booking.seat_ids = ids
            booking.state = BookingState.SEATS_SELECTED
            logger.info(f"Selected seats {', '.join(seats[seat_id].label for seat_id in ids)}")
            return Ok(booking)

    async def select_concessions(
        self,
        booking: BookingSession,
        items: Iterable[ConcessionItem]
    ) -> Result[BookingSession, CinebookError]:
        """
        Replace the concession selection.

        Zero quantities are dropped, repeated ids are merged and an empty
        selection is valid.
        """
        with _logging_context(booking):
            error = _check_state(booking, "select concessions", CONCESSION_SELECTION_STATES)
            if error:
                return Err(error)

            quantities = {}
            for item in items:
                if isinstance(item, ConcessionSelection):
                    concession_id, quantity = item.concession_id, item.quantity
                else:
                    concession_id, quantity = item
                if quantity < 0:
                    return Err(ValidationError(
                        "Concession quantities cannot be negative",
                        field_errors={str(concession_id): ["negative quantity"]}
                    ))
                if quantity:
                    quantities[concession_id] = quantities.get(concession_id, 0) + quantity

            if quantities:
                found = {c.id: c for c in await self.catalog.get_concessions(list(quantities))}
                for concession_id in quantities:
                    concession = found.get(concession_id)
                    if concession is None:
                        return Err(ConcessionNotFoundError(str(concession_id)))
                    if not concession.is_available:
                        return Err(ValidationError(
                            f"{concession.name} is not available",
                            field_errors={str(concession_id): ["unavailable"]}
                        ))

            try:
                selections = [
                    ConcessionSelection(concession_id=concession_id, quantity=quantity)
                    for concession_id, quantity in quantities.items()
                ]
            except PydanticValidationError:
                return Err(ValidationError(
                    "Concession quantity too large",
                    field_errors={"concessions": ["at most 99 of each item"]}
                ))

            booking.concessions = selections
            booking.state = BookingState.ITEMS_SELECTED
            return Ok(booking)

    # Pricing

    async def quote(
        self,
        booking: BookingSession,
        promo_code: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> Result[PriceBreakdown, CinebookError]:
        """Price the current selection; a promo code is checked but not used."""
        with _logging_context(booking):
            if not booking.has_seats:
                return Err(ValidationError("Select at least one seat", field_errors={"seat_ids": ["empty selection"]}))

            screening = await self.catalog.get_screening(booking.screening_id)
            if screening is None:
                return Err(ScreeningNotFoundError(str(booking.screening_id)))

            seats = await self.seat_inventory.get_seats(booking.seat_ids)
            lines = self._concession_lines(booking, await self.catalog.get_concessions(
                [item.concession_id for item in booking.concessions]
            ))
            breakdown = self.pricing.price(seats, lines, screening)

            if promo_code:
                validated = await self.promo_ledger.validate(promo_code, breakdown.subtotal, as_of)
                if validated.is_err():
                    return validated
                breakdown = self.pricing.price(seats, lines, screening, validated.value)

            return Ok(breakdown)

    # Finalize

    async def finalize(
        self,
        booking: BookingSession,
        promo_code: Optional[str] = None,
        as_of: Optional[date] = None
    ) -> Result[UUID, CinebookError]:
        """
        Persist the booking.

        In one transaction: reserve the seats, redeem the promo code, and
        insert the reservation with its seat and concession rows. Any failure
        rolls the whole transaction back, so seats reserved by the first step
        are released with it. A seat conflict sends the session back to
        SEATS_SELECTED so the customer can pick again.
        """
        with _logging_context(booking):
            error = _check_state(booking, "finalize", FINALIZE_STATES)
            if error:
                return Err(error)
            if not booking.has_seats:
                return Err(ValidationError("Select at least one seat", field_errors={"seat_ids": ["empty selection"]}))

            as_of = as_of or date.today()

            async def work(db: AsyncSession) -> Reservation:
                screening = await db.get(Screening, booking.screening_id, populate_existing=True)
                if screening is None:
                    raise AbortTransaction(ScreeningNotFoundError(str(booking.screening_id)))
                if not screening.is_active:
                    raise AbortTransaction(ScreeningInactiveError(str(booking.screening_id)))

                reserved = await self.seat_inventory.reserve_seats(
                    booking.seat_ids, screening_id=booking.screening_id, session=db
                )
                if reserved.is_err():
                    raise AbortTransaction(reserved.error)

                seats = await self.seat_inventory.get_seats(booking.seat_ids, session=db)
                concessions = await self.catalog.get_concessions(
                    [item.concession_id for item in booking.concessions], session=db
                )
                unavailable = [c.name for c in concessions if not c.is_available]
                if unavailable or len(concessions) != len(booking.concessions):
                    raise AbortTransaction(ValidationError(
                        "Some concessions are no longer available",
                        field_errors={"concessions": unavailable or ["unknown concession"]}
                    ))
                lines = self._concession_lines(booking, concessions)

                promo = None
                breakdown = self.pricing.price(seats, lines, screening)
                if promo_code:
                    validated = await self.promo_ledger.validate(promo_code, breakdown.subtotal, as_of, session=db)
                    if validated.is_err():
                        raise AbortTransaction(validated.error)
                    redeemed = await self.promo_ledger.redeem(promo_code, as_of, session=db)
                    if redeemed.is_err():
                        raise AbortTransaction(redeemed.error)
                    promo = validated.value
                    breakdown = self.pricing.price(seats, lines, screening, promo)

                amounts = breakdown.rounded()
                reservation = Reservation(
                    screening_id=booking.screening_id,
                    promo_code_id=promo.id if promo is not None else None,
                    subtotal_amount=amounts.subtotal,
                    discount_amount=amounts.discount,
                    tax_amount=amounts.tax,
                    total_amount=amounts.total,
                    paid=False,
                    reservation_seats=[ReservationSeat(seat_id=seat.id) for seat in seats],
                    reservation_concessions=[
                        ReservationConcession(
                            concession_id=concession.id,
                            quantity=quantity,
                            unit_price=concession.price
                        )
                        for concession, quantity in lines
                    ]
                )
                reservation.purchaser = booking.purchaser
                db.add(reservation)
                await db.flush()
                return reservation

            started = time.perf_counter()
            outcome = await execute_atomically(
                self.session_factory,
                work,
                operation="finalize",
                max_attempts=self.settings.max_retry_attempts
            )
            log_performance("finalize", time.perf_counter() - started, succeeded=outcome.is_ok())

            if outcome.is_err():
                if isinstance(outcome.error, SeatsUnavailableError):
                    booking.state = BookingState.SEATS_SELECTED
                logger.info(f"Finalize failed: {outcome.error.message}")
                return outcome

            reservation = outcome.value
            booking.reservation_id = reservation.id
            booking.state = BookingState.FINALIZED
            log_business_event(
                "reservation_finalized",
                {
                    "reservation_id": str(reservation.id),
                    "screening_id": str(reservation.screening_id),
                    "seat_count": len(booking.seat_ids),
                    "total_amount": str(reservation.total_amount),
                    "promo_code": promo_code.strip().upper() if promo_code else None,
                },
                user_id=str(reservation.user_id) if reservation.user_id else None
            )
            return Ok(reservation.id)

    def cancel(self, booking: BookingSession) -> Result[BookingSession, CinebookError]:
        """Abandon an unfinished checkout. Nothing was stored, so nothing is undone."""
        with _logging_context(booking):
            if booking.state.is_terminal:
                return Err(InvalidSessionStateError(
                    "cancel", booking.state.value,
                    [state.value for state in BookingState if not state.is_terminal]
                ))
            booking.state = BookingState.ABORTED
            logger.info("Booking session cancelled")
            return Ok(booking)

    # Finalized reservations

    async def cancel_reservation(self, reservation_id: UUID) -> Result[Ack, CinebookError]:
        """
        Cancel a finalized reservation.

        Seats are released and the reservation is removed together with its
        seat and concession rows, tickets and payments, all in one
        transaction. Promo code usage is not given back. A reservation whose
        payment is still waiting on the gateway cannot be cancelled.
        """

        async def work(db: AsyncSession) -> Ack:
            locked = await db.execute(
                select(Reservation.id).where(Reservation.id == reservation_id).with_for_update()
            )
            if locked.first() is None:
                raise AbortTransaction(ReservationNotFoundError(str(reservation_id)))
            pending = await db.execute(
                select(Payment.id).where(Payment.reservation_id == reservation_id, Payment.successful.is_(None))
            )
            if pending.first() is not None:
                raise AbortTransaction(PaymentInProgressError(str(reservation_id)))

            seat_ids = list((await db.execute(
                select(ReservationSeat.seat_id).where(ReservationSeat.reservation_id == reservation_id)
            )).scalars().all())

            released = await self.seat_inventory.release_seats(seat_ids, session=db)
            if released.is_err():
                raise AbortTransaction(released.error)

            for model in (Ticket, Payment, ReservationConcession, ReservationSeat):
                await db.execute(
                    delete(model)
                    .where(model.reservation_id == reservation_id)
                    .execution_options(synchronize_session=False)
                )
            await db.execute(
                delete(Reservation)
                .where(Reservation.id == reservation_id)
                .execution_options(synchronize_session=False)
            )
            return Ack(affected=len(seat_ids))

        outcome = await execute_atomically(
            self.session_factory,
            work,
            operation="cancel_reservation",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            log_business_event(
                "reservation_cancelled",
                {"reservation_id": str(reservation_id), "seats_released": outcome.value.affected}
            )
        return outcome

    async def get_reservation(self, reservation_id: UUID) -> Optional[ReservationSummary]:
        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(Reservation)
                .options(selectinload(Reservation.reservation_seats))
                .where(Reservation.id == reservation_id)
            )
            reservation = result.scalar_one_or_none()
            return _summary(reservation) if reservation else None

    async def list_reservations_for_user(self, user_id: UUID) -> List[ReservationSummary]:
        """Reservations of a registered user, newest first."""
        return await self._list_reservations(Reservation.user_id == user_id)

    async def list_reservations_for_screening(self, screening_id: UUID) -> List[ReservationSummary]:
        return await self._list_reservations(Reservation.screening_id == screening_id)

    async def list_reservations_by_date_range(self, start: date, end: date) -> List[ReservationSummary]:
        """Reservations created on any day from ``start`` to ``end`` (UTC), newest first."""
        lower, upper = day_bounds(start, end)
        return await self._list_reservations(Reservation.created_at >= lower, Reservation.created_at < upper)

    async def _list_reservations(self, *conditions) -> List[ReservationSummary]:
        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(Reservation)
                .options(selectinload(Reservation.reservation_seats))
                .where(*conditions)
                .order_by(Reservation.created_at.desc())
            )
            return [_summary(r) for r in result.scalars().all()]

    @staticmethod
    def _concession_lines(
        booking: BookingSession,
        concessions: Sequence[ConcessionSnapshot]
    ) -> List[Tuple[ConcessionSnapshot, int]]:
        by_id = {c.id: c for c in concessions}
        return [
            (by_id[item.concession_id], item.quantity)
            for item in booking.concessions
            if item.concession_id in by_id
        ]
