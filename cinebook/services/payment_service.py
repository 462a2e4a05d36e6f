"""
Payment handoff: charging a finalized reservation and recording the outcome.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Protocol, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings, get_settings
from ..database import AbortTransaction, execute_atomically, read_session
from ..models.payment import Payment, PaymentMethod
from ..models.reservation import Reservation
from ..utils.exceptions import (
    CinebookError,
    PaymentDeclinedError,
    PaymentInProgressError,
    ReservationAlreadyPaidError,
    ReservationNotFoundError,
)
from ..utils.dates import day_bounds
from ..utils.logging_config import log_business_event
from ..utils.result import Err, Ok, Result
from .pricing_engine import quantize_currency

logger = logging.getLogger(__name__)


def generate_reference(prefix: str, when: Optional[datetime] = None) -> str:
    """Build a reference like ``CBCDO-20261019-3F2A9C0B1D``."""
    when = when or datetime.now(timezone.utc)
    return f"{prefix}-{when:%Y%m%d}-{uuid.uuid4().hex[:10].upper()}"


@dataclass(frozen=True)
class ChargeOutcome:
    """What the gateway said about a charge."""
    approved: bool
    reason: Optional[str] = None


class PaymentGateway(Protocol):
    """Anything that can charge an amount for a reservation."""

    async def charge(
        self,
        reservation_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        transaction_reference: str
    ) -> ChargeOutcome: ...


class SimulatedPaymentGateway:
    """
    Deterministic gateway: approves every charge unless told otherwise.

    Args:
        decline_methods: Methods that are always declined
        decline_above: Amounts above this are declined
        record_charges: Keep every charge request in ``charges``
    """

    def __init__(
        self,
        decline_methods: Iterable[PaymentMethod] = (),
        decline_above: Optional[Decimal] = None,
        record_charges: bool = False
    ):
        self.decline_methods = set(decline_methods)
        self.decline_above = decline_above
        self.record_charges = record_charges
        self.charges: List[tuple] = []

    async def charge(
        self,
        reservation_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        transaction_reference: str
    ) -> ChargeOutcome:
        if self.record_charges:
            self.charges.append((reservation_id, amount, method, transaction_reference))
        if method in self.decline_methods:
            return ChargeOutcome(approved=False, reason=f"{method.display_name} payments are unavailable")
        if self.decline_above is not None and amount > self.decline_above:
            return ChargeOutcome(approved=False, reason="Amount exceeds the approval limit")
        return ChargeOutcome(approved=True)


class PaymentService:
    """Service for recording payments against finalized reservations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: Optional[PaymentGateway] = None,
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory
        self.gateway = gateway or SimulatedPaymentGateway()
        self.settings = settings or get_settings()

    async def process_payment(
        self,
        reservation_id: UUID,
        method: PaymentMethod
    ) -> Result[Payment, CinebookError]:
        """
        Charge the amount frozen on the reservation and record the payment.

        Three steps:

        1. Claim: under the reservation row lock, insert a pending payment.
           A paid reservation, or one with a payment already pending, is
           rejected here, so at most one charge per reservation reaches the
           gateway at a time.
        2. Charge the gateway with no transaction open.
        3. Settle: mark the pending payment approved or declined and, when
           approved, flag the reservation as paid.

        A declined charge stays recorded as an unsuccessful payment and is
        reported as PaymentDeclinedError.
        """
        claimed = await self._claim(reservation_id, method)
        if claimed.is_err():
            return claimed
        payment_id, amount, reference = claimed.value

        try:
            charge = await self.gateway.charge(reservation_id, amount, method, reference)
        except Exception:
            await self._settle(reservation_id, payment_id, ChargeOutcome(approved=False, reason="gateway error"))
            raise

        outcome = await self._settle(reservation_id, payment_id, charge)
        if outcome.is_err():
            if charge.approved:
                logger.error(
                    f"Charge {reference} approved but not recorded for reservation {reservation_id}: "
                    f"{outcome.error.message}"
                )
            return outcome

        payment = outcome.value
        log_business_event(
            "payment_processed",
            {
                "reservation_id": str(reservation_id),
                "transaction_reference": reference,
                "amount": str(payment.amount),
                "method": method.value,
                "successful": payment.successful,
            }
        )
        if not payment.successful:
            return Err(PaymentDeclinedError(str(reservation_id), reference, charge.reason or "declined"))
        return Ok(payment)

    async def _claim(
        self,
        reservation_id: UUID,
        method: PaymentMethod
    ) -> Result[Tuple[UUID, Decimal, str], CinebookError]:
        reference = generate_reference(self.settings.transaction_reference_prefix)

        async def work(db: AsyncSession) -> Tuple[UUID, Decimal, str]:
            reservation = await db.get(Reservation, reservation_id, with_for_update=True, populate_existing=True)
            if reservation is None:
                raise AbortTransaction(ReservationNotFoundError(str(reservation_id)))
            if reservation.paid:
                raise AbortTransaction(ReservationAlreadyPaidError(str(reservation_id)))
            if await self._has_pending(db, reservation_id):
                raise AbortTransaction(PaymentInProgressError(str(reservation_id)))

            payment = Payment(
                reservation_id=reservation_id,
                amount=reservation.total_amount,
                method=method,
                transaction_reference=reference,
                paid_at=datetime.now(timezone.utc),
                successful=None
            )
            db.add(payment)
            await db.flush()
            return payment.id, payment.amount, reference

        return await execute_atomically(
            self.session_factory,
            work,
            operation="claim_payment",
            max_attempts=self.settings.max_retry_attempts
        )

    async def _settle(
        self,
        reservation_id: UUID,
        payment_id: UUID,
        charge: ChargeOutcome
    ) -> Result[Payment, CinebookError]:
        async def work(db: AsyncSession) -> Payment:
            reservation = await db.get(Reservation, reservation_id, with_for_update=True, populate_existing=True)
            payment = await db.get(Payment, payment_id, populate_existing=True)
            if reservation is None or payment is None:
                raise AbortTransaction(ReservationNotFoundError(str(reservation_id)))

            payment.successful = charge.approved
            payment.paid_at = datetime.now(timezone.utc)
            if charge.approved:
                reservation.paid = True
            await db.flush()
            return payment

        return await execute_atomically(
            self.session_factory,
            work,
            operation="settle_payment",
            max_attempts=self.settings.max_retry_attempts
        )

    @staticmethod
    async def _has_pending(db: AsyncSession, reservation_id: UUID) -> bool:
        result = await db.execute(
            select(Payment.id).where(Payment.reservation_id == reservation_id, Payment.successful.is_(None))
        )
        return result.first() is not None

    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        async with read_session(self.session_factory) as db:
            return await db.get(Payment, payment_id)

    async def get_payment_for_reservation(self, reservation_id: UUID) -> Optional[Payment]:
        """The successful payment of a reservation, if any."""
        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(Payment)
                .where(Payment.reservation_id == reservation_id, Payment.successful.is_(True))
                .order_by(Payment.paid_at.desc())
            )
            return result.scalars().first()

    async def has_pending_payment(self, reservation_id: UUID) -> bool:
        async with read_session(self.session_factory) as db:
            return await self._has_pending(db, reservation_id)

    async def is_reservation_paid(self, reservation_id: UUID) -> bool:
        async with read_session(self.session_factory) as db:
            result = await db.execute(select(Reservation.paid).where(Reservation.id == reservation_id))
            return bool(result.scalar_one_or_none())

    # Sales

    async def get_payments_by_date_range(self, start: date, end: date) -> List[Payment]:
        """Successful payments settled on any day from ``start`` to ``end``, oldest first."""
        lower, upper = day_bounds(start, end)
        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(Payment)
                .where(Payment.successful.is_(True), Payment.paid_at >= lower, Payment.paid_at < upper)
                .order_by(Payment.paid_at)
            )
            return list(result.scalars().all())

    async def calculate_total_sales(self, start: date, end: date) -> Decimal:
        """Sum of successful payments in the range; zero when there are none."""
        lower, upper = day_bounds(start, end)
        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(func.coalesce(func.sum(Payment.amount), 0))
                .where(Payment.successful.is_(True), Payment.paid_at >= lower, Payment.paid_at < upper)
            )
            return quantize_currency(Decimal(str(result.scalar_one())))
