"""
Tests for payment recording, ticket issuance and fulfillment handoff.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from cinebook.models.payment import Payment, PaymentMethod
from cinebook.services.payment_service import SimulatedPaymentGateway, generate_reference
from cinebook.tasks.fulfillment import CeleryFulfillmentPublisher
from cinebook.utils.exceptions import (
    PaymentDeclinedError,
    PaymentInProgressError,
    ReservationAlreadyPaidError,
    ReservationNotFoundError,
    ReservationNotPaidError,
    TicketAlreadyUsedError,
    TicketNotFoundError,
)


class HeldGateway(SimulatedPaymentGateway):
    """Gateway that waits for ``release`` before answering."""

    def __init__(self, **kwargs):
        super().__init__(record_charges=True, **kwargs)
        self.called = asyncio.Event()
        self.release = asyncio.Event()

    async def charge(self, *args, **kwargs):
        self.called.set()
        await self.release.wait()
        return await super().charge(*args, **kwargs)


class BrokenGateway(SimulatedPaymentGateway):
    async def charge(self, *args, **kwargs):
        raise ConnectionError("gateway unreachable")


async def payments_of(database, reservation_id):
    async with database.get_session() as session:
        result = await session.execute(select(Payment).where(Payment.reservation_id == reservation_id))
        return list(result.scalars().all())


class TestProcessPayment:

    async def test_payment_marks_reservation_paid(self, engine, gateway, finalized_reservation):
        # When
        result = await engine.payments.process_payment(finalized_reservation, PaymentMethod.GCASH)

        # Then
        payment = result.value
        assert payment.successful is True
        assert payment.amount == Decimal("649.60")
        assert payment.transaction_reference.startswith("CBCDO-")
        assert await engine.payments.is_reservation_paid(finalized_reservation)
        assert (await engine.payments.get_payment_for_reservation(finalized_reservation)).id == payment.id
        assert gateway.charges[0][1] == Decimal("649.60")

    async def test_second_payment_is_rejected_before_charging(self, engine, gateway, finalized_reservation):
        await engine.payments.process_payment(finalized_reservation, PaymentMethod.GCASH)

        result = await engine.payments.process_payment(finalized_reservation, PaymentMethod.PAYMAYA)

        assert isinstance(result.error, ReservationAlreadyPaidError)
        assert len(gateway.charges) == 1

    async def test_unknown_reservation(self, engine):
        result = await engine.payments.process_payment(uuid.uuid4(), PaymentMethod.GCASH)

        assert isinstance(result.error, ReservationNotFoundError)

    async def test_declined_payment_is_recorded(self, engine, database, gateway, finalized_reservation):
        # Given: the gateway refuses credit cards
        gateway.decline_methods = {PaymentMethod.CREDIT_CARD}

        # When
        declined = await engine.payments.process_payment(finalized_reservation, PaymentMethod.CREDIT_CARD)

        # Then: the attempt is stored but the reservation stays unpaid
        assert isinstance(declined.error, PaymentDeclinedError)
        assert not await engine.payments.is_reservation_paid(finalized_reservation)
        assert await engine.payments.get_payment_for_reservation(finalized_reservation) is None
        async with database.get_session() as session:
            attempts = (await session.execute(
                select(Payment).where(Payment.reservation_id == finalized_reservation)
            )).scalars().all()
            assert [attempt.successful for attempt in attempts] == [False]

        # And another method can still pay
        assert (await engine.payments.process_payment(finalized_reservation, PaymentMethod.GCASH)).is_ok()

    def test_reference_format(self):
        reference = generate_reference("TICK")

        prefix, day, suffix = reference.split("-")
        assert prefix == "TICK"
        assert len(day) == 8 and day.isdigit()
        assert len(suffix) == 10 and suffix == suffix.upper()


class TestConcurrentPayment:

    @pytest.mark.concurrency
    async def test_simultaneous_payments_charge_once(self, engine, database, finalized_reservation):
        # Given: a gateway slow enough for both calls to overlap
        gateway = HeldGateway()
        engine.payments.gateway = gateway

        # When
        first = asyncio.create_task(engine.payments.process_payment(finalized_reservation, PaymentMethod.GCASH))
        second = asyncio.create_task(engine.payments.process_payment(finalized_reservation, PaymentMethod.PAYMAYA))
        await gateway.called.wait()
        await asyncio.sleep(0.1)
        gateway.release.set()
        results = await asyncio.gather(first, second)

        # Then: one payment went through, the other never reached the gateway
        succeeded = [r for r in results if r.is_ok()]
        rejected = [r for r in results if r.is_err()]
        assert len(succeeded) == 1
        assert isinstance(rejected[0].error, (PaymentInProgressError, ReservationAlreadyPaidError))
        assert len(gateway.charges) == 1
        assert [p.successful for p in await payments_of(database, finalized_reservation)] == [True]

    async def test_cancel_waits_for_pending_payment(self, engine, finalized_reservation, reserved_labels, screening):
        # Given: a payment waiting on the gateway
        gateway = HeldGateway()
        engine.payments.gateway = gateway
        paying = asyncio.create_task(engine.payments.process_payment(finalized_reservation, PaymentMethod.GCASH))
        await gateway.called.wait()

        # When
        cancelled = await engine.workflow.cancel_reservation(finalized_reservation)

        # Then
        assert isinstance(cancelled.error, PaymentInProgressError)
        assert await engine.payments.has_pending_payment(finalized_reservation)
        assert await reserved_labels(screening.id) == ["A1", "C1"]

        gateway.release.set()
        assert (await paying).is_ok()
        assert not await engine.payments.has_pending_payment(finalized_reservation)

    async def test_gateway_error_settles_attempt_as_failed(self, engine, database, finalized_reservation):
        engine.payments.gateway = BrokenGateway()

        with pytest.raises(ConnectionError):
            await engine.payments.process_payment(finalized_reservation, PaymentMethod.GCASH)

        assert [p.successful for p in await payments_of(database, finalized_reservation)] == [False]
        engine.payments.gateway = SimulatedPaymentGateway()
        assert (await engine.payments.process_payment(finalized_reservation, PaymentMethod.GCASH)).is_ok()

    async def test_default_gateway_keeps_no_history(self):
        gateway = SimulatedPaymentGateway()

        outcome = await gateway.charge(uuid.uuid4(), Decimal("100.00"), PaymentMethod.GCASH, "CBCDO-1")

        assert outcome.approved
        assert gateway.charges == []


class TestSales:

    async def test_sales_over_date_range(self, engine, gateway, finalized_reservation, screening, seats):
        # Given: one paid reservation and one declined attempt on another
        await engine.payments.process_payment(finalized_reservation, PaymentMethod.GCASH)
        booking = (await engine.workflow.start_for_user(uuid.uuid4(), screening.id)).unwrap()
        await engine.workflow.select_seats(booking, [seats["B1"].id])
        unpaid = (await engine.workflow.finalize(booking)).unwrap()
        gateway.decline_methods = {PaymentMethod.CREDIT_CARD}
        await engine.payments.process_payment(unpaid, PaymentMethod.CREDIT_CARD)
        today = datetime.now(timezone.utc).date()

        # When
        payments = await engine.payments.get_payments_by_date_range(today, today)
        total = await engine.payments.calculate_total_sales(today - timedelta(days=30), today)

        # Then
        assert [p.reservation_id for p in payments] == [finalized_reservation]
        assert total == Decimal("649.60")

    async def test_no_sales(self, engine):
        tomorrow = datetime.now(timezone.utc).date() + timedelta(days=1)

        assert await engine.payments.get_payments_by_date_range(tomorrow, tomorrow) == []
        assert await engine.payments.calculate_total_sales(tomorrow, tomorrow) == Decimal("0.00")


class TestIssueTickets:

    async def test_unpaid_reservation_gets_no_tickets(self, engine, publisher, finalized_reservation):
        result = await engine.tickets.issue_tickets(finalized_reservation)

        assert isinstance(result.error, ReservationNotPaidError)
        assert publisher.payloads == []

    async def test_checkout_issues_one_ticket_per_seat(self, engine, publisher, finalized_reservation):
        # When
        result = await engine.tickets.checkout(finalized_reservation, PaymentMethod.GCASH)

        # Then
        tickets = result.value
        assert len(tickets) == 2
        assert all(ticket.ticket_code.startswith("TICK-") for ticket in tickets)
        assert len({ticket.ticket_code for ticket in tickets}) == 2

        assert len(publisher.payloads) == 1
        payload = publisher.payloads[0]
        assert payload.reservation_id == finalized_reservation
        assert payload.customer_name == "Maria Clara"
        assert payload.customer_email == "maria@example.com"
        assert [(t.seat_label, t.seat_class) for t in payload.tickets] == [("A1", "STANDARD"), ("C1", "DELUXE")]
        assert [(c.name, c.quantity) for c in payload.concessions] == [("Popcorn", 1)]
        assert payload.total_amount == Decimal("649.60")
        assert payload.transaction_reference.startswith("CBCDO-")

    async def test_issuing_again_returns_same_tickets(self, engine, publisher, finalized_reservation):
        # Given
        first = (await engine.tickets.checkout(finalized_reservation, PaymentMethod.GCASH)).value

        # When
        again = await engine.tickets.issue_tickets(finalized_reservation)

        # Then: nothing new is created or published
        assert {t.ticket_code for t in again.value} == {t.ticket_code for t in first}
        assert len(await engine.tickets.get_tickets(finalized_reservation)) == 2
        assert len(publisher.payloads) == 1

    async def test_registered_purchaser_payload(self, engine, publisher, screening, seats):
        user_id = uuid.uuid4()
        booking = (await engine.workflow.start_for_user(user_id, screening.id)).unwrap()
        await engine.workflow.select_seats(booking, [seats["B3"].id])
        reservation_id = (await engine.workflow.finalize(booking)).unwrap()

        await engine.tickets.checkout(reservation_id, PaymentMethod.PAYMAYA)

        payload = publisher.payloads[0]
        assert payload.user_id == user_id
        assert payload.customer_name == "Registered customer"
        assert payload.customer_email is None


class TestTicketEntry:

    async def test_ticket_is_admitted_once(self, engine, finalized_reservation):
        # Given
        tickets = (await engine.tickets.checkout(finalized_reservation, PaymentMethod.GCASH)).value
        code = tickets[0].ticket_code

        # When
        first = await engine.tickets.mark_ticket_used(code)
        second = await engine.tickets.mark_ticket_used(code)

        # Then
        assert first.value.used is True
        assert isinstance(second.error, TicketAlreadyUsedError)
        assert (await engine.tickets.get_ticket_by_code(code)).used is True

    async def test_unknown_ticket(self, engine):
        result = await engine.tickets.mark_ticket_used("TICK-00000000-0000000000")

        assert isinstance(result.error, TicketNotFoundError)


class TestCeleryFulfillmentPublisher:

    async def test_payload_is_sent_by_task_name(self, engine, settings, finalized_reservation):
        # Given
        app = MagicMock()
        engine.tickets.publisher = CeleryFulfillmentPublisher(app=app, settings=settings)

        # When
        await engine.tickets.checkout(finalized_reservation, PaymentMethod.GCASH)

        # Then
        app.send_task.assert_called_once()
        args, kwargs = app.send_task.call_args
        assert args[0] == settings.fulfillment_task_name
        assert kwargs["queue"] == settings.fulfillment_queue
        assert kwargs["args"][0]["reservation_id"] == str(finalized_reservation)
        assert kwargs["args"][0]["total_amount"] == "649.60"

    async def test_broker_failure_does_not_undo_tickets(self, engine, settings, finalized_reservation):
        app = MagicMock()
        app.send_task.side_effect = ConnectionError("broker down")
        engine.tickets.publisher = CeleryFulfillmentPublisher(app=app, settings=settings)

        result = await engine.tickets.checkout(finalized_reservation, PaymentMethod.GCASH)

        assert result.is_ok()
        assert len(await engine.tickets.get_tickets(finalized_reservation)) == 2
