"""
Tests for cancelling finalized reservations.
"""

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from cinebook.models.payment import Payment, PaymentMethod
from cinebook.models.promo_code import DiscountType
from cinebook.models.reservation_concession import ReservationConcession
from cinebook.models.reservation_seat import ReservationSeat
from cinebook.models.ticket import Ticket
from cinebook.schemas.promo_code import PromoCodeCreate
from cinebook.utils.exceptions import ReservationNotFoundError, StorageError


async def count_rows(database, model, reservation_id) -> int:
    async with database.get_session() as session:
        result = await session.execute(
            select(func.count()).select_from(model).where(model.reservation_id == reservation_id)
        )
        return result.scalar_one()


class TestCancelReservation:

    async def test_cancel_releases_seats(self, engine, screening, finalized_reservation, reserved_labels):
        # Given
        assert await reserved_labels(screening.id) == ["A1", "C1"]

        # When
        result = await engine.workflow.cancel_reservation(finalized_reservation)

        # Then
        assert result.is_ok()
        assert result.value.affected == 2
        assert await reserved_labels(screening.id) == []
        assert await engine.workflow.get_reservation(finalized_reservation) is None

    async def test_cancel_removes_dependent_rows(self, engine, database, finalized_reservation):
        # Given: a paid reservation with tickets
        await engine.tickets.checkout(finalized_reservation, PaymentMethod.GCASH)

        # When
        await engine.workflow.cancel_reservation(finalized_reservation)

        # Then
        for model in (ReservationSeat, ReservationConcession, Ticket, Payment):
            assert await count_rows(database, model, finalized_reservation) == 0

    async def test_released_seats_can_be_booked_again(self, engine, screening, seats, finalized_reservation):
        await engine.workflow.cancel_reservation(finalized_reservation)

        booking = (await engine.workflow.start_for_user(uuid.uuid4(), screening.id)).unwrap()
        await engine.workflow.select_seats(booking, [seats["A1"].id])

        assert (await engine.workflow.finalize(booking)).is_ok()

    async def test_promo_usage_is_kept(self, engine, screening, seats):
        # Given: a reservation that used a promo code
        await engine.promo_codes.create_promo_code(PromoCodeCreate(
            code="LESS50",
            discount_type=DiscountType.FIXED,
            discount_amount=Decimal("50"),
            valid_from=date(2026, 10, 1),
            valid_until=date(2026, 10, 31),
        ))
        booking = (await engine.workflow.start_for_user(uuid.uuid4(), screening.id)).unwrap()
        await engine.workflow.select_seats(booking, [seats["B1"].id])
        reservation_id = (await engine.workflow.finalize(booking, "LESS50", date(2026, 10, 19))).unwrap()

        # When
        await engine.workflow.cancel_reservation(reservation_id)

        # Then
        assert (await engine.promo_codes.get_promo_code("LESS50")).current_uses == 1

    async def test_unknown_reservation(self, engine):
        result = await engine.workflow.cancel_reservation(uuid.uuid4())

        assert isinstance(result.error, ReservationNotFoundError)

    async def test_cancel_twice(self, engine, finalized_reservation):
        await engine.workflow.cancel_reservation(finalized_reservation)

        result = await engine.workflow.cancel_reservation(finalized_reservation)

        assert isinstance(result.error, ReservationNotFoundError)


class TestCancellationRollback:

    @pytest.fixture
    def failing_release(self, engine, monkeypatch):
        """Release the seats for real, then fail before the rows are deleted."""
        release_seats = engine.seat_inventory.release_seats

        async def release_then_fail(*args, **kwargs):
            await release_seats(*args, **kwargs)
            raise OperationalError("DELETE FROM tickets", {}, Exception("disk I/O error"))

        monkeypatch.setattr(engine.seat_inventory, "release_seats", release_then_fail)

    async def test_failure_after_release_leaves_store_untouched(
        self, engine, database, screening, finalized_reservation, reserved_labels, failing_release
    ):
        # When
        result = await engine.workflow.cancel_reservation(finalized_reservation)

        # Then: the released seats and every row are back as they were
        assert isinstance(result.error, StorageError)
        assert await reserved_labels(screening.id) == ["A1", "C1"]
        assert await engine.workflow.get_reservation(finalized_reservation) is not None
        assert await count_rows(database, ReservationSeat, finalized_reservation) == 2
        assert await count_rows(database, ReservationConcession, finalized_reservation) == 1

    async def test_cancel_succeeds_once_storage_recovers(
        self, engine, screening, finalized_reservation, reserved_labels, failing_release, monkeypatch
    ):
        await engine.workflow.cancel_reservation(finalized_reservation)
        monkeypatch.undo()

        result = await engine.workflow.cancel_reservation(finalized_reservation)

        assert result.is_ok()
        assert await reserved_labels(screening.id) == []
