"""
Tests for catalog data entry and lookups.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from cinebook.schemas.catalog import CinemaCreate, ConcessionCreate, MovieCreate, ScreeningCreate, ScreeningUpdate
from cinebook.utils.exceptions import (
    CinemaNotFoundError,
    MovieNotFoundError,
    ScreeningHasReservationsError,
    ScreeningNotFoundError,
    ValidationError,
)


class TestCinemas:

    async def test_default_deluxe_rows(self, engine):
        result = await engine.catalog.add_cinema(
            CinemaCreate(name="IMAX", total_rows=10, seats_per_row=20, has_deluxe_seats=True)
        )

        assert result.value.deluxe_rows == engine.settings.default_deluxe_rows

    async def test_default_deluxe_rows_capped_by_hall(self, engine):
        result = await engine.catalog.add_cinema(
            CinemaCreate(name="Mini", total_rows=2, seats_per_row=5, has_deluxe_seats=True)
        )

        assert result.value.deluxe_rows == 2

    async def test_hall_without_deluxe_seats(self, engine):
        result = await engine.catalog.add_cinema(CinemaCreate(name="Plain", total_rows=4, seats_per_row=5))

        assert result.value.deluxe_rows == 0

    async def test_duplicate_name(self, engine):
        await engine.catalog.add_cinema(CinemaCreate(name="Cinema 9", total_rows=4, seats_per_row=5))

        result = await engine.catalog.add_cinema(CinemaCreate(name="Cinema 9", total_rows=2, seats_per_row=2))

        assert isinstance(result.error, ValidationError)


class TestScreenings:

    async def test_unknown_movie_or_cinema(self, engine, screening):
        data = dict(
            start_time=datetime(2026, 10, 21, 13, 0, tzinfo=timezone.utc),
            standard_price=Decimal("180.00"),
            deluxe_price=Decimal("280.00"),
        )

        no_movie = await engine.catalog.create_screening(
            ScreeningCreate(movie_id=uuid.uuid4(), cinema_id=screening.cinema_id, **data)
        )
        no_cinema = await engine.catalog.create_screening(
            ScreeningCreate(movie_id=screening.movie_id, cinema_id=uuid.uuid4(), **data)
        )

        assert isinstance(no_movie.error, MovieNotFoundError)
        assert isinstance(no_cinema.error, CinemaNotFoundError)

    async def test_list_screenings(self, engine, screening):
        # Given: a second, inactive screening of the same movie
        later = (await engine.catalog.create_screening(ScreeningCreate(
            movie_id=screening.movie_id,
            cinema_id=screening.cinema_id,
            start_time=datetime(2026, 10, 21, 13, 0, tzinfo=timezone.utc),
            standard_price=Decimal("200.00"),
            deluxe_price=Decimal("300.00"),
        ))).unwrap()
        await engine.catalog.deactivate_screening(later.id)

        # Then
        assert [s.id for s in await engine.catalog.list_screenings()] == [screening.id]
        assert [s.id for s in await engine.catalog.list_screenings(active_only=False)] == [screening.id, later.id]
        assert [s.id for s in await engine.catalog.list_screenings(movie_id=uuid.uuid4())] == []

    async def test_update_screening_keeps_frozen_totals(self, engine, screening, finalized_reservation):
        # When: prices go up after a reservation was made
        result = await engine.catalog.update_screening(
            screening.id,
            ScreeningUpdate(
                standard_price=Decimal("200.00"),
                start_time=datetime(2026, 10, 20, 20, 0, tzinfo=timezone.utc),
            )
        )

        # Then
        assert result.value.standard_price == Decimal("200.00")
        assert result.value.deluxe_price == Decimal("280.00")
        assert (await engine.catalog.get_screening(screening.id)).standard_price == Decimal("200.00")
        assert (await engine.workflow.get_reservation(finalized_reservation)).total_amount == Decimal("649.60")

    async def test_update_screening_checks_movie(self, engine, screening):
        missing_movie = await engine.catalog.update_screening(screening.id, ScreeningUpdate(movie_id=uuid.uuid4()))
        missing_screening = await engine.catalog.update_screening(uuid.uuid4(), ScreeningUpdate(is_active=False))

        assert isinstance(missing_movie.error, MovieNotFoundError)
        assert isinstance(missing_screening.error, ScreeningNotFoundError)

    async def test_list_screenings_by_cinema(self, engine, screening):
        other_hall = (await engine.catalog.add_cinema(
            CinemaCreate(name="Cinema 2", total_rows=1, seats_per_row=2)
        )).unwrap()
        await engine.catalog.create_screening(ScreeningCreate(
            movie_id=screening.movie_id,
            cinema_id=other_hall.id,
            start_time=datetime(2026, 10, 20, 13, 0, tzinfo=timezone.utc),
            standard_price=Decimal("150.00"),
            deluxe_price=Decimal("150.00"),
        ))

        in_first_hall = await engine.catalog.list_screenings_by_cinema(screening.cinema_id)

        assert [s.id for s in in_first_hall] == [screening.id]
        assert len(await engine.catalog.list_screenings_by_cinema(other_hall.id)) == 1

    async def test_delete_screening_without_reservations(self, engine, screening):
        result = await engine.catalog.delete_screening(screening.id)

        assert result.is_ok()
        assert await engine.catalog.get_screening(screening.id) is None
        assert await engine.seat_inventory.list_seats(screening.id) == []

    async def test_delete_screening_with_reserved_seats_is_refused(self, engine, screening, finalized_reservation):
        result = await engine.catalog.delete_screening(screening.id)

        assert isinstance(result.error, ScreeningHasReservationsError)
        assert result.error.details["reserved_count"] == 2
        assert len(await engine.seat_inventory.list_seats(screening.id)) == 12

    async def test_delete_unknown_screening(self, engine):
        result = await engine.catalog.delete_screening(uuid.uuid4())

        assert isinstance(result.error, ScreeningNotFoundError)


class TestConcessions:

    async def test_categories_and_availability(self, engine, concessions):
        # Given
        await engine.catalog.add_concession(
            ConcessionCreate(name="Nachos", price=Decimal("150.00"), category="Snacks")
        )
        await engine.catalog.set_concession_availability(concessions["soda"].id, False)

        # Then
        assert await engine.catalog.list_concession_categories() == ["Drinks", "Snacks"]
        assert [c.name for c in await engine.catalog.list_concessions_by_category("Snacks")] == ["Nachos", "Popcorn"]
        assert await engine.catalog.list_concessions_by_category("Drinks") == []
        assert [c.name for c in await engine.catalog.list_available_concessions()] == ["Nachos", "Popcorn"]
        assert (await engine.catalog.get_concession(concessions["soda"].id)).is_available is False

    async def test_movie_snapshot(self, engine):
        result = await engine.catalog.add_movie(MovieCreate(title="Ang Probinsyano", duration_minutes=95))

        assert result.value.is_active is True
        assert result.value.title == "Ang Probinsyano"
