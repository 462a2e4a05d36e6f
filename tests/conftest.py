"""
Shared fixtures: a fresh SQLite database per test, seeded through the catalog.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List

import pytest

from cinebook.config import Settings
from cinebook.database import DatabaseManager
from cinebook.engine import BookingEngine
from cinebook.models.seat import Seat
from cinebook.schemas.catalog import (
    CinemaCreate,
    ConcessionCreate,
    ConcessionSnapshot,
    MovieCreate,
    ScreeningCreate,
    ScreeningSnapshot,
)
from cinebook.schemas.fulfillment import FulfillmentPayload
from cinebook.services.payment_service import SimulatedPaymentGateway


class RecordingPublisher:
    """Fulfillment publisher that keeps payloads in memory."""

    def __init__(self):
        self.payloads: List[FulfillmentPayload] = []

    async def publish(self, payload: FulfillmentPayload) -> None:
        self.payloads.append(payload)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cinebook.db'}",
        enable_catalog_cache=False,
        sqlite_busy_timeout_seconds=30,
        max_retry_attempts=3,
    )


@pytest.fixture
async def database(settings):
    manager = DatabaseManager(settings)
    await manager.initialize(create_tables=True)
    yield manager
    await manager.close()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def gateway() -> SimulatedPaymentGateway:
    return SimulatedPaymentGateway(record_charges=True)


@pytest.fixture
def engine(database, gateway, publisher, settings) -> BookingEngine:
    return BookingEngine(database, gateway=gateway, publisher=publisher, settings=settings)


@pytest.fixture
async def screening(engine) -> ScreeningSnapshot:
    """A screening in a 3x4 hall whose last row (C) is deluxe."""
    movie = (await engine.catalog.add_movie(
        MovieCreate(title="Heneral Luna", genre="Drama", rating="R-13", duration_minutes=118)
    )).unwrap()
    cinema = (await engine.catalog.add_cinema(
        CinemaCreate(name="Cinema 1", location="Level 3", total_rows=3, seats_per_row=4,
                     has_deluxe_seats=True, deluxe_rows=1)
    )).unwrap()
    return (await engine.catalog.create_screening(
        ScreeningCreate(
            movie_id=movie.id,
            cinema_id=cinema.id,
            start_time=datetime(2026, 10, 20, 19, 0, tzinfo=timezone.utc),
            standard_price=Decimal("180.00"),
            deluxe_price=Decimal("280.00"),
        )
    )).unwrap()


@pytest.fixture
async def concessions(engine) -> Dict[str, ConcessionSnapshot]:
    popcorn = (await engine.catalog.add_concession(
        ConcessionCreate(name="Popcorn", price=Decimal("120.00"), category="Snacks")
    )).unwrap()
    soda = (await engine.catalog.add_concession(
        ConcessionCreate(name="Soda", price=Decimal("80.00"), category="Drinks")
    )).unwrap()
    return {"popcorn": popcorn, "soda": soda}


@pytest.fixture
async def seats(engine, screening) -> Dict[str, Seat]:
    """Seats of the screening keyed by label."""
    return {seat.label: seat for seat in await engine.seat_inventory.list_seats(screening.id)}


@pytest.fixture
def reserved_labels(engine):
    """Labels of the reserved seats of a screening, read from the store."""

    async def labels(screening_id) -> List[str]:
        seats = await engine.seat_inventory.list_seats(screening_id)
        return sorted(seat.label for seat in seats if seat.reserved)

    return labels


@pytest.fixture
async def finalized_reservation(engine, screening, seats, concessions):
    """
    A guest reservation for A1 (standard), C1 (deluxe) and one popcorn.

    580.00 subtotal, 69.60 tax, 649.60 total.
    """
    booking = (await engine.workflow.start_for_guest(
        "Maria Clara", "maria@example.com", "0917 555 0199", screening.id
    )).unwrap()
    await engine.workflow.select_seats(booking, [seats["A1"].id, seats["C1"].id])
    await engine.workflow.select_concessions(booking, [(concessions["popcorn"].id, 1)])
    reservation_id = (await engine.workflow.finalize(booking)).unwrap()
    return reservation_id
