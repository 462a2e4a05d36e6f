"""
Catalog reference data: movies, cinemas, screenings and concessions.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..cache import CacheKeyBuilder, RedisCache
from ..config import Settings, get_settings
from ..database import AbortTransaction, execute_atomically, read_session
from ..models.cinema import Cinema
from ..models.concession import Concession
from ..models.movie import Movie
from ..models.screening import Screening
from ..schemas.catalog import (
    CinemaCreate,
    CinemaSnapshot,
    ConcessionCreate,
    ConcessionSnapshot,
    MovieCreate,
    MovieSnapshot,
    ScreeningCreate,
    ScreeningSnapshot,
    ScreeningUpdate,
)
from ..utils.exceptions import (
    CinebookError,
    CinemaNotFoundError,
    ConcessionNotFoundError,
    MovieNotFoundError,
    ScreeningInactiveError,
    ScreeningNotFoundError,
    ValidationError,
)
from ..utils.result import Ack, Err, Ok, Result
from .seat_inventory import SeatInventory

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for catalog reference data used by the booking workflow."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        seat_inventory: SeatInventory,
        cache: Optional[RedisCache] = None,
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory
        self.seat_inventory = seat_inventory
        self.cache = cache
        self.settings = settings or get_settings()

    # Data entry

    async def add_movie(self, data: MovieCreate) -> Result[MovieSnapshot, CinebookError]:
        async def work(db: AsyncSession) -> MovieSnapshot:
            movie = Movie(**data.model_dump(), is_active=True)
            db.add(movie)
            await db.flush()
            return MovieSnapshot.model_validate(movie)

        return await self._write(work, "add_movie")

    async def add_cinema(self, data: CinemaCreate) -> Result[CinemaSnapshot, CinebookError]:
        """
        Add a cinema hall.

        A hall with deluxe seating and no explicit row count gets the
        configured default number of deluxe rows, capped at its row count.
        """
        deluxe_rows = 0
        if data.has_deluxe_seats:
            deluxe_rows = data.deluxe_rows
            if deluxe_rows is None:
                deluxe_rows = min(self.settings.default_deluxe_rows, data.total_rows)

        async def work(db: AsyncSession) -> CinemaSnapshot:
            existing = await db.execute(select(Cinema.id).where(Cinema.name == data.name))
            if existing.first() is not None:
                raise AbortTransaction(ValidationError(
                    f"A cinema named {data.name!r} already exists",
                    field_errors={"name": ["already exists"]}
                ))

            cinema = Cinema(
                name=data.name,
                location=data.location,
                total_rows=data.total_rows,
                seats_per_row=data.seats_per_row,
                has_deluxe_seats=data.has_deluxe_seats,
                deluxe_rows=deluxe_rows,
                is_active=True
            )
            db.add(cinema)
            await db.flush()
            return CinemaSnapshot.model_validate(cinema)

        return await self._write(work, "add_cinema")

    async def add_concession(self, data: ConcessionCreate) -> Result[ConcessionSnapshot, CinebookError]:
        async def work(db: AsyncSession) -> ConcessionSnapshot:
            concession = Concession(**data.model_dump())
            db.add(concession)
            await db.flush()
            return ConcessionSnapshot.model_validate(concession)

        outcome = await self._write(work, "add_concession")
        if outcome.is_ok():
            await self._invalidate(CacheKeyBuilder.available_concessions())
        return outcome

    async def set_concession_availability(
        self,
        concession_id: UUID,
        available: bool
    ) -> Result[ConcessionSnapshot, CinebookError]:
        async def work(db: AsyncSession) -> ConcessionSnapshot:
            concession = await db.get(Concession, concession_id, with_for_update=True)
            if concession is None:
                raise AbortTransaction(ConcessionNotFoundError(str(concession_id)))
            concession.is_available = available
            await db.flush()
            return ConcessionSnapshot.model_validate(concession)

        outcome = await self._write(work, "set_concession_availability")
        if outcome.is_ok():
            await self._invalidate(
                CacheKeyBuilder.concession(concession_id),
                CacheKeyBuilder.available_concessions()
            )
        return outcome

    async def create_screening(self, data: ScreeningCreate) -> Result[ScreeningSnapshot, CinebookError]:
        """
        Schedule a screening and generate its seats in the same transaction.
        """

        async def work(db: AsyncSession) -> ScreeningSnapshot:
            movie = await db.get(Movie, data.movie_id)
            if movie is None:
                raise AbortTransaction(MovieNotFoundError(str(data.movie_id)))
            cinema = await db.get(Cinema, data.cinema_id)
            if cinema is None:
                raise AbortTransaction(CinemaNotFoundError(str(data.cinema_id)))
            if not cinema.is_active:
                raise AbortTransaction(ValidationError(
                    f"Cinema {cinema.name} is not active",
                    field_errors={"cinema_id": ["inactive cinema"]}
                ))

            screening = Screening(**data.model_dump(), is_active=True)
            db.add(screening)
            await db.flush()

            await self.seat_inventory.generate_seats(
                screening.id,
                total_rows=cinema.total_rows,
                seats_per_row=cinema.seats_per_row,
                deluxe_rows=cinema.deluxe_rows if cinema.has_deluxe_seats else 0,
                session=db
            )
            return ScreeningSnapshot.model_validate(screening)

        outcome = await self._write(work, "create_screening")
        if outcome.is_ok():
            logger.info(f"Screening {outcome.value.id} created for movie {data.movie_id}")
        return outcome

    async def update_screening(
        self,
        screening_id: UUID,
        data: ScreeningUpdate
    ) -> Result[ScreeningSnapshot, CinebookError]:
        """
        Edit a screening's movie, time, prices or status.

        Finalized reservations keep the amounts frozen on them; new prices
        only apply to checkouts finalized afterwards.
        """
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        async def work(db: AsyncSession) -> ScreeningSnapshot:
            screening = await db.get(Screening, screening_id, with_for_update=True)
            if screening is None:
                raise AbortTransaction(ScreeningNotFoundError(str(screening_id)))
            movie_id = changes.get("movie_id")
            if movie_id is not None and await db.get(Movie, movie_id) is None:
                raise AbortTransaction(MovieNotFoundError(str(movie_id)))

            for name, value in changes.items():
                setattr(screening, name, value)
            await db.flush()
            return ScreeningSnapshot.model_validate(screening)

        outcome = await self._write(work, "update_screening")
        if outcome.is_ok():
            await self._invalidate(CacheKeyBuilder.screening(screening_id))
            logger.info(f"Screening {screening_id} updated: {', '.join(sorted(changes)) or 'no changes'}")
        return outcome

    async def deactivate_screening(self, screening_id: UUID) -> Result[Ack, CinebookError]:
        """Stop selling a screening; existing reservations are untouched."""

        async def work(db: AsyncSession) -> Ack:
            screening = await db.get(Screening, screening_id, with_for_update=True)
            if screening is None:
                raise AbortTransaction(ScreeningNotFoundError(str(screening_id)))
            screening.is_active = False
            return Ack(affected=1)

        outcome = await self._write(work, "deactivate_screening")
        if outcome.is_ok():
            await self._invalidate(CacheKeyBuilder.screening(screening_id))
        return outcome

    async def delete_screening(self, screening_id: UUID) -> Result[Ack, CinebookError]:
        """Delete a screening and its seats; refused while any seat is reserved."""

        async def work(db: AsyncSession) -> Ack:
            screening = await db.get(Screening, screening_id, with_for_update=True)
            if screening is None:
                raise AbortTransaction(ScreeningNotFoundError(str(screening_id)))

            removed = await self.seat_inventory.delete_seats_for_screening(screening_id, session=db)
            if removed.is_err():
                raise AbortTransaction(removed.error)

            await db.execute(
                delete(Screening)
                .where(Screening.id == screening_id)
                .execution_options(synchronize_session=False)
            )
            return Ack(affected=1)

        outcome = await self._write(work, "delete_screening")
        if outcome.is_ok():
            await self._invalidate(CacheKeyBuilder.screening(screening_id))
            logger.info(f"Screening {screening_id} deleted")
        return outcome

    # Queries

    async def get_screening(self, screening_id: UUID) -> Optional[ScreeningSnapshot]:
        """Get a screening snapshot, served from the cache when possible."""
        cache_key = CacheKeyBuilder.screening(screening_id)
        cached = await self._cached(cache_key)
        if cached:
            return ScreeningSnapshot(**cached)

        async with read_session(self.session_factory) as db:
            screening = await db.get(Screening, screening_id)
            if screening is None:
                return None
            snapshot = ScreeningSnapshot.model_validate(screening)

        await self._store(cache_key, snapshot.model_dump(mode="json"))
        return snapshot

    async def require_bookable_screening(self, screening_id: UUID) -> Result[ScreeningSnapshot, CinebookError]:
        """The screening if it exists and is open for booking."""
        snapshot = await self.get_screening(screening_id)
        if snapshot is None:
            return Err(ScreeningNotFoundError(str(screening_id)))
        if not snapshot.is_active:
            return Err(ScreeningInactiveError(str(screening_id)))
        return Ok(snapshot)

    async def list_screenings(
        self,
        active_only: bool = True,
        on_date: Optional[date] = None,
        movie_id: Optional[UUID] = None,
        cinema_id: Optional[UUID] = None
    ) -> List[ScreeningSnapshot]:
        """List screenings ordered by start time."""
        query = select(Screening).order_by(Screening.start_time)
        if active_only:
            query = query.where(Screening.is_active.is_(True))
        if movie_id is not None:
            query = query.where(Screening.movie_id == movie_id)
        if cinema_id is not None:
            query = query.where(Screening.cinema_id == cinema_id)
        if on_date is not None:
            day_start = datetime.combine(on_date, time.min)
            query = query.where(
                Screening.start_time >= day_start,
                Screening.start_time < day_start + timedelta(days=1)
            )

        async with read_session(self.session_factory) as db:
            result = await db.execute(query)
            return [ScreeningSnapshot.model_validate(s) for s in result.scalars().all()]

    async def list_screenings_by_cinema(self, cinema_id: UUID, active_only: bool = True) -> List[ScreeningSnapshot]:
        return await self.list_screenings(active_only=active_only, cinema_id=cinema_id)

    async def get_concession(self, concession_id: UUID) -> Optional[ConcessionSnapshot]:
        cache_key = CacheKeyBuilder.concession(concession_id)
        cached = await self._cached(cache_key)
        if cached:
            return ConcessionSnapshot(**cached)

        async with read_session(self.session_factory) as db:
            concession = await db.get(Concession, concession_id)
            if concession is None:
                return None
            snapshot = ConcessionSnapshot.model_validate(concession)

        await self._store(cache_key, snapshot.model_dump(mode="json"))
        return snapshot

    async def get_concessions(
        self,
        concession_ids: Sequence[UUID],
        session: Optional[AsyncSession] = None
    ) -> List[ConcessionSnapshot]:
        """Concessions by id; unknown ids are skipped. Always reads the store."""
        ids = list(dict.fromkeys(concession_ids))
        if not ids:
            return []
        async with read_session(self.session_factory, session) as db:
            result = await db.execute(select(Concession).where(Concession.id.in_(ids)))
            return [ConcessionSnapshot.model_validate(c) for c in result.scalars().all()]

    async def list_available_concessions(self) -> List[ConcessionSnapshot]:
        cache_key = CacheKeyBuilder.available_concessions()
        cached = await self._cached(cache_key)
        if cached is not None:
            return [ConcessionSnapshot(**item) for item in cached]

        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(Concession)
                .where(Concession.is_available.is_(True))
                .order_by(Concession.category, Concession.name)
            )
            snapshots = [ConcessionSnapshot.model_validate(c) for c in result.scalars().all()]

        await self._store(cache_key, [s.model_dump(mode="json") for s in snapshots])
        return snapshots

    async def list_concession_categories(self) -> List[str]:
        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(Concession.category).distinct().order_by(Concession.category)
            )
            return list(result.scalars().all())

    async def list_concessions_by_category(self, category: str) -> List[ConcessionSnapshot]:
        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(Concession)
                .where(Concession.category == category, Concession.is_available.is_(True))
                .order_by(Concession.name)
            )
            return [ConcessionSnapshot.model_validate(c) for c in result.scalars().all()]

    # Helpers

    async def _write(self, work, operation: str) -> Result:
        return await execute_atomically(
            self.session_factory, work, operation=operation,
            max_attempts=self.settings.max_retry_attempts
        )

    async def _cached(self, key: str):
        if self.cache is None:
            return None
        return await self.cache.get(key)

    async def _store(self, key: str, value) -> None:
        if self.cache is not None:
            await self.cache.set(key, value)

    async def _invalidate(self, *keys: str) -> None:
        if self.cache is not None:
            await self.cache.delete(*keys)
