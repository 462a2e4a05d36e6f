"""
Seat inventory: the per-screening seat rows and their reserved flag.

This is the only place that writes ``seats.reserved``. Reserving is
all-or-nothing: the requested rows are locked in id order, checked, and then
flipped with a compare-and-set UPDATE whose row count must match the request.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from ..config import Settings, get_settings
from ..database import AbortTransaction, execute_atomically, read_session
from ..models.seat import Seat, SeatClass
from ..schemas.seat import SeatMap, SeatView
from ..utils.exceptions import (
    CinebookError,
    ScreeningHasReservationsError,
    SeatsUnavailableError,
    ValidationError,
)
from ..utils.result import Ack, Err, Ok, Result

logger = logging.getLogger(__name__)


def row_label(row_number: int) -> str:
    """
    Spreadsheet-style row label: 1 -> A, 26 -> Z, 27 -> AA, 28 -> AB.
    """
    if row_number < 1:
        raise ValueError("row_number must be positive")
    label = ""
    while row_number:
        row_number, remainder = divmod(row_number - 1, 26)
        label = chr(ord("A") + remainder) + label
    return label


def _unique(seat_ids: Iterable[UUID]) -> List[UUID]:
    return list(dict.fromkeys(seat_ids))


class SeatInventory:
    """Service owning seat rows for every screening."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def list_seats(self, screening_id: UUID, session: Optional[AsyncSession] = None) -> List[Seat]:
        """Seats of a screening ordered by row, then column."""
        async with read_session(self.session_factory, session) as db:
            result = await db.execute(
                select(Seat)
                .where(Seat.screening_id == screening_id)
                .order_by(Seat.row_number, Seat.column_number)
            )
            return list(result.scalars().all())

    async def get_seats(self, seat_ids: Sequence[UUID], session: Optional[AsyncSession] = None) -> List[Seat]:
        """Seats by id, in the order requested; unknown ids are skipped."""
        ids = _unique(seat_ids)
        if not ids:
            return []
        async with read_session(self.session_factory, session) as db:
            result = await db.execute(select(Seat).where(Seat.id.in_(ids)))
            by_id = {seat.id: seat for seat in result.scalars().all()}
        return [by_id[seat_id] for seat_id in ids if seat_id in by_id]

    async def count_available(self, screening_id: UUID) -> int:
        async with read_session(self.session_factory) as db:
            result = await db.execute(
                select(func.count(Seat.id)).where(
                    Seat.screening_id == screening_id,
                    Seat.reserved.is_(False)
                )
            )
            return result.scalar_one()

    async def seat_map(self, screening_id: UUID) -> SeatMap:
        """Seats of a screening grouped by row label."""
        seats = await self.list_seats(screening_id)

        rows: Dict[str, List[SeatView]] = defaultdict(list)
        for seat in seats:
            rows[row_label(seat.row_number)].append(SeatView.model_validate(seat))

        reserved = sum(1 for seat in seats if seat.reserved)
        return SeatMap(
            screening_id=screening_id,
            rows=dict(rows),
            total_seats=len(seats),
            available_seats=len(seats) - reserved,
            reserved_seats=reserved
        )

    async def reserve_seats(
        self,
        seat_ids: Iterable[UUID],
        screening_id: Optional[UUID] = None,
        session: Optional[AsyncSession] = None
    ) -> Result[Ack, CinebookError]:
        """
        Mark every seat as reserved, or none of them.

        Args:
            seat_ids: Seats to reserve
            screening_id: When given, seats of any other screening count as unavailable
            session: Caller's transaction; the reservation then runs in a SAVEPOINT

        Returns:
            Ok(Ack) with the number of seats reserved, or Err(SeatsUnavailableError)
            naming the seats that were taken or do not exist
        """
        ids = _unique(seat_ids)
        if not ids:
            return Err(ValidationError("Select at least one seat", field_errors={"seat_ids": ["empty selection"]}))

        async def work(db: AsyncSession) -> Ack:
            # Lock in a stable order so overlapping requests cannot deadlock
            result = await db.execute(
                select(Seat)
                .where(Seat.id.in_(ids))
                .order_by(Seat.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            seats = {seat.id: seat for seat in result.scalars().all()}

            missing = [str(seat_id) for seat_id in ids if seat_id not in seats]
            taken = [
                seats[seat_id].label for seat_id in ids
                if seat_id in seats and (
                    seats[seat_id].reserved
                    or (screening_id is not None and seats[seat_id].screening_id != screening_id)
                )
            ]
            if missing or taken:
                raise AbortTransaction(SeatsUnavailableError(unavailable=taken, missing=missing))

            updated = await db.execute(
                update(Seat)
                .where(Seat.id.in_(ids), Seat.reserved.is_(False))
                .values(reserved=True)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != len(ids):
                logger.warning(
                    f"Seat reservation matched {updated.rowcount} of {len(ids)} rows; rolling back"
                )
                raise AbortTransaction(
                    SeatsUnavailableError(unavailable=[seats[seat_id].label for seat_id in ids])
                )

            for seat in seats.values():
                set_committed_value(seat, "reserved", True)

            return Ack(affected=updated.rowcount)

        outcome = await execute_atomically(
            self.session_factory,
            work,
            session=session,
            operation="reserve_seats",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            logger.info(f"Reserved {outcome.value.affected} seats")
        else:
            logger.info(f"Seat reservation refused: {outcome.error.message}")
        return outcome

    async def release_seats(
        self,
        seat_ids: Iterable[UUID],
        session: Optional[AsyncSession] = None
    ) -> Result[Ack, CinebookError]:
        """Mark seats as free again. Releasing a free seat is not an error."""
        ids = _unique(seat_ids)
        if not ids:
            return Ok(Ack(affected=0))

        async def work(db: AsyncSession) -> Ack:
            result = await db.execute(
                update(Seat)
                .where(Seat.id.in_(ids), Seat.reserved.is_(True))
                .values(reserved=False)
                .execution_options(synchronize_session=False)
            )
            # Refresh any copies already loaded in this session
            for seat in db.identity_map.values():
                if isinstance(seat, Seat) and seat.id in ids:
                    set_committed_value(seat, "reserved", False)
            return Ack(affected=result.rowcount)

        outcome = await execute_atomically(
            self.session_factory,
            work,
            session=session,
            operation="release_seats",
            max_attempts=self.settings.max_retry_attempts
        )
        if outcome.is_ok():
            logger.info(f"Released {outcome.value.affected} of {len(ids)} seats")
        return outcome

    async def generate_seats(
        self,
        screening_id: UUID,
        total_rows: int,
        seats_per_row: int,
        deluxe_rows: int,
        session: AsyncSession
    ) -> List[Seat]:
        """
        Create every seat of a new screening inside the caller's transaction.

        The last ``deluxe_rows`` rows are DELUXE, the rest STANDARD.
        """
        first_deluxe_row = total_rows - deluxe_rows + 1
        seats = []
        for row in range(1, total_rows + 1):
            seat_class = SeatClass.DELUXE if row >= first_deluxe_row else SeatClass.STANDARD
            label_prefix = row_label(row)
            for column in range(1, seats_per_row + 1):
                seats.append(Seat(
                    screening_id=screening_id,
                    label=f"{label_prefix}{column}",
                    row_number=row,
                    column_number=column,
                    seat_class=seat_class,
                    reserved=False
                ))

        session.add_all(seats)
        await session.flush()

        logger.info(f"Generated {len(seats)} seats for screening {screening_id}")
        return seats

    async def delete_seats_for_screening(
        self,
        screening_id: UUID,
        session: AsyncSession
    ) -> Result[Ack, CinebookError]:
        """Delete all seats of a screening; refused while any seat is reserved."""

        async def work(db: AsyncSession) -> Ack:
            reserved_count = (await db.execute(
                select(func.count(Seat.id)).where(
                    Seat.screening_id == screening_id,
                    Seat.reserved.is_(True)
                )
            )).scalar_one()
            if reserved_count:
                raise AbortTransaction(ScreeningHasReservationsError(str(screening_id), reserved_count))

            result = await db.execute(
                delete(Seat)
                .where(Seat.screening_id == screening_id)
                .execution_options(synchronize_session=False)
            )
            return Ack(affected=result.rowcount)

        return await execute_atomically(
            self.session_factory, work, session=session, operation="delete_seats_for_screening"
        )
