"""
Tests for seat generation, reservation and release.
"""

import asyncio
import uuid

import pytest

from cinebook.models.seat import SeatClass
from cinebook.services.seat_inventory import row_label
from cinebook.utils.exceptions import SeatsUnavailableError, ValidationError


class TestRowLabel:

    @pytest.mark.parametrize("row, label", [(1, "A"), (3, "C"), (26, "Z"), (27, "AA"), (28, "AB"), (52, "AZ")])
    def test_spreadsheet_labels(self, row, label):
        assert row_label(row) == label

    def test_rejects_non_positive_rows(self):
        with pytest.raises(ValueError):
            row_label(0)


class TestSeatGeneration:

    async def test_every_seat_is_generated_with_its_class(self, engine, screening, seats):
        # Then: 3 rows of 4 seats, last row deluxe
        assert len(seats) == 12
        assert sorted(seats) == sorted(f"{row}{col}" for row in "ABC" for col in range(1, 5))
        assert {seats[f"C{col}"].seat_class for col in range(1, 5)} == {SeatClass.DELUXE}
        assert {seats[f"A{col}"].seat_class for col in range(1, 5)} == {SeatClass.STANDARD}
        assert not any(seat.reserved for seat in seats.values())

    async def test_seat_map_groups_by_row(self, engine, screening, seats):
        # Given
        await engine.seat_inventory.reserve_seats([seats["B2"].id])

        # When
        seat_map = await engine.seat_inventory.seat_map(screening.id)

        # Then
        assert list(seat_map.rows) == ["A", "B", "C"]
        assert [view.label for view in seat_map.rows["B"]] == ["B1", "B2", "B3", "B4"]
        assert seat_map.rows["B"][1].reserved is True
        assert seat_map.total_seats == 12
        assert seat_map.reserved_seats == 1
        assert seat_map.available_seats == 11
        assert await engine.seat_inventory.count_available(screening.id) == 11

    async def test_get_seats_keeps_request_order(self, engine, seats):
        requested = [seats["C4"].id, uuid.uuid4(), seats["A1"].id]

        found = await engine.seat_inventory.get_seats(requested)

        assert [seat.label for seat in found] == ["C4", "A1"]


class TestReserveSeats:

    async def test_reserve_marks_all_seats(self, engine, screening, seats, reserved_labels):
        # When
        result = await engine.seat_inventory.reserve_seats([seats["A1"].id, seats["A2"].id], screening.id)

        # Then
        assert result.is_ok()
        assert result.value.affected == 2
        assert await reserved_labels(screening.id) == ["A1", "A2"]

    async def test_reserve_is_all_or_nothing(self, engine, screening, seats, reserved_labels):
        # Given: A2 is already taken
        await engine.seat_inventory.reserve_seats([seats["A2"].id])

        # When: a request overlaps on A2
        result = await engine.seat_inventory.reserve_seats(
            [seats["A1"].id, seats["A2"].id, seats["A3"].id], screening.id
        )

        # Then: nothing new is reserved and the conflict names A2
        assert result.is_err()
        assert isinstance(result.error, SeatsUnavailableError)
        assert result.error.unavailable == ["A2"]
        assert await reserved_labels(screening.id) == ["A2"]

    async def test_unknown_seat_is_reported_missing(self, engine, screening, seats, reserved_labels):
        ghost = uuid.uuid4()

        result = await engine.seat_inventory.reserve_seats([seats["A1"].id, ghost])

        assert result.is_err()
        assert result.error.missing == [str(ghost)]
        assert await reserved_labels(screening.id) == []

    async def test_seat_of_another_screening_is_unavailable(self, engine, screening, seats):
        other_screening = uuid.uuid4()

        result = await engine.seat_inventory.reserve_seats([seats["A1"].id], screening_id=other_screening)

        assert result.is_err()
        assert result.error.unavailable == ["A1"]

    async def test_empty_request_is_rejected(self, engine):
        result = await engine.seat_inventory.reserve_seats([])

        assert result.is_err()
        assert isinstance(result.error, ValidationError)

    @pytest.mark.concurrency
    async def test_overlapping_concurrent_requests_have_one_winner(self, engine, screening, seats, reserved_labels):
        # Given: five customers all wanting B2 plus a seat of their own
        requests = [[seats["B2"].id, seats[f"A{col}"].id] for col in range(1, 5)]
        requests.append([seats["B2"].id, seats["C1"].id])

        # When
        results = await asyncio.gather(*(
            engine.seat_inventory.reserve_seats(ids, screening.id) for ids in requests
        ))

        # Then: exactly one request got both seats, nobody got a partial set
        winners = [ids for ids, result in zip(requests, results) if result.is_ok()]
        assert len(winners) == 1
        assert all(isinstance(r.error, SeatsUnavailableError) for r in results if r.is_err())
        assert len(await reserved_labels(screening.id)) == 2


class TestReleaseSeats:

    async def test_release_is_idempotent(self, engine, screening, seats, reserved_labels):
        # Given
        ids = [seats["A1"].id, seats["A2"].id]
        await engine.seat_inventory.reserve_seats(ids)

        # When
        first = await engine.seat_inventory.release_seats(ids)
        second = await engine.seat_inventory.release_seats(ids)

        # Then
        assert first.value.affected == 2
        assert second.is_ok()
        assert second.value.affected == 0
        assert await reserved_labels(screening.id) == []

    async def test_release_nothing(self, engine):
        result = await engine.seat_inventory.release_seats([])

        assert result.is_ok()
        assert result.value.affected == 0
