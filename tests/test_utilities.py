"""
Tests for retries, atomic execution, results and log filters.
"""

import logging

import pytest
from sqlalchemy.exc import OperationalError

from cinebook.database import execute_atomically, is_lock_contention
from cinebook.utils.exceptions import (
    ConcurrencyError,
    ErrorCategory,
    PromoCodeRejectedError,
    PromoRejection,
    StorageError,
)
from cinebook.utils.logging_config import (
    BookingSessionFilter,
    SensitiveDataFilter,
    booking_session_id_var,
    build_logging_config,
)
from cinebook.utils.result import Err, Ok
from cinebook.utils.retry import RetryConfig, retry_async


def make_record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("cinebook.test", logging.INFO, __file__, 1, msg, None, None)
    record.__dict__.update(extra)
    return record


def locked_error() -> OperationalError:
    return OperationalError("UPDATE seats", {}, Exception("database is locked"))


class TestRetry:

    async def test_retries_until_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConcurrencyError("lost the race")
            return "done"

        result = await retry_async(flaky, RetryConfig(max_attempts=3, base_delay=0, jitter=False))

        assert result == "done"
        assert len(calls) == 3

    async def test_gives_up_after_max_attempts(self):
        async def always_locked():
            raise ConcurrencyError("lost the race")

        with pytest.raises(ConcurrencyError):
            await retry_async(always_locked, RetryConfig(max_attempts=2, base_delay=0, jitter=False))

    async def test_other_errors_are_not_retried(self):
        calls = []

        async def broken():
            calls.append(1)
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await retry_async(broken, RetryConfig(max_attempts=3, base_delay=0))
        assert len(calls) == 1


class TestExecuteAtomically:

    def test_lock_contention_detection(self):
        assert is_lock_contention(locked_error())
        assert not is_lock_contention(OperationalError("SELECT 1", {}, Exception("no such table")))
        assert not is_lock_contention(ValueError("database is locked"))

    async def test_contention_becomes_storage_error(self, database):
        attempts = []

        async def work(session):
            attempts.append(1)
            raise locked_error()

        result = await execute_atomically(
            database.require_session_factory(), work, operation="test", max_attempts=2
        )

        assert isinstance(result.error, StorageError)
        assert result.error.retry_after == 1
        assert len(attempts) == 2

    async def test_other_storage_failures_are_not_retried(self, database):
        attempts = []

        async def work(session):
            attempts.append(1)
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        result = await execute_atomically(database.require_session_factory(), work, max_attempts=3)

        assert isinstance(result.error, StorageError)
        assert len(attempts) == 1

    async def test_nested_storage_failures_propagate(self, database):
        async def work(session):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        async with database.get_session() as session:
            with pytest.raises(OperationalError):
                await execute_atomically(database.require_session_factory(), work, session=session)


class TestResultAndErrors:

    def test_unwrap(self):
        assert Ok(5).unwrap() == 5
        assert Err(ValueError("x")).unwrap_or(7) == 7
        with pytest.raises(ValueError):
            Err(ValueError("x")).unwrap()

    def test_error_to_dict(self):
        error = PromoCodeRejectedError("WELCOME10", PromoRejection.EXPIRED, {"valid_until": "2026-10-31"})

        data = error.to_dict()

        assert data["error_code"] == "PROMO_CODE_REJECTED"
        assert data["category"] == ErrorCategory.CONFLICT.value
        assert data["details"] == {"code": "WELCOME10", "reason": "EXPIRED", "valid_until": "2026-10-31"}
        assert error.is_recoverable


class TestLogFilters:

    def test_contact_details_are_masked(self):
        record = make_record("Guest maria@example.com called from +63 917 555 0199")

        SensitiveDataFilter().filter(record)

        assert record.msg == "Guest ***EMAIL*** called from ***PHONE***"

    def test_identifiers_and_dates_are_kept(self):
        reservation_id = "3f2a9c0b-1d4e-4a6b-9c8d-7e6f5a4b3c2d"
        record = make_record(f"Reservation {reservation_id} on 2026-10-19 for 649.60")

        SensitiveDataFilter().filter(record)

        assert record.msg == f"Reservation {reservation_id} on 2026-10-19 for 649.60"

    def test_sensitive_extras_are_masked(self):
        record = make_record("event", guest_email="maria@example.com", details={"customer_phone": "0917", "seats": 2})

        SensitiveDataFilter().filter(record)

        assert record.guest_email == "***MASKED***"
        assert record.details == {"customer_phone": "***MASKED***", "seats": 2}

    def test_booking_session_id_is_attached(self):
        record = make_record("selected seats")
        token = booking_session_id_var.set("session-123")
        try:
            BookingSessionFilter().filter(record)
        finally:
            booking_session_id_var.reset(token)

        assert record.booking_session_id == "session-123"

    def test_records_outside_a_session(self):
        record = make_record("startup")

        BookingSessionFilter().filter(record)

        assert record.booking_session_id == "no-session"

    def test_production_adds_error_file(self, tmp_path):
        log_file = str(tmp_path / "logs" / "cinebook.log")

        config = build_logging_config("INFO", log_file, enable_json_logging=True, environment="production")

        assert config["handlers"]["error_file"]["filename"] == str(tmp_path / "logs" / "cinebook_errors.log")
        assert config["loggers"]["cinebook"]["handlers"] == ["console", "file", "error_file"]
        assert config["loggers"]["celery"]["handlers"] == ["console", "file"]
        assert config["handlers"]["console"]["formatter"] == "json"
