"""
Explicit success/failure values for store-mutating operations.

Usage:
    result = await inventory.reserve_seats(seat_ids)
    if result.is_err():
        show(result.error.to_dict())
    else:
        ack = result.value
"""

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed outcome carrying the error that caused it."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise self.error

    def unwrap_or(self, default):
        return default


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class Ack:
    """Acknowledgement for operations that have nothing else to return."""

    affected: int = 0
