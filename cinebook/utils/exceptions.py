"""
Error taxonomy for the CineBook booking engine.

Errors are ordinary exception classes so they can be raised where that is the
natural thing to do, but store-mutating operations hand them back inside an
``Err`` result instead (see ``cinebook.utils.result``).
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class ErrorCode(str, Enum):
    """Standard error codes for the engine."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    STORAGE_ERROR = "STORAGE_ERROR"

    # Workflow errors
    INVALID_SESSION_STATE = "INVALID_SESSION_STATE"
    SCREENING_INACTIVE = "SCREENING_INACTIVE"

    # Conflict errors
    SEATS_UNAVAILABLE = "SEATS_UNAVAILABLE"
    PROMO_CODE_REJECTED = "PROMO_CODE_REJECTED"
    DUPLICATE_PROMO_CODE = "DUPLICATE_PROMO_CODE"
    RESERVATION_ALREADY_PAID = "RESERVATION_ALREADY_PAID"
    RESERVATION_NOT_PAID = "RESERVATION_NOT_PAID"
    PAYMENT_IN_PROGRESS = "PAYMENT_IN_PROGRESS"
    TICKET_ALREADY_USED = "TICKET_ALREADY_USED"
    SCREENING_HAS_RESERVATIONS = "SCREENING_HAS_RESERVATIONS"

    # Concurrency errors
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"

    # Payment errors
    PAYMENT_DECLINED = "PAYMENT_DECLINED"


class ErrorCategory(str, Enum):
    """How a caller is expected to react to an error."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    INTEGRITY = "integrity"
    NOT_FOUND = "not_found"


class PromoRejection(str, Enum):
    """Reasons a promo code can be refused, in evaluation order."""

    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    EXPIRED = "EXPIRED"
    MAX_USES_REACHED = "MAX_USES_REACHED"
    BELOW_MINIMUM_PURCHASE = "BELOW_MINIMUM_PURCHASE"


class CinebookError(Exception):
    """Base exception class for the booking engine."""

    category = ErrorCategory.INTEGRITY

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        """Initialize the exception with comprehensive error information."""
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    @property
    def is_recoverable(self) -> bool:
        """Whether retrying with different input can succeed."""
        return self.category in (ErrorCategory.CONFLICT, ErrorCategory.VALIDATION, ErrorCategory.NOT_FOUND)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for the presentation tier."""
        result = {
            "error_code": self.error_code.value,
            "category": self.category.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(CinebookError):
    """Exception raised for malformed input."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.VALIDATION_ERROR)
        details = kwargs.pop("details", None)
        if field_errors:
            details = {"field_errors": field_errors}
        super().__init__(message, details=details, **kwargs)
        self.field_errors = field_errors or {}


class InvalidSessionStateError(ValidationError):
    """Exception raised when a workflow step is called in the wrong state."""

    def __init__(self, operation: str, current_state: str, allowed_states: Iterable[str], **kwargs):
        allowed = sorted(allowed_states)
        super().__init__(
            f"Cannot {operation} while the booking session is {current_state}",
            error_code=ErrorCode.INVALID_SESSION_STATE,
            details={"operation": operation, "current_state": current_state, "allowed_states": allowed},
            **kwargs
        )


class ScreeningInactiveError(ValidationError):
    """Exception raised when booking is attempted for an inactive screening."""

    def __init__(self, screening_id: str, **kwargs):
        super().__init__(
            f"Screening {screening_id} is not open for booking",
            error_code=ErrorCode.SCREENING_INACTIVE,
            details={"screening_id": screening_id},
            suggestions=["Choose another showtime"],
            **kwargs
        )


class NotFoundError(CinebookError):
    """Base exception for resource not found errors."""

    category = ErrorCategory.NOT_FOUND

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class ScreeningNotFoundError(NotFoundError):
    """Exception raised when a screening is not found."""

    def __init__(self, screening_id: str, **kwargs):
        super().__init__(
            f"Screening {screening_id} not found",
            resource_type="screening",
            resource_id=screening_id,
            suggestions=["Check the screening ID", "Browse current showtimes"],
            **kwargs
        )


class MovieNotFoundError(NotFoundError):
    """Exception raised when a movie is not found."""

    def __init__(self, movie_id: str, **kwargs):
        super().__init__(f"Movie {movie_id} not found", resource_type="movie", resource_id=movie_id, **kwargs)


class CinemaNotFoundError(NotFoundError):
    """Exception raised when a cinema is not found."""

    def __init__(self, cinema_id: str, **kwargs):
        super().__init__(f"Cinema {cinema_id} not found", resource_type="cinema", resource_id=cinema_id, **kwargs)


class SeatNotFoundError(NotFoundError):
    """Exception raised when a seat is not found."""

    def __init__(self, seat_id: str, **kwargs):
        super().__init__(f"Seat {seat_id} not found", resource_type="seat", resource_id=seat_id, **kwargs)


class ConcessionNotFoundError(NotFoundError):
    """Exception raised when a concession is not found."""

    def __init__(self, concession_id: str, **kwargs):
        super().__init__(
            f"Concession {concession_id} not found",
            resource_type="concession",
            resource_id=concession_id,
            **kwargs
        )


class ReservationNotFoundError(NotFoundError):
    """Exception raised when a reservation is not found."""

    def __init__(self, reservation_id: str, **kwargs):
        super().__init__(
            f"Reservation {reservation_id} not found",
            resource_type="reservation",
            resource_id=reservation_id,
            suggestions=["Check the reservation ID", "View your booking history"],
            **kwargs
        )


class PromoCodeNotFoundError(NotFoundError):
    """Exception raised when a promo code is not found."""

    def __init__(self, code: str, **kwargs):
        super().__init__(f"Promo code {code} not found", resource_type="promo_code", resource_id=code, **kwargs)


class TicketNotFoundError(NotFoundError):
    """Exception raised when a ticket is not found."""

    def __init__(self, ticket_code: str, **kwargs):
        super().__init__(f"Ticket {ticket_code} not found", resource_type="ticket", resource_id=ticket_code, **kwargs)


class ConflictError(CinebookError):
    """Base exception for recoverable conflicts with shared state."""

    category = ErrorCategory.CONFLICT


class SeatsUnavailableError(ConflictError):
    """Exception raised when one or more seats cannot be reserved."""

    def __init__(self, unavailable: List[str], missing: Optional[List[str]] = None, **kwargs):
        missing = missing or []
        parts = []
        if unavailable:
            parts.append(f"already reserved: {', '.join(unavailable)}")
        if missing:
            parts.append(f"not found: {', '.join(missing)}")
        super().__init__(
            f"Seats no longer available ({'; '.join(parts)})",
            error_code=ErrorCode.SEATS_UNAVAILABLE,
            details={"unavailable_seats": unavailable, "missing_seats": missing},
            suggestions=["Choose different seats", "Refresh the seat map"],
            **kwargs
        )
        self.unavailable = unavailable
        self.missing = missing


PROMO_REJECTION_MESSAGES = {
    PromoRejection.NOT_FOUND: "Invalid promo code.",
    PromoRejection.INACTIVE: "This promo code is no longer active.",
    PromoRejection.NOT_YET_VALID: "This promo code is not valid yet.",
    PromoRejection.EXPIRED: "This promo code has expired.",
    PromoRejection.MAX_USES_REACHED: "This promo code has reached its maximum number of uses.",
    PromoRejection.BELOW_MINIMUM_PURCHASE: "This promo code requires a higher minimum purchase.",
}


class PromoCodeRejectedError(ConflictError):
    """Exception raised when a promo code cannot be applied."""

    def __init__(self, code: str, reason: PromoRejection, extra: Optional[Dict[str, Any]] = None, **kwargs):
        details = {"code": code, "reason": reason.value}
        details.update(extra or {})
        super().__init__(
            PROMO_REJECTION_MESSAGES[reason],
            error_code=ErrorCode.PROMO_CODE_REJECTED,
            details=details,
            suggestions=["Remove the promo code or try a different one"],
            **kwargs
        )
        self.code = code
        self.reason = reason


class DuplicatePromoCodeError(ConflictError):
    """Exception raised when a promo code already exists."""

    def __init__(self, code: str, **kwargs):
        super().__init__(
            f"Promo code {code} already exists",
            error_code=ErrorCode.DUPLICATE_PROMO_CODE,
            details={"code": code},
            **kwargs
        )


class ReservationAlreadyPaidError(ConflictError):
    """Exception raised when paying for a reservation that is already paid."""

    def __init__(self, reservation_id: str, **kwargs):
        super().__init__(
            f"Reservation {reservation_id} has already been paid",
            error_code=ErrorCode.RESERVATION_ALREADY_PAID,
            details={"reservation_id": reservation_id},
            **kwargs
        )


class PaymentInProgressError(ConflictError):
    """Exception raised when another payment for the reservation is awaiting the gateway."""

    def __init__(self, reservation_id: str, **kwargs):
        super().__init__(
            f"A payment for reservation {reservation_id} is already in progress",
            error_code=ErrorCode.PAYMENT_IN_PROGRESS,
            details={"reservation_id": reservation_id},
            suggestions=["Wait for the current payment to finish"],
            **kwargs
        )


class ReservationNotPaidError(ConflictError):
    """Exception raised when tickets are requested for an unpaid reservation."""

    def __init__(self, reservation_id: str, **kwargs):
        super().__init__(
            f"Reservation {reservation_id} has not been paid",
            error_code=ErrorCode.RESERVATION_NOT_PAID,
            details={"reservation_id": reservation_id},
            suggestions=["Complete payment first"],
            **kwargs
        )


class TicketAlreadyUsedError(ConflictError):
    """Exception raised when a ticket is presented a second time."""

    def __init__(self, ticket_code: str, **kwargs):
        super().__init__(
            f"Ticket {ticket_code} has already been used",
            error_code=ErrorCode.TICKET_ALREADY_USED,
            details={"ticket_code": ticket_code},
            **kwargs
        )


class ScreeningHasReservationsError(ConflictError):
    """Exception raised when deleting a screening with reserved seats."""

    def __init__(self, screening_id: str, reserved_count: int, **kwargs):
        super().__init__(
            f"Cannot delete screening {screening_id} with {reserved_count} reserved seats",
            error_code=ErrorCode.SCREENING_HAS_RESERVATIONS,
            details={"screening_id": screening_id, "reserved_count": reserved_count},
            suggestions=["Cancel the reservations first", "Deactivate the screening instead"],
            **kwargs
        )


class PaymentDeclinedError(ConflictError):
    """Exception raised when the payment gateway declines a charge."""

    def __init__(self, reservation_id: str, transaction_reference: str, reason: str, **kwargs):
        super().__init__(
            f"Payment for reservation {reservation_id} was declined: {reason}",
            error_code=ErrorCode.PAYMENT_DECLINED,
            details={"reservation_id": reservation_id, "transaction_reference": transaction_reference},
            suggestions=["Try another payment method"],
            **kwargs
        )


class StorageError(CinebookError):
    """Exception raised when the store fails; the operation was rolled back."""

    category = ErrorCategory.INTEGRITY

    def __init__(self, message: str = "Something went wrong while saving your booking. Please try again.", **kwargs):
        kwargs.setdefault("error_code", ErrorCode.STORAGE_ERROR)
        kwargs.setdefault("suggestions", ["Please try again"])
        super().__init__(message, **kwargs)


class ConcurrencyError(CinebookError):
    """Exception raised when a transaction lost a lock race and may be retried."""

    category = ErrorCategory.INTEGRITY

    def __init__(self, message: str, retry_after: int = 1, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.CONCURRENCY_CONFLICT,
            retry_after=retry_after,
            suggestions=["Please try again", "Wait a moment and retry"],
            **kwargs
        )
