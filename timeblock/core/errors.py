"""Error taxonomy and user-facing classification for the timer engine."""

from enum import Enum

from pydantic import BaseModel


class TimeBlockError(Exception):
    """Base class for all timeblock errors."""


class StoreWriteError(TimeBlockError):
    """A create/update/delete/batch write to the activity store failed."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(message)
        self.operation = operation


class SubscriptionError(TimeBlockError):
    """The activity store could not deliver a snapshot."""


class InvariantViolationError(TimeBlockError):
    """A delivered snapshot breaks a scheduling invariant (e.g. two running activities)."""


class ActivityValidationError(TimeBlockError, ValueError):
    """User input for an activity was rejected before any store write."""


class InvalidDurationError(ActivityValidationError):
    """Duration input is non-positive or otherwise unusable."""


class ActivityNotFoundError(TimeBlockError, KeyError):
    """No activity with the requested id exists in the current snapshot."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class InvalidTransitionError(TimeBlockError, ValueError):
    """The requested state change is not valid for the activity's current state."""


class InvalidMoveError(TimeBlockError, ValueError):
    """The requested reorder is not a valid move."""


class ErrorCategory(Enum):
    """Categories of errors surfaced to the user."""

    STORE_WRITE_FAILED = "store_write_failed"
    LOAD_FAILED = "load_failed"
    VALIDATION_FAILED = "validation_failed"
    ACTIVITY_NOT_FOUND = "activity_not_found"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    INVALID_MOVE = "invalid_move"
    INVARIANT_VIOLATION = "invariant_violation"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_STORE_WRITE_FAILED = "ERR_STORE_WRITE_FAILED"
    ERR_LOAD_FAILED = "ERR_LOAD_FAILED"
    ERR_INVALID_DURATION = "ERR_INVALID_DURATION"
    ERR_INVALID_ACTIVITY = "ERR_INVALID_ACTIVITY"
    ERR_ACTIVITY_NOT_FOUND = "ERR_ACTIVITY_NOT_FOUND"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_INVALID_MOVE = "ERR_INVALID_MOVE"
    ERR_INVARIANT_VIOLATION = "ERR_INVARIANT_VIOLATION"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    category: ErrorCategory
    message: str
    suggestion: str
    severity: ErrorSeverity


_WRITE_MESSAGES: dict[str, str] = {
    "create": "Could not save the new activity.",
    "update": "Could not update the activity state.",
    "batch_update": "Could not save the new order.",
    "delete": "Could not delete the activity.",
}


def classify_error(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by a store write, a trigger handler or user input

    Returns:
        ErrorResponse with code, category, message, suggestion, and severity
    """
    if isinstance(exception, StoreWriteError):
        return ErrorResponse(
            code=ErrorCode.ERR_STORE_WRITE_FAILED,
            category=ErrorCategory.STORE_WRITE_FAILED,
            message=_WRITE_MESSAGES.get(exception.operation, "Could not save your change."),
            suggestion="Check your connection and try the action again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, SubscriptionError):
        return ErrorResponse(
            code=ErrorCode.ERR_LOAD_FAILED,
            category=ErrorCategory.LOAD_FAILED,
            message="Failed to load activities. Please check your connection.",
            suggestion="Reload once the store is reachable again.",
            severity=ErrorSeverity.HIGH,
        )

    if isinstance(exception, InvalidDurationError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_DURATION,
            category=ErrorCategory.VALIDATION_FAILED,
            message="Please set a duration greater than zero.",
            suggestion="Enter hours, minutes or seconds adding up to at least one second.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, ActivityValidationError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_ACTIVITY,
            category=ErrorCategory.VALIDATION_FAILED,
            message=str(exception),
            suggestion="Correct the activity details and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, ActivityNotFoundError):
        return ErrorResponse(
            code=ErrorCode.ERR_ACTIVITY_NOT_FOUND,
            category=ErrorCategory.ACTIVITY_NOT_FOUND,
            message="That activity no longer exists.",
            suggestion="Refresh the activity list.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvalidMoveError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_MOVE,
            category=ErrorCategory.INVALID_MOVE,
            message=str(exception),
            suggestion="Completed activities can only be moved back into the active list.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvalidTransitionError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_STATE_TRANSITION,
            category=ErrorCategory.INVALID_STATE_TRANSITION,
            message="This action cannot be performed in the current state.",
            suggestion="Pause or reset the activity first and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvariantViolationError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVARIANT_VIOLATION,
            category=ErrorCategory.INVARIANT_VIOLATION,
            message="More than one activity was running; the extra timers were paused.",
            suggestion="Check the paused activities and resume the one you want.",
            severity=ErrorSeverity.MEDIUM,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        category=ErrorCategory.UNKNOWN,
        message="An unexpected error occurred. Please try again.",
        suggestion="If the problem persists, reload the page.",
        severity=ErrorSeverity.MEDIUM,
    )
