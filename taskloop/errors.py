"""Error taxonomy for request rounds.

Every failure that reaches the task executor is classified into one of
four ErrorTypes before handling:

    UNAUTHORIZED, PAYMENT_REQUIRED   fatal to the round; the task goes idle
    PROVIDER_ERROR, UNKNOWN_ERROR    recoverable; the user is asked to retry

User-initiated cancellation is not an error and never passes through here.
"""

from enum import Enum
from typing import Optional

AUTHENTICATION_ERROR_STATUS = 401
PAYMENT_REQUIRED_STATUS = 402
INTERNAL_ERROR_STATUS = 500


class ErrorType(str, Enum):
    """Classification of a failed round."""
    UNAUTHORIZED = "UNAUTHORIZED"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    @property
    def is_fatal(self) -> bool:
        return self in (ErrorType.UNAUTHORIZED, ErrorType.PAYMENT_REQUIRED)


class ProviderError(Exception):
    """Raised by the network layer (or an error-end event) for a failed request.

    Attributes:
        status: HTTP-like status code reported by the provider.
        message: Human-readable description.
    """

    def __init__(self, status: Optional[int] = None, message: Optional[str] = None):
        self.status = status if status is not None else INTERNAL_ERROR_STATUS
        self.message = message or "Internal Server Error"
        super().__init__(f"[{self.status}] {self.message}")


class TaskError(Exception):
    """A classified failure, ready for the task executor's error handler."""

    def __init__(self, error_type: ErrorType, message: str):
        self.type = error_type
        self.message = message
        super().__init__(f"{error_type.value}: {message}")


class TaskAbortingError(RuntimeError):
    """Raised by task entry points while an abort is in progress."""


class TaskBusyError(RuntimeError):
    """Raised by task entry points while request rounds are already running."""


def classify_error(exc: BaseException) -> TaskError:
    """Map an exception raised during a round onto the error taxonomy.

    Args:
        exc: The exception to classify.

    Returns:
        A TaskError carrying the classification and a display message.
    """
    if isinstance(exc, TaskError):
        return exc

    if isinstance(exc, ProviderError):
        if exc.status == AUTHENTICATION_ERROR_STATUS:
            return TaskError(ErrorType.UNAUTHORIZED, exc.message)
        if exc.status == PAYMENT_REQUIRED_STATUS:
            return TaskError(ErrorType.PAYMENT_REQUIRED, exc.message)
        return TaskError(ErrorType.PROVIDER_ERROR, exc.message)

    # Fallback: some clients only surface the status in the message
    message = str(exc) or exc.__class__.__name__
    lower = message.lower()
    if any(p in lower for p in ("401", "unauthorized", "invalid api key")):
        return TaskError(ErrorType.UNAUTHORIZED, message)
    if any(p in lower for p in ("402", "payment required", "insufficient credits")):
        return TaskError(ErrorType.PAYMENT_REQUIRED, message)
    return TaskError(ErrorType.UNKNOWN_ERROR, message)


__all__ = [
    "ErrorType",
    "ProviderError",
    "TaskError",
    "TaskAbortingError",
    "TaskBusyError",
    "classify_error",
    "AUTHENTICATION_ERROR_STATUS",
    "PAYMENT_REQUIRED_STATUS",
    "INTERNAL_ERROR_STATUS",
]
