"""Error taxonomy shared by the scoring engines, services and gateways."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager


class AssessmentError(Exception):
    """Base class for every error raised by the assessment core."""


class ValidationError(AssessmentError, ValueError):
    """Raised for malformed input before any state is touched."""


class InvalidStateError(AssessmentError):
    """Raised when a state machine does not permit the requested operation."""


class InvalidTransitionError(AssessmentError):
    """Raised when an oral-test status change is attempted out of order."""


class NotFoundError(AssessmentError, LookupError):
    """Raised when a record, session or play does not exist."""


class ConflictError(AssessmentError):
    """Raised when an optimistic-concurrency precondition no longer holds."""


class SlotAlreadyBookedError(ConflictError):
    """Raised when an oral-test slot was booked by someone else first."""


class TransientError(AssessmentError):
    """Gateway failure that is safe to retry (network, pool, lock timeouts)."""


class GatewayPermissionError(AssessmentError):
    """Gateway refused the operation; retrying will not help."""


class PersistenceError(AssessmentError):
    """A durable read or write failed; wraps the originating gateway error."""

    def __init__(self, message: str, cause: TransientError | GatewayPermissionError) -> None:
        super().__init__(f"{message}: {cause}")
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return isinstance(self.cause, TransientError)


@contextmanager
def persistence_errors(operation: str) -> Iterator[None]:
    """Re-raise gateway transport failures as ``PersistenceError``."""
    try:
        yield
    except (TransientError, GatewayPermissionError) as exc:
        raise PersistenceError(f"Could not {operation}", exc) from exc
