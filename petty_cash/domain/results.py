"""
Operation results (``petty_cash.domain.results``).

Every mutating service operation returns an ``OperationResult``: either a
success carrying the new value, or a typed failure carrying the error code
and the original exception's structured data.  Callers branch on
``result.status`` or ``result.is_success`` -- never on message text.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from petty_cash.exceptions import (
    IntegrityViolationError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    LimitExceededError,
    NotFoundError,
    PettyCashError,
    ValidationError,
)

T = TypeVar("T")


class ResultStatus(str, Enum):
    """Outcome of a petty-cash operation."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    LIMIT_EXCEEDED = "limit_exceeded"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    NOT_FOUND = "not_found"
    INTEGRITY_VIOLATION = "integrity_violation"


_STATUS_BY_ERROR: dict[type[PettyCashError], ResultStatus] = {
    ValidationError: ResultStatus.VALIDATION_ERROR,
    InsufficientFundsError: ResultStatus.INSUFFICIENT_FUNDS,
    LimitExceededError: ResultStatus.LIMIT_EXCEEDED,
    InvalidStateTransitionError: ResultStatus.INVALID_STATE_TRANSITION,
    NotFoundError: ResultStatus.NOT_FOUND,
    IntegrityViolationError: ResultStatus.INTEGRITY_VIOLATION,
}


def status_for(error: PettyCashError) -> ResultStatus:
    """Map an exception to its result status (walks the MRO for subclasses)."""
    for cls in type(error).__mro__:
        status = _STATUS_BY_ERROR.get(cls)
        if status is not None:
            return status
    raise TypeError(f"No result status registered for {type(error).__name__}")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Result of a petty-cash operation."""

    status: ResultStatus
    value: T | None = None
    error_code: str | None = None
    message: str | None = None
    error: PettyCashError | None = None

    @property
    def is_success(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    @classmethod
    def success(cls, value: T) -> OperationResult[T]:
        return cls(status=ResultStatus.SUCCESS, value=value)

    @classmethod
    def failure(cls, error: PettyCashError) -> OperationResult[T]:
        return cls(
            status=status_for(error),
            error_code=error.code,
            message=str(error),
            error=error,
        )

    def unwrap(self) -> T:
        """Return the value, re-raising the recorded error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
