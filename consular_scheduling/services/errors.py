"""Scheduling error taxonomy and the typed outcome returned at the public boundary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class SchedulingError(Exception):
    """Base exception for scheduling errors."""

    code = "scheduling_error"
    retriable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self)


class NotFoundError(SchedulingError):
    """Organization, service or appointment not found."""

    code = "not_found"


class ValidationError(SchedulingError):
    """Malformed scheduling input."""

    code = "validation_error"


class SlotUnavailableError(SchedulingError):
    """Selected time is no longer available."""

    code = "slot_unavailable"


class NoAgentAvailableError(SchedulingError):
    """No qualified agent is free for the requested window."""

    code = "no_agent_available"


class ConcurrencyConflictError(SchedulingError):
    """Booking could not acquire its lock in time; safe to retry."""

    code = "concurrency_conflict"
    retriable = True


class InvalidTransitionError(SchedulingError):
    """Appointment status transition is not allowed."""

    code = "invalid_transition"

    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} appointment with status {current}")


class TransientStoreError(SchedulingError):
    """Record store failed unexpectedly; nothing was committed."""

    code = "transient_store_error"
    retriable = True


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result of a public scheduling operation.

    Exactly one of value/error is meaningful. Callers branch on ``ok`` (or
    on the error type) instead of catching exceptions.
    """

    value: T | None = None
    error: SchedulingError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: SchedulingError) -> "Outcome[T]":
        return cls(error=error)
