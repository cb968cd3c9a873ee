"""Per-agent, per-day booking locks and per-appointment status locks.

Two layers serialize the check-then-insert of a booking and every status
change of an existing appointment:
- an in-process keyed lock with a bounded wait (threads of one worker)
- a row lock on booking_locks (SELECT ... FOR UPDATE) for other processes

Lock order is always: in-process locks (sorted keys), then database rows,
then the caller's writes. The transaction commits before the in-process
locks are released.
"""

from __future__ import annotations

import logging
import threading
import time
import weakref
from contextlib import contextmanager
from datetime import date
from typing import Iterable, Iterator
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from consular_scheduling.core.config import settings
from consular_scheduling.db.models import BookingLock
from consular_scheduling.services.errors import ConcurrencyConflictError, TransientStoreError

logger = logging.getLogger(__name__)


class _KeyLock:
    __slots__ = ("lock", "__weakref__")

    def __init__(self) -> None:
        self.lock = threading.Lock()


_registry_guard = threading.Lock()
_registry: "weakref.WeakValueDictionary[str, _KeyLock]" = weakref.WeakValueDictionary()


def lock_key(agent_id: UUID, day: date) -> str:
    """Lock key for one agent's local calendar day."""
    return f"{agent_id}:{day.isoformat()}"


def appointment_lock_key(appointment_id: UUID) -> str:
    """Lock key serializing status changes of one appointment."""
    return f"appointment:{appointment_id}"


def _key_lock(key: str) -> _KeyLock:
    with _registry_guard:
        entry = _registry.get(key)
        if entry is None:
            entry = _KeyLock()
            _registry[key] = entry
        return entry


def _acquire_local(keys: list[str], timeout: float) -> list[_KeyLock]:
    deadline = time.monotonic() + timeout
    held: list[_KeyLock] = []
    for key in keys:
        entry = _key_lock(key)
        remaining = max(0.0, deadline - time.monotonic())
        if not entry.lock.acquire(timeout=remaining):
            _release_local(held)
            logger.warning(f"Booking lock timeout after {timeout}s on {key}")
            raise ConcurrencyConflictError(
                "Another booking for this agent and day is in progress, retry shortly"
            )
        held.append(entry)
    return held


def _release_local(held: list[_KeyLock]) -> None:
    for entry in reversed(held):
        entry.lock.release()


def _lock_rows(db: Session, keys: list[str]) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = '{settings.booking_lock_timeout_ms}ms'"))

    for key in keys:
        row = db.get(BookingLock, key, with_for_update=True)
        if row is None:
            db.add(BookingLock(lock_key=key))
            try:
                db.flush()
            except IntegrityError as exc:
                # Another process created the same lock row first
                raise ConcurrencyConflictError(
                    "Another booking for this agent and day is in progress, retry shortly"
                ) from exc


@contextmanager
def booking_transaction(
    db: Session,
    keys: Iterable[str],
    timeout: float | None = None,
) -> Iterator[Session]:
    """
    Run the body under the booking locks of ``keys`` inside one transaction.

    Commits on normal exit. On any exception (including cancellation) the
    transaction is rolled back and the error re-raised; database lock and
    operational failures surface as ConcurrencyConflictError, other store
    failures as TransientStoreError.
    """
    if timeout is None:
        timeout = settings.BOOKING_LOCK_TIMEOUT_SECONDS
    ordered = sorted(set(keys))
    held = _acquire_local(ordered, timeout)
    try:
        try:
            _lock_rows(db, ordered)
            yield db
            db.commit()
        except BaseException:
            db.rollback()
            raise
    except OperationalError as exc:
        logger.warning(f"Booking transaction lost lock race on {ordered}: {exc.orig}")
        raise ConcurrencyConflictError(
            "The booking store is busy, retry shortly"
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception(f"Booking transaction failed on {ordered}")
        raise TransientStoreError() from exc
    finally:
        _release_local(held)
