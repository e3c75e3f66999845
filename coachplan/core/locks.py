"""Per-aggregate serialization for mutating operations.

Two layers:
- An in-process keyed lock, so concurrent requests in this process that
  target the same aggregate run one after another.
- A ``SELECT ... FOR UPDATE`` on the aggregate row, so writers in other
  processes serialize at the database (no-op on SQLite).
"""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import TypeVar

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from coachplan.config.settings import settings
from coachplan.core.errors import EngineError, NotFoundError

T = TypeVar("T")

_registry_lock = threading.Lock()
_locks: dict[str, threading.Lock] = {}
_holders: dict[str, int] = {}


class LockTimeoutError(EngineError):
    """Raised when the per-aggregate lock could not be acquired in time."""

    code = "aggregate_busy"
    retryable = True


def _acquire_entry(key: str) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        _holders[key] = _holders.get(key, 0) + 1
        return lock


def _release_entry(key: str) -> None:
    with _registry_lock:
        remaining = _holders.get(key, 1) - 1
        if remaining <= 0:
            _holders.pop(key, None)
            _locks.pop(key, None)
        else:
            _holders[key] = remaining


@contextmanager
def aggregate_lock(kind: str, aggregate_id: str, timeout: float | None = None) -> Generator[None, None, None]:
    """Serialize in-process mutations of one aggregate.

    Args:
        kind: Aggregate type, e.g. "assignment" or "scheduled_workout"
        aggregate_id: Aggregate primary key
        timeout: Seconds to wait (defaults to LOCK_TIMEOUT_SECONDS)

    Raises:
        LockTimeoutError: If the lock is still held by another caller after timeout
    """
    key = f"{kind}:{aggregate_id}"
    lock = _acquire_entry(key)
    wait = settings.lock_timeout_seconds if timeout is None else timeout
    if not lock.acquire(timeout=wait):
        _release_entry(key)
        logger.warning("Aggregate lock timeout", kind=kind, aggregate_id=aggregate_id)
        raise LockTimeoutError(f"Timed out waiting for lock on {key}", {"kind": kind, "aggregate_id": aggregate_id})
    try:
        yield
    finally:
        lock.release()
        _release_entry(key)


def load_for_update(session: Session, model: type[T], entity_id: str, entity: str) -> T:
    """Load one row with a row-level write lock.

    Raises:
        NotFoundError: If the row does not exist
    """
    stmt = (
        select(model)
        .where(model.id == entity_id)  # type: ignore[attr-defined]
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFoundError(entity, entity_id)
    return row
