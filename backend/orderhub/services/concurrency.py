# Overview: Transaction, retry and deadline helpers shared by the ingestion pipelines.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


class PersistenceError(RuntimeError):
    """A store write failed mid-pipeline; the unit of work was rolled back."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class DeadlineExceeded(TimeoutError):
    """The caller-supplied time budget of a unit of work ran out."""


class Deadline:
    """
    Time budget for one unit of work.

    Passed down to every sub-operation: remote fetches use remaining() as
    their HTTP timeout, long loops call check() between nodes.
    """

    def __init__(self, seconds: float | None, *, clock=time.monotonic):
        self._clock = clock
        self.expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def none(cls) -> "Deadline":
        return cls(None)

    def remaining(self, cap: float | None = None) -> float | None:
        if self.expires_at is None:
            return cap
        left = max(0.0, self.expires_at - self._clock())
        return left if cap is None else min(left, cap)

    def expired(self) -> bool:
        return self.expires_at is not None and self._clock() >= self.expires_at

    def check(self, where: str = "") -> None:
        if self.expired():
            raise DeadlineExceeded(f"Deadline exceeded{' during ' + where if where else ''}")


def begin_immediate(session) -> None:
    """
    On SQLite, open the write transaction up front (BEGIN IMMEDIATE).

    This serializes writers at the database level and makes SAVEPOINTs nest
    inside a real transaction under pysqlite. No-op on other dialects.
    """
    if session.get_bind().dialect.name != "sqlite":
        return
    raw = session.connection().connection.driver_connection
    if not raw.in_transaction:
        session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, session, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must be a complete unit of work.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
