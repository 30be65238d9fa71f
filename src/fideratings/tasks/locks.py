"""
Import locks.

Two imports of the same (period, category) must never run at the same
time: the category merge is a read-modify-write on the ratings row. The
activity job must also not overlap imports, since both write players.

On PostgreSQL these are session-level advisory locks, so they hold across
processes. Other backends (SQLite) fall back to in-process locks; SQLite
already serializes writers at the database level.
"""

from __future__ import annotations

import hashlib
import threading
import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.engine import Engine

from fideratings.exceptions import ImportLockTimeout

# Held shared by every import, exclusively by activity inference
PLAYER_WRITES_LOCK = "fideratings:player-writes"

_local_locks: dict[str, threading.Lock] = {}
_local_locks_guard = threading.Lock()


def advisory_lock_key(name: str) -> int:
    """Return a deterministic signed 64-bit lock key from a lock name."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


def import_lock_name(period: str, category: str) -> str:
    return f"fideratings:import:{period}:{category}"


@contextmanager
def postgres_advisory_lock(
    engine: Engine,
    *,
    key: int,
    shared: bool = False,
    timeout_seconds: float = 0.0,
    poll_interval_seconds: float = 1.0,
) -> Generator[bool, None, None]:
    """
    Acquire a PostgreSQL advisory lock for the life of this context.

    Yields:
        True if lock acquired.

    Raises:
        ImportLockTimeout: if lock cannot be acquired before timeout.
    """
    suffix = "_shared" if shared else ""
    connection = engine.connect()
    acquired = False
    try:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while True:
            acquired = bool(
                connection.execute(
                    text(f"SELECT pg_try_advisory_lock{suffix}(:key)"),
                    {"key": key},
                ).scalar()
            )
            if acquired or time.monotonic() >= deadline:
                break
            time.sleep(max(poll_interval_seconds, 0.05))

        if not acquired:
            raise ImportLockTimeout(f"Could not acquire advisory lock key={key}")

        yield True
    finally:
        if acquired:
            connection.execute(
                text(f"SELECT pg_advisory_unlock{suffix}(:key)"),
                {"key": key},
            )
        connection.close()


def _local_lock(name: str) -> threading.Lock:
    with _local_locks_guard:
        lock = _local_locks.get(name)
        if lock is None:
            lock = _local_locks[name] = threading.Lock()
        return lock


@contextmanager
def local_lock(name: str, *, timeout_seconds: float = 0.0) -> Generator[bool, None, None]:
    """In-process named lock with the same contract as the advisory lock."""
    lock = _local_lock(name)
    if not lock.acquire(timeout=timeout_seconds if timeout_seconds > 0 else 0.001):
        raise ImportLockTimeout(f"Could not acquire lock {name!r}")
    try:
        yield True
    finally:
        lock.release()


@contextmanager
def named_lock(
    engine: Engine,
    name: str,
    *,
    shared: bool = False,
    timeout_seconds: float = 0.0,
) -> Generator[bool, None, None]:
    """
    Hold a named lock appropriate for the engine's backend.

    Shared locks only matter across processes; in-process they are a no-op
    because imports in one process already run one at a time.
    """
    if engine.dialect.name == "postgresql":
        with postgres_advisory_lock(
            engine,
            key=advisory_lock_key(name),
            shared=shared,
            timeout_seconds=timeout_seconds,
        ) as acquired:
            yield acquired
        return

    if shared:
        yield True
        return

    with local_lock(name, timeout_seconds=timeout_seconds) as acquired:
        yield acquired
