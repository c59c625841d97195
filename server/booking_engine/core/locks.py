"""Per-(tour, day) slot locks serializing capacity checks with their writes."""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_slot_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def slot_key(tour_id: UUID | str, day: date) -> str:
    return f"{tour_id}:{day.isoformat()}"


def _days(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def _get_lock(key: str) -> asyncio.Lock:
    lock = _slot_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _slot_locks[key] = lock
    return lock


def _is_postgres(db: AsyncSession) -> bool:
    bind = db.bind
    return bind is not None and bind.dialect.name == "postgresql"


@asynccontextmanager
async def slot_locks(
    db: AsyncSession,
    tour_id: UUID | str,
    start: date,
    end: date,
) -> AsyncIterator[None]:
    """
    Hold every day lock for ``[start, end]`` on ``tour_id``.

    Days are locked in ascending order so overlapping ranges never deadlock.
    In-process callers are serialized with asyncio locks; on PostgreSQL a
    transaction-scoped advisory lock per day extends this across processes.
    The caller must commit inside the block; on PostgreSQL the advisory
    locks last until the session transaction ends.
    """
    keys = [slot_key(tour_id, day) for day in _days(start, end)]
    held: list[asyncio.Lock] = []
    try:
        for key in keys:
            lock = _get_lock(key)
            await lock.acquire()
            held.append(lock)

        if _is_postgres(db):
            for key in keys:
                await db.execute(
                    text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                    {"key": key},
                )

        logger.debug(
            "Acquired slot locks",
            extra={"tour_id": str(tour_id), "days": len(keys)}
        )
        yield
    finally:
        for lock in reversed(held):
            lock.release()
