# backend/app/services/locks_service.py
from __future__ import annotations

import asyncio
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import InspectorScheduleLock
from .retry import WriteRace


def _now() -> datetime:
    return datetime.utcnow()


class InspectorLocks:
    """
    In-process mutex per inspector. Serializes schedulers inside one worker;
    the row lock below serializes them across workers.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def for_inspector(self, inspector_id: str) -> asyncio.Lock:
        key = str(inspector_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


async def reserve_inspector_schedule(db: AsyncSession, *, inspector_id: str, holder: str | None) -> bool:
    """
    Write-lock the inspector's schedule for the rest of the current transaction.

    Must be the FIRST statement of the transaction: on Postgres it takes the
    row lock, on SQLite it upgrades the connection to the database write lock,
    so the reads that follow cannot race a concurrent reservation.
    Returns False when no lock row exists for the inspector.
    """
    res = await db.execute(
        update(InspectorScheduleLock)
        .where(InspectorScheduleLock.inspector_id == str(inspector_id))
        .values(
            version=InspectorScheduleLock.version + 1,
            holder=holder,
            updated_at=_now(),
        )
    )
    return bool(res.rowcount)


async def create_lock_row(db: AsyncSession, *, inspector_id: str, holder: str | None) -> None:
    """
    First reservation for an inspector: insert the lock row inside the
    caller's transaction, so a refused request leaves nothing behind.
    """
    db.add(InspectorScheduleLock(inspector_id=str(inspector_id), version=1, holder=holder, updated_at=_now()))
    try:
        await db.flush()
    except IntegrityError as e:
        raise WriteRace("inspector_schedule_lock", inspector_id) from e
