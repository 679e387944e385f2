# backend/app/services/expiry_sweeper.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.scheduling.expiry import apply_expiry
from ..domain.scheduling.windows import start_of_local_day
from .inspection_store import InspectionStore
from .retry import transactional

log = logging.getLogger("firesafe.sweeper")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpirySweeper:
    """
    Demotes `scheduled` inspections whose start fell before today (in the
    scheduling offset) to `cancelled`.

    Runs inline on every read of the working set, never on a timer, so it
    must be idempotent: a second pass finds no `scheduled` row before the
    cutoff and writes nothing.
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = _utcnow,
        offset_hours: Optional[int] = None,
    ) -> None:
        self.sessions = sessions
        self.clock = clock
        self.offset_hours = offset_hours

    async def sweep_in(self, db: AsyncSession, *, now: Optional[datetime] = None) -> list[str]:
        """Sweep inside the caller's transaction."""
        now = now or self.clock()
        store = InspectionStore(db)
        cutoff = start_of_local_day(now, self.offset_hours)

        expired = apply_expiry(await store.scheduled_before(cutoff), now, offset_hours=self.offset_hours)
        if not expired:
            return []

        stamp = now.astimezone(timezone.utc).replace(tzinfo=None)
        for row in expired:
            row.updated_at = stamp
        await store.upsert_many(expired)

        ids = [str(r.id) for r in expired]
        log.info("expired %d scheduled inspection(s) before %s: %s", len(ids), cutoff.isoformat(), ",".join(ids))
        return ids

    async def sweep(self, *, now: Optional[datetime] = None) -> list[str]:
        async def work(db: AsyncSession) -> list[str]:
            return await self.sweep_in(db, now=now)

        return await transactional(self.sessions, work, label="inspection.sweep")
