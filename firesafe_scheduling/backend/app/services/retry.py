# backend/app/services/retry.py
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..errors import PersistenceError, SchedulingError

log = logging.getLogger("firesafe.store")

T = TypeVar("T")


class WriteRace(Exception):
    """A concurrent writer created the same key first. A fresh attempt reads its row."""

    def __init__(self, entity: str, key: str) -> None:
        super().__init__(f"{entity} {key} was created concurrently")
        self.entity = entity
        self.key = str(key)


def is_transient(exc: BaseException) -> bool:
    """Lock timeouts, dropped connections, busy databases."""
    if isinstance(exc, (OperationalError, InterfaceError, asyncio.TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, DBAPIError) and getattr(exc, "connection_invalidated", False):
        return True
    return False


def backoff_seconds(retries: int, *, base: Optional[float] = None, cap: Optional[float] = None) -> float:
    """
    Exponential backoff with jitter.
    retries is the current retry count (0 for the first retry).
    """
    b = float(settings.store_retry_base_seconds if base is None else base)
    c = float(settings.store_retry_max_seconds if cap is None else cap)

    delay = min(c, b * (2 ** max(0, int(retries))))

    # jitter: +/- 20%
    jitter = delay * 0.2
    if jitter > 0:
        delay = max(0.0, delay + random.uniform(-jitter, jitter))
    return delay


async def with_retry(
    op: Callable[[], Awaitable[T]],
    *,
    label: str,
    attempts: Optional[int] = None,
    base_seconds: Optional[float] = None,
    max_seconds: Optional[float] = None,
    retry_on: tuple[type[BaseException], ...] = (),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `op` (one whole transaction) up to `attempts` times.

    - domain errors (validation, conflicts, not found) are never retried
    - transient store failures and write races back off and retry, then
      surface as PersistenceError
    - any other store failure surfaces immediately as PersistenceError
    - cancellation propagates untouched
    """
    total = int(settings.store_retry_attempts if attempts is None else attempts)
    last: Optional[BaseException] = None

    for attempt in range(total):
        try:
            return await op()
        except SchedulingError:
            raise
        except Exception as e:
            if not (is_transient(e) or isinstance(e, WriteRace) or (retry_on and isinstance(e, retry_on))):
                if isinstance(e, SQLAlchemyError):
                    log.error("store_failure op=%s", label, exc_info=True)
                    raise PersistenceError(f"{label} failed: store rejected the write") from e
                raise

            last = e
            if attempt + 1 >= total:
                break
            delay = backoff_seconds(attempt, base=base_seconds, cap=max_seconds)
            log.warning(
                "store_retry op=%s attempt=%d/%d delay=%.3fs error=%s",
                label,
                attempt + 1,
                total,
                delay,
                type(e).__name__,
            )
            await sleep(delay)

    log.error("store_retry_exhausted op=%s attempts=%d", label, total, exc_info=last)
    raise PersistenceError(f"{label} failed after {total} attempts") from last


async def transactional(
    sessions: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    label: str,
    retry_on: tuple[type[BaseException], ...] = (),
) -> T:
    """
    One attempt = one session + one transaction: commit on success, roll back
    on anything else (including cancellation), so callers never observe a
    partial write.
    """

    async def _attempt() -> T:
        async with sessions() as db:
            try:
                out = await work(db)
                await db.commit()
                return out
            except BaseException:
                await db.rollback()
                raise

    return await with_retry(_attempt, label=label, retry_on=retry_on)
