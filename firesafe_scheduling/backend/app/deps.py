# backend/app/deps.py
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import HTTPException, Request

from .services.scheduling_service import SchedulingService

log = logging.getLogger("firesafe.request")

T = TypeVar("T")

# nginx's "client closed request"; nobody reads it, it only marks the log line
CLIENT_CLOSED_REQUEST = 499


def get_scheduling_service(request: Request) -> SchedulingService:
    return request.app.state.scheduling


async def run_cancellable(request: Request, work: Awaitable[T], *, poll_seconds: float = 0.1) -> T:
    """
    Await `work` while watching the client connection. When the caller goes
    away first the in-flight operation is cancelled; its transaction rolls
    back and nothing it started is persisted.
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_seconds)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                log.info("request cancelled by client disconnect", extra={"path": request.url.path})
                raise HTTPException(status_code=CLIENT_CLOSED_REQUEST, detail="client disconnected")
    except asyncio.CancelledError:
        task.cancel()
        raise
