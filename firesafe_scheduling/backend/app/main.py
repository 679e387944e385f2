# backend/app/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import settings
from .db import SessionLocal
from .errors import PersistenceError, SchedulingError
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware
from .services.notifications import LoggingNotificationChannel, Notifier
from .services.scheduling_service import SchedulingService

from .routers.meta import router as meta_router
from .routers.inspections import router as inspections_router
from .routers.inspectors import router as inspectors_router
from .routers.applications import router as applications_router
from .routers.establishments import router as establishments_router

API_PREFIX = "/api"

log = logging.getLogger("firesafe.api")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def _scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
    if isinstance(exc, PersistenceError):
        log.error("request failed: %s", exc.detail, extra={"path": request.url.path})
    return JSONResponse(status_code=exc.http_status, content=exc.as_dict())


def create_app(
    *,
    sessions: Optional[async_sessionmaker[AsyncSession]] = None,
    clock: Optional[Callable[[], datetime]] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    if notifier is None:
        notifier = Notifier(LoggingNotificationChannel() if settings.notifications_enabled else None)

    kwargs = {"clock": clock} if clock is not None else {}
    scheduling = SchedulingService(sessions or SessionLocal, notifier=notifier, **kwargs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await notifier.drain()

    app = FastAPI(
        title="Fire Safety Inspection Scheduling",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.scheduling = scheduling

    # added first = innermost: runs inside RequestIDMiddleware
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SchedulingError, _scheduling_error)

    app.include_router(meta_router, prefix=API_PREFIX)
    app.include_router(inspections_router, prefix=API_PREFIX)
    app.include_router(inspectors_router, prefix=API_PREFIX)
    app.include_router(applications_router, prefix=API_PREFIX)
    app.include_router(establishments_router, prefix=API_PREFIX)
    return app


configure_logging()
app = create_app()
