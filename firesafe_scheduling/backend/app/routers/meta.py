# backend/app/routers/meta.py
from __future__ import annotations

from fastapi import APIRouter

from ..config import settings

router = APIRouter(prefix="/meta", tags=["meta"])


@router.get("/health", response_model=dict)
def health():
    return {"ok": True, "env": settings.app_env, "version": settings.app_version}


@router.get("/scheduling", response_model=dict)
def scheduling_settings():
    return {
        "utc_offset_hours": settings.schedule_utc_offset_hours,
        "store_retry_attempts": settings.store_retry_attempts,
    }
