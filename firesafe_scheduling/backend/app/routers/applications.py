# backend/app/routers/applications.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from ..auth import Principal, require_admin
from ..deps import get_scheduling_service
from ..schemas import ApplicationOut, ApplicationRejectRequest
from ..services.scheduling_service import SchedulingService

router = APIRouter(prefix="/applications", tags=["applications"])


@router.post("/{application_id}/approve", response_model=ApplicationOut)
async def approve_application(
    application_id: str,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_admin),
):
    return await svc.sync.approve_application(application_id, actor_user_id=p.user_id)


@router.post("/{application_id}/reject", response_model=ApplicationOut)
async def reject_application(
    application_id: str,
    payload: Optional[ApplicationRejectRequest] = None,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_admin),
):
    reason = payload.reason if payload is not None else None
    return await svc.sync.reject_application(application_id, reason=reason, actor_user_id=p.user_id)
