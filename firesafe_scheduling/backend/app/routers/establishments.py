# backend/app/routers/establishments.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import Principal, get_principal, require_admin
from ..deps import get_scheduling_service
from ..domain.events import list_workflow_events
from ..schemas import EstablishmentOut, EstablishmentRejectRequest, RejectionEntryOut, WorkflowEventOut
from ..services.inspection_store import InspectionStore
from ..services.scheduling_service import SchedulingService

router = APIRouter(prefix="/establishments", tags=["establishments"])


@router.post("/{establishment_id}/approve", response_model=EstablishmentOut)
async def approve_establishment(
    establishment_id: str,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_admin),
):
    return await svc.sync.approve_establishment(establishment_id, actor_user_id=p.user_id)


@router.post("/{establishment_id}/reject", response_model=list[RejectionEntryOut])
async def reject_establishment(
    establishment_id: str,
    payload: EstablishmentRejectRequest,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_admin),
):
    await svc.sync.reject_establishment(
        establishment_id,
        reasons=payload.reasons,
        notes=payload.notes,
        actor_user_id=p.user_id,
    )
    return await svc.sync.rejection_history(establishment_id)


@router.get("/{establishment_id}/rejections", response_model=list[RejectionEntryOut])
async def rejection_history(
    establishment_id: str,
    svc: SchedulingService = Depends(get_scheduling_service),
    _p: Principal = Depends(get_principal),
):
    return await svc.sync.rejection_history(establishment_id)


@router.get("/{establishment_id}/events", response_model=list[WorkflowEventOut])
async def establishment_events(
    establishment_id: str,
    event_type: Optional[str] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    svc: SchedulingService = Depends(get_scheduling_service),
    _admin: Principal = Depends(require_admin),
):
    async with svc.sessions() as db:
        await InspectionStore(db).must_get_establishment(establishment_id)
        return await list_workflow_events(db, establishment_id=establishment_id, event_type=event_type, limit=limit)
