# backend/app/routers/inspectors.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..auth import Principal, require_admin, require_inspector
from ..deps import get_scheduling_service
from ..schemas import DutyStatusUpdate, InspectorOut
from ..services.scheduling_service import SchedulingService

router = APIRouter(prefix="/inspectors", tags=["inspectors"])


@router.get("", response_model=list[InspectorOut])
async def roster(
    svc: SchedulingService = Depends(get_scheduling_service),
    _admin: Principal = Depends(require_admin),
):
    return [InspectorOut.model_validate(i) for i in await svc.roster()]


@router.put("/{inspector_id}/duty", response_model=InspectorOut)
async def set_duty_status(
    inspector_id: str,
    payload: DutyStatusUpdate,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_inspector),
):
    if p.role != "admin" and p.user_id != inspector_id:
        raise HTTPException(status_code=403, detail="Inspectors can only change their own duty status")

    ins = await svc.set_duty_status(
        inspector_id,
        on_duty=payload.on_duty,
        availability_start=payload.availability_start,
        availability_end=payload.availability_end,
    )
    return InspectorOut.model_validate(ins)
