# backend/app/routers/inspections.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ..auth import Principal, get_principal, require_admin, require_inspector
from ..deps import get_scheduling_service, run_cancellable
from ..schemas import (
    ApproveRequest,
    EligibleInspectorsOut,
    InspectedRequest,
    InspectionOut,
    InspectorOut,
    AssignmentOptionOut,
    RejectRequest,
    ScheduleRequest,
    SweepOut,
)
from ..services.scheduling_service import SchedulingService

router = APIRouter(prefix="/inspections", tags=["inspections"])


# -----------------------------
# Collection
# -----------------------------
@router.get("", response_model=list[InspectionOut])
async def list_inspections(
    status: Optional[str] = Query(default=None),
    type: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    svc: SchedulingService = Depends(get_scheduling_service),
    _admin: Principal = Depends(require_admin),
):
    rows = await svc.list_inspections(status=status, type=type, search=search)
    return [InspectionOut.model_validate(r) for r in rows]


@router.get("/eligible-inspectors", response_model=EligibleInspectorsOut)
async def eligible_inspectors(
    day: Optional[date] = Query(default=None, alias="date"),
    start_time: Optional[str] = Query(default=None),
    end_time: Optional[str] = Query(default=None),
    exclude_inspection_id: Optional[str] = Query(default=None),
    svc: SchedulingService = Depends(get_scheduling_service),
    _admin: Principal = Depends(require_admin),
):
    roster = await svc.list_eligible_inspectors(
        day,
        start_time,
        end_time,
        exclude_inspection_id=exclude_inspection_id,
    )
    return EligibleInspectorsOut(
        start=roster.window.start,
        end=roster.window.end,
        inspectors=[InspectorOut.model_validate(i) for i in roster.inspectors],
        none_available=roster.none_available,
        options=[AssignmentOptionOut.model_validate(o) for o in roster.options()],
    )


@router.get("/assigned", response_model=list[InspectionOut])
async def assigned_inspections(
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_inspector),
):
    rows = await svc.assigned_to(p.user_id)
    return [InspectionOut.model_validate(r) for r in rows]


@router.post("/sweep", response_model=SweepOut)
async def sweep(
    svc: SchedulingService = Depends(get_scheduling_service),
    _admin: Principal = Depends(require_admin),
):
    return SweepOut(cancelled=await svc.sweeper.sweep())


@router.post("/by-application/{application_id}", response_model=InspectionOut)
async def get_or_create_for_application(
    application_id: str,
    svc: SchedulingService = Depends(get_scheduling_service),
    _admin: Principal = Depends(require_admin),
):
    return InspectionOut.model_validate(await svc.sync.get_or_create(application_id))


# -----------------------------
# Single inspection
# -----------------------------
@router.get("/{inspection_id}", response_model=InspectionOut)
async def get_inspection(
    inspection_id: str,
    svc: SchedulingService = Depends(get_scheduling_service),
    _p: Principal = Depends(get_principal),
):
    return InspectionOut.model_validate(await svc.get_inspection(inspection_id))


@router.put("/{inspection_id}/schedule", response_model=InspectionOut)
async def schedule_inspection(
    inspection_id: str,
    payload: ScheduleRequest,
    request: Request,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_admin),
):
    row = await run_cancellable(
        request,
        svc.schedule_and_assign(
            inspection_id,
            payload.date,
            payload.start_time,
            payload.end_time,
            payload.inspector_id,
            actor_user_id=p.user_id,
        ),
    )
    return InspectionOut.model_validate(row)


@router.delete("/{inspection_id}/schedule", response_model=InspectionOut)
async def clear_schedule(
    inspection_id: str,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_admin),
):
    return InspectionOut.model_validate(await svc.clear_schedule(inspection_id, actor_user_id=p.user_id))


@router.post("/{inspection_id}/inspected", response_model=InspectionOut)
async def mark_inspected(
    inspection_id: str,
    payload: Optional[InspectedRequest] = None,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_inspector),
):
    # admins may record on behalf of the assigned inspector
    inspector_id = p.user_id
    if p.role == "admin" and payload is not None and payload.inspector_id:
        inspector_id = payload.inspector_id
    return InspectionOut.model_validate(await svc.mark_inspected(inspection_id, inspector_id=inspector_id))


@router.post("/{inspection_id}/reject", response_model=InspectionOut)
async def reject_inspection(
    inspection_id: str,
    payload: RejectRequest,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_admin),
):
    row = await svc.reject(inspection_id, payload.reasons, payload.notes, actor_user_id=p.user_id)
    return InspectionOut.model_validate(row)


@router.post("/{inspection_id}/approve", response_model=InspectionOut)
async def approve_inspection(
    inspection_id: str,
    payload: Optional[ApproveRequest] = None,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(require_admin),
):
    url = payload.certificate_url if payload is not None else None
    return InspectionOut.model_validate(await svc.approve(inspection_id, url, actor_user_id=p.user_id))


@router.post("/{inspection_id}/reinspection", response_model=InspectionOut)
async def request_reinspection(
    inspection_id: str,
    svc: SchedulingService = Depends(get_scheduling_service),
    p: Principal = Depends(get_principal),
):
    return InspectionOut.model_validate(await svc.request_reinspection(inspection_id, actor_user_id=p.user_id))
