# backend/app/schemas.py
from __future__ import annotations

import datetime as dt
import json
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# -------------------- Inspections --------------------

class InspectionOut(BaseModel):
    id: str
    establishment_id: str
    establishment_name: str
    application_id: str
    inspector_id: Optional[str] = None
    inspector_name: Optional[str] = None
    type: str
    status: str

    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None

    rejection_reason: Optional[str] = None
    rejection_reasons: List[str] = Field(default_factory=list)
    rejection_notes: Optional[str] = None
    certificate_url: Optional[str] = None

    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _decode_reasons(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        raw = getattr(data, "rejection_reasons_json", None)
        out = {k: getattr(data, k, None) for k in cls.model_fields if k != "rejection_reasons"}
        out["rejection_reasons"] = json.loads(raw) if raw else []
        return out


class ScheduleRequest(BaseModel):
    """`start_time`/`end_time` accept "HH:MM" or "h:mm AM/PM"."""

    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    inspector_id: Optional[str] = None


class RejectRequest(BaseModel):
    reasons: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class ApproveRequest(BaseModel):
    certificate_url: Optional[str] = None


class InspectedRequest(BaseModel):
    inspector_id: Optional[str] = None


# -------------------- Roster --------------------

class InspectorOut(BaseModel):
    id: str
    first_name: str
    last_name: str
    full_name: str
    role: str
    duty_status: str
    availability_start: Optional[date] = None
    availability_end: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class DutyStatusUpdate(BaseModel):
    on_duty: bool
    availability_start: Optional[date] = None
    availability_end: Optional[date] = None


class AssignmentOptionOut(BaseModel):
    value: Optional[str] = None
    label: str
    selectable: bool = True

    model_config = ConfigDict(from_attributes=True)


class EligibleInspectorsOut(BaseModel):
    start: datetime
    end: datetime
    inspectors: List[InspectorOut]
    none_available: bool
    options: List[AssignmentOptionOut]


# -------------------- Applications / Establishments --------------------

class ApplicationOut(BaseModel):
    id: str
    establishment_id: str
    type: str
    status: str
    notes: Optional[str] = None
    submitted_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApplicationRejectRequest(BaseModel):
    reason: Optional[str] = None


class EstablishmentOut(BaseModel):
    id: str
    owner_id: str
    name: str
    address: Optional[str] = None
    status: str
    date_registered: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EstablishmentRejectRequest(BaseModel):
    reasons: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class RejectionEntryOut(BaseModel):
    reasons: List[str]
    notes: str = ""
    timestamp: datetime


class WorkflowEventOut(BaseModel):
    id: int
    event_type: str
    establishment_id: Optional[str] = None
    actor_user_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class SweepOut(BaseModel):
    cancelled: List[str]
