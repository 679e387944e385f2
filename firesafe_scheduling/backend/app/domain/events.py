# events.py - workflow events consumed by downstream collaborators (certificates, re-inspection requests, notifications).
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import WorkflowEvent


def _loads(s: Optional[str]) -> dict[str, Any]:
    if not s:
        return {}
    try:
        v = json.loads(s)
        return v if isinstance(v, dict) else {}
    except ValueError:
        return {}


async def emit_workflow_event(
    db: AsyncSession,
    *,
    event_type: str,
    actor_user_id: Optional[str] = None,
    establishment_id: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> WorkflowEvent:
    """
    NOTE: flush-only, no commit. Callers decide when to commit.
    """
    if not event_type:
        raise ValueError("event_type required")

    ev = WorkflowEvent(
        actor_user_id=actor_user_id,
        establishment_id=establishment_id,
        event_type=str(event_type),
        payload_json=json.dumps(payload or {}, ensure_ascii=False, default=str),
        created_at=datetime.utcnow(),
    )
    db.add(ev)
    await db.flush()
    return ev


async def list_workflow_events(
    db: AsyncSession,
    *,
    establishment_id: Optional[str] = None,
    event_type: Optional[str] = None,
    limit: int = 200,
) -> list[dict[str, Any]]:
    q = select(WorkflowEvent).order_by(WorkflowEvent.id.desc())
    if establishment_id is not None:
        q = q.where(WorkflowEvent.establishment_id == establishment_id)
    if event_type is not None:
        q = q.where(WorkflowEvent.event_type == event_type)

    rows = (await db.scalars(q.limit(int(limit)))).all()
    return [
        {
            "id": int(r.id),
            "event_type": r.event_type,
            "establishment_id": r.establishment_id,
            "actor_user_id": r.actor_user_id,
            "payload": _loads(r.payload_json),
            "created_at": r.created_at,
        }
        for r in rows
    ]
