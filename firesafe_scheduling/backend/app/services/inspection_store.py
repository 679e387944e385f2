# backend/app/services/inspection_store.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.scheduling.states import OCCUPYING, SCHEDULED
from ..domain.scheduling.windows import ScheduleWindow
from ..errors import NotFoundError
from ..models import Application, Establishment, Inspection, Inspector
from .retry import WriteRace


def snapshot(row: Inspection) -> dict[str, Any]:
    """Audit-friendly view of the mutable inspection fields."""
    return {
        "status": row.status,
        "inspector_id": row.inspector_id,
        "inspector_name": row.inspector_name,
        "scheduled_start": row.scheduled_start.isoformat() if row.scheduled_start else None,
        "scheduled_end": row.scheduled_end.isoformat() if row.scheduled_end else None,
        "rejection_reason": row.rejection_reason,
        "certificate_url": row.certificate_url,
    }


class InspectionStore:
    """
    Keyed storage for inspection rows (plus the roster, application and
    establishment lookups scheduling needs). Equality/range filters and
    upsert-by-id; never commits, the owning service controls the transaction.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -----------------------------
    # Inspections
    # -----------------------------
    async def get(self, inspection_id: str) -> Optional[Inspection]:
        return await self.db.get(Inspection, str(inspection_id))

    async def must_get(self, inspection_id: str) -> Inspection:
        row = await self.get(inspection_id)
        if row is None:
            raise NotFoundError("inspection", inspection_id)
        return row

    async def get_by_application(self, application_id: str) -> Optional[Inspection]:
        return await self.db.scalar(select(Inspection).where(Inspection.application_id == str(application_id)))

    async def query(
        self,
        *,
        status: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        inspector_id: Optional[str] = None,
        type: Optional[str] = None,
        establishment_id: Optional[str] = None,
        starts_before: Optional[datetime] = None,
        starts_from: Optional[datetime] = None,
    ) -> list[Inspection]:
        q = select(Inspection)
        if status is not None:
            q = q.where(Inspection.status == status)
        if statuses is not None:
            q = q.where(Inspection.status.in_(list(statuses)))
        if inspector_id is not None:
            q = q.where(Inspection.inspector_id == str(inspector_id))
        if type is not None:
            q = q.where(Inspection.type == type)
        if establishment_id is not None:
            q = q.where(Inspection.establishment_id == str(establishment_id))
        if starts_before is not None:
            q = q.where(Inspection.scheduled_start < starts_before)
        if starts_from is not None:
            q = q.where(Inspection.scheduled_start >= starts_from)

        rows = (await self.db.scalars(q.order_by(Inspection.updated_at.desc(), Inspection.id))).all()
        return list(rows)

    async def occupied_slots(
        self,
        *,
        window: ScheduleWindow,
        inspector_id: Optional[str] = None,
    ) -> list[Inspection]:
        """Rows whose occupied slot intersects `window` (half-open)."""
        q = select(Inspection).where(
            Inspection.status.in_(list(OCCUPYING)),
            Inspection.scheduled_start.is_not(None),
            Inspection.scheduled_start < window.end,
            Inspection.scheduled_end > window.start,
        )
        if inspector_id is not None:
            q = q.where(Inspection.inspector_id == str(inspector_id))
        return list((await self.db.scalars(q)).all())

    async def upsert(self, row: Inspection) -> Inspection:
        return (await self.upsert_many([row]))[0]

    async def upsert_many(self, rows: Sequence[Inspection]) -> list[Inspection]:
        """
        Write rows by id. Rows already in the session (loaded, or added by
        materialization) are flushed as they are; others are merged in.
        A pending insert that loses its key to a concurrent creator raises
        WriteRace so the caller's retry re-reads the winner.
        """
        out: list[Inspection] = []
        for r in rows:
            out.append(r if r in self.db else await self.db.merge(r))
        fresh = [r.id for r in out if inspect(r).pending]
        try:
            await self.db.flush()
        except IntegrityError as e:
            if fresh:
                raise WriteRace("inspection", fresh[0]) from e
            raise
        return out

    async def scheduled_before(self, cutoff: datetime) -> list[Inspection]:
        """
        Scheduled rows starting before `cutoff`, row-locked for the rest of
        the transaction (Postgres) so a concurrent decision cannot be
        overwritten by the sweep.
        """
        q = (
            select(Inspection)
            .where(Inspection.status == SCHEDULED, Inspection.scheduled_start < cutoff)
            .order_by(Inspection.scheduled_start, Inspection.id)
            .with_for_update()
        )
        return list((await self.db.scalars(q)).all())

    # -----------------------------
    # Roster
    # -----------------------------
    async def get_inspector(self, inspector_id: str) -> Optional[Inspector]:
        return await self.db.get(Inspector, str(inspector_id))

    async def must_get_inspector(self, inspector_id: str) -> Inspector:
        row = await self.get_inspector(inspector_id)
        if row is None:
            raise NotFoundError("inspector", inspector_id)
        return row

    async def inspectors(self) -> list[Inspector]:
        q = select(Inspector).where(Inspector.role == "inspector").order_by(Inspector.last_name, Inspector.first_name)
        return list((await self.db.scalars(q)).all())

    # -----------------------------
    # Applications / establishments
    # -----------------------------
    async def must_get_application(self, application_id: str) -> Application:
        row = await self.db.get(Application, str(application_id))
        if row is None:
            raise NotFoundError("application", application_id)
        return row

    async def applications(self, *, status: Optional[str] = None, types: Optional[Iterable[str]] = None) -> list[Application]:
        q = select(Application)
        if status is not None:
            q = q.where(Application.status == status)
        if types is not None:
            q = q.where(Application.type.in_(list(types)))
        return list((await self.db.scalars(q.order_by(Application.submitted_at, Application.id))).all())

    async def must_get_establishment(self, establishment_id: str) -> Establishment:
        row = await self.db.get(Establishment, str(establishment_id))
        if row is None:
            raise NotFoundError("establishment", establishment_id)
        return row

    async def establishment_names(self, ids: Iterable[str]) -> dict[str, str]:
        ids = list({str(i) for i in ids})
        if not ids:
            return {}
        rows = (await self.db.execute(select(Establishment.id, Establishment.name).where(Establishment.id.in_(ids)))).all()
        return {str(r.id): str(r.name) for r in rows}
