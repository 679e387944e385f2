# backend/app/services/status_sync.py
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.audit import audit_write
from ..domain.events import emit_workflow_event
from ..domain.scheduling import states as st
from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..models import Application, Establishment, EstablishmentRejection, Inspection
from .inspection_store import InspectionStore, snapshot
from .retry import transactional

log = logging.getLogger("firesafe.sync")

# Fixed namespace: the inspection id of an application never changes.
INSPECTION_NAMESPACE = uuid.UUID("6f1b8a52-4c0e-5d7a-9a3e-2f4b1c9d0e71")


def virtual_inspection_id(application_id: str) -> str:
    return str(uuid.uuid5(INSPECTION_NAMESPACE, f"inspection:{application_id}"))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(tzinfo=None) if dt.tzinfo else dt


def clean_reasons(reasons: Optional[list[str]]) -> list[str]:
    """Strip, drop blanks, collapse duplicates (first occurrence wins)."""
    out: list[str] = []
    for r in reasons or []:
        s = (r or "").strip()
        if s and s not in out:
            out.append(s)
    return out


def synthesize(app: Application, establishment_name: Optional[str]) -> Inspection:
    """Transient pending inspection for an approved FSIC application."""
    return Inspection(
        id=virtual_inspection_id(app.id),
        establishment_id=app.establishment_id,
        establishment_name=establishment_name or "Unknown",
        application_id=app.id,
        inspector_id=None,
        inspector_name=None,
        type=app.type,
        status=st.PENDING,
        scheduled_start=None,
        scheduled_end=None,
        created_at=app.updated_at,
        updated_at=app.updated_at,
    )


class StatusSynchronizer:
    """
    Keeps inspections in step with the applications and establishments
    around them:

    - every approved FSIC application resolves to exactly one inspection
      identity (virtual until the first scheduling write, then persisted)
    - admin decisions on applications and establishments
    - outcome events (audit + workflow) when an inspection is decided
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.sessions = sessions
        self.clock = clock

    # -----------------------------
    # Inspection identity
    # -----------------------------
    async def working_set(self, db: AsyncSession) -> list[Inspection]:
        """Persisted rows for approved FSIC applications plus virtual rows for the rest."""
        store = InspectionStore(db)
        apps = await store.applications(status=st.APP_APPROVED, types=st.INSPECTION_TYPES)
        if not apps:
            return []

        rows = (
            await db.scalars(select(Inspection).where(Inspection.application_id.in_([a.id for a in apps])))
        ).all()
        by_app = {r.application_id: r for r in rows}
        names = await store.establishment_names(a.establishment_id for a in apps if a.id not in by_app)

        out: list[Inspection] = []
        for a in apps:
            row = by_app.get(a.id)
            out.append(row if row is not None else synthesize(a, names.get(a.establishment_id)))
        return out

    async def _virtual_by_id(self, db: AsyncSession, inspection_id: str) -> Optional[Inspection]:
        store = InspectionStore(db)
        for a in await store.applications(status=st.APP_APPROVED, types=st.INSPECTION_TYPES):
            if virtual_inspection_id(a.id) == str(inspection_id):
                if await store.get_by_application(a.id) is not None:
                    return None
                names = await store.establishment_names([a.establishment_id])
                return synthesize(a, names.get(a.establishment_id))
        return None

    async def resolve(self, db: AsyncSession, inspection_id: str) -> Inspection:
        """Persisted row, else the virtual row with that id (not added to the session)."""
        row = await InspectionStore(db).get(inspection_id)
        if row is not None:
            return row
        row = await self._virtual_by_id(db, inspection_id)
        if row is None:
            raise NotFoundError("inspection", inspection_id)
        return row

    async def materialize(self, db: AsyncSession, inspection_id: str) -> Inspection:
        """Resolve and, when virtual, add to the session so the caller's commit persists it."""
        row = await InspectionStore(db).get(inspection_id)
        if row is not None:
            return row
        row = await self._virtual_by_id(db, inspection_id)
        if row is None:
            raise NotFoundError("inspection", inspection_id)
        db.add(row)
        log.info("inspection materialized", extra={"inspection_id": row.id, "application_id": row.application_id})
        return row

    async def get_or_create(self, application_id: str) -> Inspection:
        async def work(db: AsyncSession) -> Inspection:
            store = InspectionStore(db)
            existing = await store.get_by_application(application_id)
            if existing is not None:
                return existing

            app = await store.must_get_application(application_id)
            if not st.requires_inspection(app.type):
                raise ValidationError(f"{app.type} applications do not require an inspection")
            if app.status != st.APP_APPROVED:
                raise ValidationError("application must be approved before its inspection exists")

            names = await store.establishment_names([app.establishment_id])
            row = synthesize(app, names.get(app.establishment_id))
            db.add(row)
            # a concurrent creator wins the key: WriteRace, and the retry reads its row
            return await store.upsert(row)

        return await transactional(self.sessions, work, label="inspection.get_or_create")

    # -----------------------------
    # Applications
    # -----------------------------
    async def approve_application(self, application_id: str, *, actor_user_id: Optional[str] = None) -> Application:
        async def work(db: AsyncSession) -> Application:
            app = await InspectionStore(db).must_get_application(application_id)
            if app.status == st.APP_APPROVED:
                return app
            if app.status != st.APP_PENDING:
                raise InvalidTransitionError("application", app.status, st.APP_APPROVED)

            app.status = st.APP_APPROVED
            app.updated_at = _naive(self.clock())
            await audit_write(
                db,
                actor_user_id=actor_user_id,
                action="application.approve",
                entity_type="Application",
                entity_id=app.id,
                before={"status": st.APP_PENDING},
                after={"status": st.APP_APPROVED},
            )
            payload: dict[str, Any] = {"application_id": app.id, "type": app.type}
            if st.requires_inspection(app.type):
                payload["inspection_id"] = virtual_inspection_id(app.id)
            await emit_workflow_event(
                db,
                event_type="application.approved",
                actor_user_id=actor_user_id,
                establishment_id=app.establishment_id,
                payload=payload,
            )
            return app

        app = await transactional(self.sessions, work, label="application.approve")
        log.info("application approved", extra={"application_id": app.id})
        return app

    async def reject_application(
        self,
        application_id: str,
        *,
        reason: Optional[str] = None,
        actor_user_id: Optional[str] = None,
    ) -> Application:
        async def work(db: AsyncSession) -> Application:
            app = await InspectionStore(db).must_get_application(application_id)
            if app.status == st.APP_REJECTED:
                return app
            if app.status != st.APP_PENDING:
                raise InvalidTransitionError("application", app.status, st.APP_REJECTED)

            app.status = st.APP_REJECTED
            app.notes = reason or app.notes
            app.updated_at = _naive(self.clock())
            await audit_write(
                db,
                actor_user_id=actor_user_id,
                action="application.reject",
                entity_type="Application",
                entity_id=app.id,
                before={"status": st.APP_PENDING},
                after={"status": st.APP_REJECTED, "reason": reason},
            )
            await emit_workflow_event(
                db,
                event_type="application.rejected",
                actor_user_id=actor_user_id,
                establishment_id=app.establishment_id,
                payload={"application_id": app.id, "reason": reason},
            )
            return app

        return await transactional(self.sessions, work, label="application.reject")

    # -----------------------------
    # Establishments
    # -----------------------------
    async def approve_establishment(self, establishment_id: str, *, actor_user_id: Optional[str] = None) -> Establishment:
        async def work(db: AsyncSession) -> Establishment:
            est = await InspectionStore(db).must_get_establishment(establishment_id)
            if est.status != st.EST_PRE_REGISTERED:
                raise InvalidTransitionError("establishment", est.status, st.EST_REGISTERED)

            est.status = st.EST_REGISTERED
            est.date_registered = _naive(self.clock())
            await audit_write(
                db,
                actor_user_id=actor_user_id,
                action="establishment.approve",
                entity_type="Establishment",
                entity_id=est.id,
                before={"status": st.EST_PRE_REGISTERED},
                after={"status": st.EST_REGISTERED, "date_registered": est.date_registered},
            )
            return est

        est = await transactional(self.sessions, work, label="establishment.approve")
        log.info("establishment registered", extra={"establishment_id": est.id})
        return est

    async def reject_establishment(
        self,
        establishment_id: str,
        *,
        reasons: list[str],
        notes: Optional[str] = None,
        actor_user_id: Optional[str] = None,
    ) -> EstablishmentRejection:
        cleaned = clean_reasons(reasons)
        if not cleaned:
            raise ValidationError("Please add at least one rejection reason")

        async def work(db: AsyncSession) -> EstablishmentRejection:
            est = await InspectionStore(db).must_get_establishment(establishment_id)
            if est.status not in (st.EST_PRE_REGISTERED, st.EST_REGISTERED):
                raise InvalidTransitionError("establishment", est.status, st.EST_UNREGISTERED)

            before = est.status
            est.status = st.EST_UNREGISTERED
            # history is a separate append-only log; nothing existing is rewritten
            entry = EstablishmentRejection(
                establishment_id=est.id,
                reasons_json=json.dumps(cleaned, ensure_ascii=False),
                notes=(notes or "").strip() or None,
                created_at=_naive(self.clock()),
            )
            db.add(entry)
            await db.flush()
            await audit_write(
                db,
                actor_user_id=actor_user_id,
                action="establishment.reject",
                entity_type="Establishment",
                entity_id=est.id,
                before={"status": before},
                after={"status": st.EST_UNREGISTERED, "reasons": cleaned, "notes": entry.notes},
            )
            return entry

        entry = await transactional(self.sessions, work, label="establishment.reject")
        log.info("establishment rejected", extra={"establishment_id": establishment_id})
        return entry

    async def rejection_history(self, establishment_id: str) -> list[dict[str, Any]]:
        async with self.sessions() as db:
            await InspectionStore(db).must_get_establishment(establishment_id)
            rows = (
                await db.scalars(
                    select(EstablishmentRejection)
                    .where(EstablishmentRejection.establishment_id == str(establishment_id))
                    .order_by(EstablishmentRejection.id.asc())
                )
            ).all()
        return [
            {"reasons": json.loads(r.reasons_json or "[]"), "notes": r.notes or "", "timestamp": r.created_at}
            for r in rows
        ]

    # -----------------------------
    # Inspection outcomes
    # -----------------------------
    async def record_outcome(
        self,
        db: AsyncSession,
        row: Inspection,
        *,
        action: str,
        before: dict[str, Any],
        actor_user_id: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Audit + workflow event for an inspection transition, written in the
        caller's transaction. Certificate issuance and re-inspection requests
        downstream key off these events.
        """
        await audit_write(
            db,
            actor_user_id=actor_user_id,
            action=f"inspection.{action}",
            entity_type="Inspection",
            entity_id=row.id,
            before=before,
            after=snapshot(row),
        )
        body = {"inspection_id": row.id, "application_id": row.application_id}
        body.update(payload or {})
        await emit_workflow_event(
            db,
            event_type=f"inspection.{action}",
            actor_user_id=actor_user_id,
            establishment_id=row.establishment_id,
            payload=body,
        )
