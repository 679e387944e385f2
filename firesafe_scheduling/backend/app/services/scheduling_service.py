# backend/app/services/scheduling_service.py
from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.audit import audit_write
from ..domain.scheduling import states as st
from ..domain.scheduling.availability import EligibleRoster, check_eligibility, eligible_inspectors
from ..domain.scheduling.windows import ScheduleWindow, build_window, local_today
from ..errors import InvalidTransitionError, SchedulingConflict, ValidationError
from ..models import Inspection, Inspector
from .certificates import CertificateGenerator, StoredCertificateGenerator
from .expiry_sweeper import ExpirySweeper
from .inspection_store import InspectionStore, snapshot
from .locks_service import InspectorLocks, create_lock_row, reserve_inspector_schedule
from .notifications import Notifier, assignment_notice
from .retry import transactional
from .status_sync import StatusSynchronizer, clean_reasons

log = logging.getLogger("firesafe.scheduling")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def compose_rejection_reason(reasons: list[str], notes: Optional[str]) -> str:
    text = "; ".join(reasons)
    if notes:
        text += f" - Additional Notes: {notes}"
    return text


def _clear_schedule_fields(row: Inspection) -> None:
    row.inspector_id = None
    row.inspector_name = None
    row.scheduled_start = None
    row.scheduled_end = None


class SchedulingService:
    """
    Owns the inspection collection and its state machine. Presentation layers
    call these operations and nothing else; every operation is one
    all-or-nothing transaction.
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = _utcnow,
        notifier: Optional[Notifier] = None,
        certificates: Optional[CertificateGenerator] = None,
        locks: Optional[InspectorLocks] = None,
        offset_hours: Optional[int] = None,
    ) -> None:
        self.sessions = sessions
        self.clock = clock
        self.offset_hours = offset_hours
        self.notifier = notifier or Notifier()
        self.certificates = certificates or StoredCertificateGenerator()
        self.locks = locks or InspectorLocks()
        self.sync = StatusSynchronizer(sessions, clock=clock)
        self.sweeper = ExpirySweeper(sessions, clock=clock, offset_hours=offset_hours)

    # -----------------------------
    # Reads (each runs the expiry sweep inline)
    # -----------------------------
    async def list_inspections(
        self,
        *,
        status: Optional[str] = None,
        type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Inspection]:
        async def work(db: AsyncSession) -> list[Inspection]:
            await self.sweeper.sweep_in(db)
            return await self.sync.working_set(db)

        rows = await transactional(self.sessions, work, label="inspection.list")

        if status and status != "all":
            rows = [r for r in rows if r.status == status]
        if type and type != "all":
            rows = [r for r in rows if r.type == type]
        if search:
            needle = search.strip().lower()
            rows = [
                r
                for r in rows
                if needle in (r.establishment_name or "").lower() or needle in (r.inspector_name or "").lower()
            ]

        rows.sort(key=lambda r: r.updated_at or datetime.min, reverse=True)
        rows.sort(key=lambda r: st.STATUS_PRIORITY.get(r.status, 7))
        return rows

    async def get_inspection(self, inspection_id: str) -> Inspection:
        async def work(db: AsyncSession) -> Inspection:
            await self.sweeper.sweep_in(db)
            return await self.sync.resolve(db, inspection_id)

        return await transactional(self.sessions, work, label="inspection.get")

    async def assigned_to(self, inspector_id: str) -> list[Inspection]:
        async def work(db: AsyncSession) -> list[Inspection]:
            await self.sweeper.sweep_in(db)
            return await InspectionStore(db).query(inspector_id=inspector_id)

        return await transactional(self.sessions, work, label="inspection.assigned")

    async def list_eligible_inspectors(
        self,
        day: Optional[date],
        start_time: Any,
        end_time: Any,
        *,
        exclude_inspection_id: Optional[str] = None,
    ) -> EligibleRoster:
        window = build_window(day, start_time, end_time, offset_hours=self.offset_hours)
        async with self.sessions() as db:
            store = InspectionStore(db)
            roster = await store.inspectors()
            occupied = await store.occupied_slots(window=window)
        return eligible_inspectors(window, roster, occupied, exclude_inspection_id=exclude_inspection_id)

    # -----------------------------
    # Scheduling
    # -----------------------------
    def _validate_schedule_input(
        self,
        inspection_id: Optional[str],
        day: Optional[date],
        start_time: Any,
        end_time: Any,
        inspector_id: Optional[str],
    ) -> ScheduleWindow:
        if not inspection_id:
            raise ValidationError("inspection id is required")
        if not inspector_id:
            raise ValidationError("Please select a date and inspector.")
        window = build_window(day, start_time, end_time, offset_hours=self.offset_hours)
        if window.local_date < local_today(self.clock(), self.offset_hours):
            raise ValidationError("Cannot schedule an inspection on a past date.")
        return window

    async def schedule_and_assign(
        self,
        inspection_id: str,
        day: Optional[date],
        start_time: Any,
        end_time: Any,
        inspector_id: str,
        *,
        actor_user_id: Optional[str] = None,
    ) -> Inspection:
        """
        Check-and-reserve: the inspector's schedule lock is taken before the
        overlap read and held until the write commits, so two overlapping
        requests for one inspector cannot both pass the check.
        """
        window = self._validate_schedule_input(inspection_id, day, start_time, end_time, inspector_id)
        inspector_id = str(inspector_id)

        async def work(db: AsyncSession) -> Inspection:
            store = InspectionStore(db)
            # first statement of the transaction
            reserved = await reserve_inspector_schedule(db, inspector_id=inspector_id, holder=str(inspection_id))
            inspector = await store.get_inspector(inspector_id)
            if not reserved and inspector is not None:
                await create_lock_row(db, inspector_id=inspector_id, holder=str(inspection_id))

            row = await self.sync.materialize(db, inspection_id)
            before = snapshot(row)
            st.ensure_transition(row.status, st.SCHEDULED)

            roster = [inspector] if inspector is not None else []
            occupied = await store.occupied_slots(window=window, inspector_id=inspector_id)

            verdict = check_eligibility(inspector_id, window, roster, occupied, exclude_inspection_id=row.id)
            if not verdict:
                raise SchedulingConflict(
                    verdict.message or "inspector not available",
                    reason=verdict.reason or "unavailable",
                    inspector_id=inspector_id,
                    conflicting_inspection_id=verdict.conflicting_inspection_id,
                )

            row.status = st.SCHEDULED
            row.inspector_id = inspector_id
            row.inspector_name = inspector.full_name
            row.scheduled_start = window.start
            row.scheduled_end = window.end
            row.updated_at = _naive(self.clock())
            await store.upsert(row)

            await audit_write(
                db,
                actor_user_id=actor_user_id,
                action="inspection.schedule",
                entity_type="Inspection",
                entity_id=row.id,
                before=before,
                after=snapshot(row),
            )
            return row

        async with self.locks.for_inspector(inspector_id):
            try:
                row = await transactional(self.sessions, work, label="inspection.schedule")
            except SchedulingConflict as e:
                log.info(
                    "schedule refused: %s",
                    e.reason,
                    extra={"inspection_id": str(inspection_id), "inspector_id": inspector_id},
                )
                raise

        log.info(
            "inspection scheduled %s..%s",
            window.start.isoformat(),
            window.end.isoformat(),
            extra={"inspection_id": row.id, "inspector_id": inspector_id},
        )
        self.notifier.notify(
            assignment_notice(
                inspector_id=inspector_id,
                inspection_id=row.id,
                establishment_name=row.establishment_name,
                when=f"{window.local_date.isoformat()} {window.start.strftime('%H:%M')}-{window.end.strftime('%H:%M')}",
            )
        )
        return row

    async def clear_schedule(self, inspection_id: str, *, actor_user_id: Optional[str] = None) -> Inspection:
        async def work(db: AsyncSession) -> Inspection:
            row = await self.sync.resolve(db, inspection_id)
            if row.status == st.PENDING:
                return row
            if row.status != st.SCHEDULED:
                # rejected -> pending goes through request_reinspection
                raise InvalidTransitionError("inspection", row.status, st.PENDING)
            before = snapshot(row)

            row.status = st.PENDING
            _clear_schedule_fields(row)
            row.updated_at = _naive(self.clock())
            await db.flush()
            await audit_write(
                db,
                actor_user_id=actor_user_id,
                action="inspection.clear_schedule",
                entity_type="Inspection",
                entity_id=row.id,
                before=before,
                after=snapshot(row),
            )
            return row

        row = await transactional(self.sessions, work, label="inspection.clear_schedule")
        log.info("inspection schedule cleared", extra={"inspection_id": row.id})
        return row

    # -----------------------------
    # Outcomes
    # -----------------------------
    async def mark_inspected(self, inspection_id: str, *, inspector_id: str) -> Inspection:
        """The assigned inspector submitted the checklist."""

        async def work(db: AsyncSession) -> Inspection:
            row = await InspectionStore(db).must_get(inspection_id)
            before = snapshot(row)
            st.ensure_transition(row.status, st.INSPECTED)
            if row.status == st.SCHEDULED and str(row.inspector_id or "") != str(inspector_id):
                raise ValidationError("Only the assigned inspector can complete this inspection")

            row.status = st.INSPECTED
            row.updated_at = _naive(self.clock())
            await db.flush()
            await self.sync.record_outcome(db, row, action="inspected", before=before, actor_user_id=inspector_id)
            return row

        row = await transactional(self.sessions, work, label="inspection.inspected")
        log.info("inspection inspected", extra={"inspection_id": row.id, "inspector_id": str(inspector_id)})
        return row

    async def reject(
        self,
        inspection_id: str,
        reasons: list[str],
        notes: Optional[str] = None,
        *,
        actor_user_id: Optional[str] = None,
    ) -> Inspection:
        cleaned = clean_reasons(reasons)
        if not cleaned:
            raise ValidationError("Please add at least one rejection reason")
        notes = (notes or "").strip() or None

        async def work(db: AsyncSession) -> Inspection:
            row = await InspectionStore(db).must_get(inspection_id)
            before = snapshot(row)
            st.ensure_transition(row.status, st.REJECTED)

            row.status = st.REJECTED
            row.rejection_reason = compose_rejection_reason(cleaned, notes)
            row.rejection_reasons_json = json.dumps(cleaned, ensure_ascii=False)
            row.rejection_notes = notes
            row.updated_at = _naive(self.clock())
            await db.flush()
            await self.sync.record_outcome(
                db,
                row,
                action="rejected",
                before=before,
                actor_user_id=actor_user_id,
                payload={"reasons": cleaned, "notes": notes},
            )
            return row

        row = await transactional(self.sessions, work, label="inspection.reject")
        log.info("inspection rejected", extra={"inspection_id": row.id})
        return row

    async def approve(
        self,
        inspection_id: str,
        certificate_url: Optional[str] = None,
        *,
        actor_user_id: Optional[str] = None,
    ) -> Inspection:
        if certificate_url is not None and not certificate_url.strip():
            raise ValidationError("certificate url must not be blank")

        async def work(db: AsyncSession) -> Inspection:
            row = await InspectionStore(db).must_get(inspection_id)
            if row.status == st.APPROVED:
                if certificate_url is None or certificate_url == row.certificate_url:
                    return row
                raise InvalidTransitionError(
                    "inspection",
                    st.APPROVED,
                    st.APPROVED,
                    detail="inspection is already approved with a different certificate",
                )

            before = snapshot(row)
            st.ensure_transition(row.status, st.APPROVED)

            row.status = st.APPROVED
            row.certificate_url = certificate_url or await self.certificates.generate(row)
            row.updated_at = _naive(self.clock())
            await db.flush()
            await self.sync.record_outcome(
                db,
                row,
                action="approved",
                before=before,
                actor_user_id=actor_user_id,
                payload={"certificate_url": row.certificate_url},
            )
            return row

        row = await transactional(self.sessions, work, label="inspection.approve")
        log.info("inspection approved", extra={"inspection_id": row.id})
        return row

    async def request_reinspection(self, inspection_id: str, *, actor_user_id: Optional[str] = None) -> Inspection:
        async def work(db: AsyncSession) -> Inspection:
            row = await InspectionStore(db).must_get(inspection_id)
            if row.status != st.REJECTED:
                raise InvalidTransitionError(
                    "inspection",
                    row.status,
                    st.PENDING,
                    detail="re-inspection can only be requested for a rejected inspection",
                )
            before = snapshot(row)
            previous_reason = row.rejection_reason

            row.status = st.PENDING
            _clear_schedule_fields(row)
            row.rejection_reason = None
            row.rejection_reasons_json = None
            row.rejection_notes = None
            row.updated_at = _naive(self.clock())
            await db.flush()
            await self.sync.record_outcome(
                db,
                row,
                action="reinspection_requested",
                before=before,
                actor_user_id=actor_user_id,
                payload={"previous_reason": previous_reason},
            )
            return row

        row = await transactional(self.sessions, work, label="inspection.reinspect")
        log.info("re-inspection requested", extra={"inspection_id": row.id})
        return row

    # -----------------------------
    # Roster
    # -----------------------------
    async def roster(self) -> list[Inspector]:
        async with self.sessions() as db:
            return await InspectionStore(db).inspectors()

    async def set_duty_status(
        self,
        inspector_id: str,
        *,
        on_duty: bool,
        availability_start: Optional[date] = None,
        availability_end: Optional[date] = None,
    ) -> Inspector:
        if on_duty:
            if availability_start is None or availability_end is None:
                raise ValidationError("Please set both availability dates.")
            if availability_end < availability_start:
                raise ValidationError("Availability end date must not be before the start date.")
            if availability_end < local_today(self.clock(), self.offset_hours):
                raise ValidationError("Availability has expired; update to future dates.")

        async def work(db: AsyncSession) -> Inspector:
            ins = await InspectionStore(db).must_get_inspector(inspector_id)
            before = {
                "duty_status": ins.duty_status,
                "availability_start": ins.availability_start,
                "availability_end": ins.availability_end,
            }
            if on_duty:
                ins.duty_status = st.ON_DUTY
                ins.availability_start = availability_start
                ins.availability_end = availability_end
            else:
                ins.duty_status = st.OFF_DUTY
                ins.availability_start = None
                ins.availability_end = None
            ins.updated_at = _naive(self.clock())
            await db.flush()
            await audit_write(
                db,
                actor_user_id=str(inspector_id),
                action="inspector.duty_status",
                entity_type="Inspector",
                entity_id=ins.id,
                before=before,
                after={
                    "duty_status": ins.duty_status,
                    "availability_start": ins.availability_start,
                    "availability_end": ins.availability_end,
                },
            )
            return ins

        ins = await transactional(self.sessions, work, label="inspector.duty_status")
        log.info("duty status now %s", ins.duty_status, extra={"inspector_id": ins.id})
        return ins
