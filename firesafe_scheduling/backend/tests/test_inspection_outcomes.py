from __future__ import annotations

import asyncio
import json
from datetime import date

import pytest
from sqlalchemy import select

from app.domain.events import list_workflow_events
from app.domain.scheduling import states as st
from app.errors import InvalidTransitionError, ValidationError
from app.models import AuditEvent
from app.services.scheduling_service import compose_rejection_reason


async def _inspected(svc, ids, inspection_id=None, day=10):
    inspection_id = inspection_id or ids.x
    await svc.schedule_and_assign(inspection_id, date(2025, 1, day), "09:00", "10:00", ids.i)
    return await svc.mark_inspected(inspection_id, inspector_id=ids.i)


def test_scenario_d_reject_then_request_reinspection(svc, ids):
    async def go():
        await _inspected(svc, ids)
        rejected = await svc.reject(ids.x, ["Incomplete establishment information"], "missing checklist")
        reopened = await svc.request_reinspection(ids.x)
        return rejected, reopened

    rejected, reopened = asyncio.run(go())

    assert rejected.status == st.REJECTED
    assert rejected.rejection_reason == "Incomplete establishment information - Additional Notes: missing checklist"
    assert json.loads(rejected.rejection_reasons_json) == ["Incomplete establishment information"]
    assert rejected.rejection_notes == "missing checklist"

    assert reopened.status == st.PENDING
    assert reopened.scheduled_start is None
    assert reopened.scheduled_end is None
    assert reopened.inspector_id is None
    assert reopened.rejection_reason is None


def test_reopened_inspection_can_be_scheduled_again(svc, ids):
    async def go():
        await _inspected(svc, ids)
        await svc.reject(ids.x, ["Blocked fire exit"])
        await svc.request_reinspection(ids.x)
        return await svc.schedule_and_assign(ids.x, date(2025, 1, 20), "13:00", "14:00", ids.j)

    assert asyncio.run(go()).status == st.SCHEDULED


def test_scenario_e_approve_is_idempotent_for_the_same_url(svc, ids, sessions):
    url = "https://host/cert.pdf"

    async def go():
        await _inspected(svc, ids)
        first = await svc.approve(ids.x, url)
        second = await svc.approve(ids.x, url)
        async with sessions() as db:
            audits = (
                await db.scalars(select(AuditEvent).where(AuditEvent.action == "inspection.approved"))
            ).all()
        return first, second, audits

    first, second, audits = asyncio.run(go())

    assert first.status == st.APPROVED
    assert first.certificate_url == url
    assert second.status == st.APPROVED
    assert second.certificate_url == url
    assert second.updated_at == first.updated_at
    assert len(audits) == 1


def test_approve_with_a_different_url_is_refused(svc, ids):
    async def go():
        await _inspected(svc, ids)
        await svc.approve(ids.x, "https://host/a.pdf")
        with pytest.raises(InvalidTransitionError):
            await svc.approve(ids.x, "https://host/b.pdf")
        return await svc.get_inspection(ids.x)

    assert asyncio.run(go()).certificate_url == "https://host/a.pdf"


def test_approve_without_url_uses_the_certificate_generator(svc, ids):
    async def go():
        await _inspected(svc, ids)
        return await svc.approve(ids.x)

    row = asyncio.run(go())

    assert row.certificate_url == f"https://certs.test/inspections/FSIC-{ids.x}-1736035200000.pdf"


def test_outcomes_require_an_inspected_inspection(svc, ids):
    async def go():
        await svc.schedule_and_assign(ids.x, date(2025, 1, 10), "09:00", "10:00", ids.i)
        with pytest.raises(InvalidTransitionError):
            await svc.approve(ids.x, "https://host/cert.pdf")
        with pytest.raises(InvalidTransitionError):
            await svc.reject(ids.x, ["Too early"])
        with pytest.raises(InvalidTransitionError):
            await svc.request_reinspection(ids.x)
        return await svc.get_inspection(ids.x)

    assert asyncio.run(go()).status == st.SCHEDULED


def test_approved_is_terminal(svc, ids):
    async def go():
        await _inspected(svc, ids)
        await svc.approve(ids.x, "https://host/cert.pdf")
        with pytest.raises(InvalidTransitionError):
            await svc.request_reinspection(ids.x)
        with pytest.raises(InvalidTransitionError):
            await svc.schedule_and_assign(ids.x, date(2025, 1, 12), "09:00", "10:00", ids.i)

    asyncio.run(go())


def test_only_the_assigned_inspector_marks_inspected(svc, ids):
    async def go():
        await svc.schedule_and_assign(ids.x, date(2025, 1, 10), "09:00", "10:00", ids.i)
        with pytest.raises(ValidationError, match="assigned inspector"):
            await svc.mark_inspected(ids.x, inspector_id=ids.j)
        return await svc.mark_inspected(ids.x, inspector_id=ids.i)

    assert asyncio.run(go()).status == st.INSPECTED


def test_rejection_reasons_are_required_and_deduplicated(svc, ids):
    async def go():
        await _inspected(svc, ids)
        with pytest.raises(ValidationError):
            await svc.reject(ids.x, ["  ", ""])
        return await svc.reject(ids.x, ["No extinguisher", " No extinguisher ", "Exit blocked"], None)

    row = asyncio.run(go())

    assert row.rejection_reason == "No extinguisher; Exit blocked"
    assert row.rejection_notes is None


def test_compose_rejection_reason():
    assert compose_rejection_reason(["a", "b"], None) == "a; b"
    assert compose_rejection_reason(["a"], "see photos") == "a - Additional Notes: see photos"


def test_outcomes_are_published_as_workflow_events(svc, ids, world, sessions):
    async def go():
        await _inspected(svc, ids)
        await svc.reject(ids.x, ["Exit blocked"], "north stairwell")
        await svc.request_reinspection(ids.x)
        await _inspected(svc, ids, day=12)
        await svc.approve(ids.x, "https://host/cert.pdf")
        async with sessions() as db:
            return await list_workflow_events(db, establishment_id=world.establishment_id)

    events = asyncio.run(go())
    types = [e["event_type"] for e in reversed(events)]

    assert types == [
        "inspection.inspected",
        "inspection.rejected",
        "inspection.reinspection_requested",
        "inspection.inspected",
        "inspection.approved",
    ]
    approved = events[0]
    assert approved["payload"]["inspection_id"] == ids.x
    assert approved["payload"]["certificate_url"] == "https://host/cert.pdf"
    reinspect = events[2]
    assert reinspect["payload"]["previous_reason"] == "Exit blocked - Additional Notes: north stairwell"
