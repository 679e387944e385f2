from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from app.main import create_app
from app.models import AuditEvent
from app.services.notifications import Notifier

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
OWNER = {"X-User-Id": "owner-1", "X-User-Role": "owner"}


def _inspector(inspector_id):
    return {"X-User-Id": inspector_id, "X-User-Role": "inspector"}


@pytest.fixture
def client(sessions, clock, channel, world):
    app = create_app(sessions=sessions, clock=clock, notifier=Notifier(channel))
    with TestClient(app) as c:
        yield c


def _schedule(client, inspection_id, inspector_id, start="09:00", end="10:00", day="2025-01-10"):
    return client.put(
        f"/api/inspections/{inspection_id}/schedule",
        json={"date": day, "start_time": start, "end_time": end, "inspector_id": inspector_id},
        headers=ADMIN,
    )


def test_health_and_request_id(client):
    r = client.get("/api/meta/health", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers["X-Request-ID"] == "req-123"


def test_identity_headers_are_required(client, ids):
    assert client.get("/api/inspections").status_code == 401
    assert client.get("/api/inspections", headers={"X-User-Id": "u", "X-User-Role": "wizard"}).status_code == 401
    assert client.get("/api/inspections", headers=OWNER).status_code == 403


def test_schedule_flow_over_http(client, ids):
    r = client.get("/api/inspections", headers=ADMIN)
    assert r.status_code == 200
    assert {row["status"] for row in r.json()} == {"pending"}

    r = _schedule(client, ids.x, ids.i, start="9:00 AM", end="10:00 AM")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "scheduled"
    assert body["inspector_name"] == "Ines Ibarra"
    assert body["scheduled_start"].startswith("2025-01-10T09:00:00")
    assert body["scheduled_start"].endswith("+08:00")

    r = _schedule(client, ids.y, ids.i, start="09:30", end="10:30")
    assert r.status_code == 409
    err = r.json()
    assert err["error"] == "scheduling_conflict"
    assert err["reason"] == "overlap"
    assert err["conflicting_inspection_id"] == ids.x

    r = client.get(f"/api/inspections/{ids.y}", headers=OWNER)
    assert r.status_code == 200
    assert r.json()["status"] == "pending"

    r = client.delete(f"/api/inspections/{ids.x}/schedule", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["inspector_id"] is None


def test_validation_and_not_found_map_to_status_codes(client, ids):
    r = _schedule(client, ids.x, ids.i, start="10:00", end="09:00")
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"

    r = _schedule(client, "missing", ids.i)
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"

    r = client.post(f"/api/inspections/{ids.x}/approve", json={"certificate_url": "https://host/c.pdf"}, headers=ADMIN)
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_transition"


def test_eligible_inspectors_endpoint_reports_none_available(client, ids):
    r = client.get(
        "/api/inspections/eligible-inspectors",
        params={"date": "2025-01-10", "start_time": "09:00", "end_time": "10:00"},
        headers=ADMIN,
    )
    assert r.status_code == 200
    assert [o["label"] for o in r.json()["options"]] == ["Ines Ibarra", "Jose Javier"]

    r = client.get(
        "/api/inspections/eligible-inspectors",
        params={"date": "2025-03-10", "start_time": "09:00", "end_time": "10:00"},
        headers=ADMIN,
    )
    body = r.json()
    assert body["none_available"] is True
    assert body["inspectors"] == []
    assert body["options"] == [{"value": None, "label": "No available inspectors", "selectable": False}]


def test_inspector_and_admin_outcome_flow(client, ids, channel):
    assert _schedule(client, ids.x, ids.i).status_code == 200

    r = client.get("/api/inspections/assigned", headers=_inspector(ids.i))
    assert [row["id"] for row in r.json()] == [ids.x]

    assert client.post(f"/api/inspections/{ids.x}/inspected", headers=_inspector(ids.j)).status_code == 422
    assert client.post(f"/api/inspections/{ids.x}/inspected", headers=_inspector(ids.i)).status_code == 200

    r = client.post(
        f"/api/inspections/{ids.x}/reject",
        json={"reasons": ["Blocked exit"], "notes": "rear door"},
        headers=ADMIN,
    )
    assert r.status_code == 200
    assert r.json()["rejection_reasons"] == ["Blocked exit"]
    assert r.json()["rejection_reason"] == "Blocked exit - Additional Notes: rear door"

    r = client.post(f"/api/inspections/{ids.x}/reinspection", headers=OWNER)
    assert r.status_code == 200
    assert r.json()["status"] == "pending"
    assert r.json()["rejection_reasons"] == []


def test_duty_toggle_is_self_service_for_inspectors(client, ids):
    payload = {"on_duty": True, "availability_start": "2025-01-06", "availability_end": "2025-01-30"}

    r = client.put(f"/api/inspectors/{ids.off}/duty", json=payload, headers=_inspector(ids.i))
    assert r.status_code == 403

    r = client.put(f"/api/inspectors/{ids.off}/duty", json=payload, headers=_inspector(ids.off))
    assert r.status_code == 200
    assert r.json()["duty_status"] == "on_duty"

    r = client.get("/api/inspectors", headers=ADMIN)
    assert [i["full_name"] for i in r.json()] == ["Ines Ibarra", "Jose Javier", "Oscar Ortiz"]


def test_establishment_and_application_routes(client, world):
    r = client.post(
        f"/api/establishments/{world.establishment_id}/reject",
        json={"reasons": ["Missing permit"], "notes": "upload BIR form"},
        headers=ADMIN,
    )
    assert r.status_code == 200
    assert r.json()[0]["reasons"] == ["Missing permit"]

    r = client.post(f"/api/establishments/{world.establishment_id}/approve", headers=ADMIN)
    assert r.status_code == 409

    r = client.post(f"/api/applications/{world.pending_app_id}/approve", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["status"] == "approved"

    r = client.get(f"/api/establishments/{world.establishment_id}/events", headers=ADMIN)
    assert [e["event_type"] for e in r.json()] == ["application.approved"]

    r = client.get(f"/api/establishments/{world.establishment_id}/rejections", headers=OWNER)
    assert len(r.json()) == 1


def test_request_id_is_stamped_on_audit_rows(client, ids, sessions):
    r = client.put(
        f"/api/inspections/{ids.x}/schedule",
        json={"date": "2025-01-10", "start_time": "09:00", "end_time": "10:00", "inspector_id": ids.i},
        headers={**ADMIN, "X-Request-ID": "sched-42"},
    )
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "sched-42"

    async def audits():
        async with sessions() as db:
            return (await db.scalars(select(AuditEvent).where(AuditEvent.entity_id == ids.x))).all()

    assert [a.request_id for a in asyncio.run(audits())] == ["sched-42"]


def test_unsafe_request_ids_are_replaced(client):
    r = client.get("/api/meta/health", headers={"X-Request-ID": "bad id with spaces"})
    rid = r.headers["X-Request-ID"]
    assert rid != "bad id with spaces"
    assert len(rid) == 32
