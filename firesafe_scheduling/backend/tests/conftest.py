from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.pool import NullPool

from app.db import create_all, make_engine, make_sessionmaker
from app.domain.scheduling import states as st
from app.models import Application, Establishment, Inspector
from app.services.certificates import StoredCertificateGenerator
from app.services.notifications import Notification, NotificationChannel, Notifier
from app.services.scheduling_service import SchedulingService
from app.services.status_sync import virtual_inspection_id

# 2025-01-05 10:00 at UTC+8
DEFAULT_NOW = datetime(2025, 1, 5, 2, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = DEFAULT_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingChannel(NotificationChannel):
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


@pytest.fixture
def sessions(tmp_path):
    # NullPool: every asyncio.run() gets connections bound to its own loop
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'firesafe_test.db'}", poolclass=NullPool)
    asyncio.run(create_all(engine))
    yield make_sessionmaker(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def svc(sessions, clock, channel):
    return SchedulingService(
        sessions,
        clock=clock,
        notifier=Notifier(channel),
        certificates=StoredCertificateGenerator(base_url="https://certs.test/inspections", clock=lambda: 1736035200.0),
        offset_hours=8,
    )


@dataclass
class World:
    inspector_i: str
    inspector_j: str
    off_duty: str
    establishment_id: str
    app_ids: list[str] = field(default_factory=list)
    fsec_app_id: str = ""
    pending_app_id: str = ""

    @property
    def inspection_ids(self) -> list[str]:
        return [virtual_inspection_id(a) for a in self.app_ids]


async def _seed(sessions) -> World:
    async with sessions() as db:
        i = Inspector(
            first_name="Ines",
            last_name="Ibarra",
            duty_status=st.ON_DUTY,
            availability_start=date(2025, 1, 1),
            availability_end=date(2025, 1, 31),
        )
        j = Inspector(
            first_name="Jose",
            last_name="Javier",
            duty_status=st.ON_DUTY,
            availability_start=date(2025, 1, 1),
            availability_end=date(2025, 1, 31),
        )
        off = Inspector(first_name="Oscar", last_name="Ortiz", duty_status=st.OFF_DUTY)
        est = Establishment(owner_id="owner-1", name="Harbor Grill", status=st.EST_PRE_REGISTERED)
        db.add_all([i, j, off, est])
        await db.flush()

        apps = [
            Application(establishment_id=est.id, type=st.FSIC_OCCUPANCY, status=st.APP_APPROVED),
            Application(establishment_id=est.id, type=st.FSIC_BUSINESS, status=st.APP_APPROVED),
            Application(establishment_id=est.id, type=st.FSIC_BUSINESS, status=st.APP_APPROVED),
        ]
        fsec = Application(establishment_id=est.id, type=st.FSEC, status=st.APP_APPROVED)
        pending = Application(establishment_id=est.id, type=st.FSIC_OCCUPANCY, status=st.APP_PENDING)
        db.add_all(apps + [fsec, pending])
        await db.commit()

        return World(
            inspector_i=i.id,
            inspector_j=j.id,
            off_duty=off.id,
            establishment_id=est.id,
            app_ids=[a.id for a in apps],
            fsec_app_id=fsec.id,
            pending_app_id=pending.id,
        )


@pytest.fixture
def world(sessions) -> World:
    return asyncio.run(_seed(sessions))


@pytest.fixture
def ids(world) -> SimpleNamespace:
    """Shorthand: x, y, z are the three schedulable inspections."""
    x, y, z = world.inspection_ids
    return SimpleNamespace(x=x, y=y, z=z, i=world.inspector_i, j=world.inspector_j, off=world.off_duty)
