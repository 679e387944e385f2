# backend/app/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import SessionLocal
from app.domain.scheduling import states as st
from app.models import Application, Establishment, Inspector


@dataclass(frozen=True)
class SeedResult:
    inspector_ids: list[str]
    establishment_id: str
    application_ids: list[str] = field(default_factory=list)


async def _get_or_create_inspector(
    db: AsyncSession,
    first: str,
    last: str,
    *,
    on_duty: bool,
    today: date,
) -> Inspector:
    row = await db.scalar(select(Inspector).where(Inspector.first_name == first, Inspector.last_name == last))
    if row:
        return row
    row = Inspector(first_name=first, last_name=last, role="inspector")
    if on_duty:
        row.duty_status = st.ON_DUTY
        row.availability_start = today
        row.availability_end = today + timedelta(days=30)
    db.add(row)
    await db.flush()
    return row


async def _get_or_create_establishment(db: AsyncSession, name: str, owner_id: str) -> Establishment:
    row = await db.scalar(select(Establishment).where(Establishment.name == name))
    if row:
        return row
    row = Establishment(name=name, owner_id=owner_id, address="1 Rizal Ave", status=st.EST_PRE_REGISTERED)
    db.add(row)
    await db.flush()
    return row


async def _ensure_application(db: AsyncSession, establishment_id: str, type_: str, status: str) -> Application:
    row = await db.scalar(
        select(Application).where(Application.establishment_id == establishment_id, Application.type == type_)
    )
    if row:
        return row
    row = Application(establishment_id=establishment_id, type=type_, status=status)
    db.add(row)
    await db.flush()
    return row


async def seed_demo(
    *,
    establishment_name: str = "Demo Bakery",
    owner_id: str = "demo-owner",
    today: Optional[date] = None,
    sessions: Optional[async_sessionmaker[AsyncSession]] = None,
) -> SeedResult:
    """Two inspectors (one on duty), one establishment, one application of each type."""
    today = today or date.today()
    async with (sessions or SessionLocal)() as db:
        a = await _get_or_create_inspector(db, "Ana", "Reyes", on_duty=True, today=today)
        b = await _get_or_create_inspector(db, "Ben", "Cruz", on_duty=False, today=today)
        est = await _get_or_create_establishment(db, establishment_name, owner_id)

        apps = [
            await _ensure_application(db, est.id, st.FSIC_OCCUPANCY, st.APP_APPROVED),
            await _ensure_application(db, est.id, st.FSIC_BUSINESS, st.APP_PENDING),
            await _ensure_application(db, est.id, st.FSEC, st.APP_APPROVED),
        ]
        await db.commit()

        return SeedResult(
            inspector_ids=[a.id, b.id],
            establishment_id=est.id,
            application_ids=[x.id for x in apps],
        )
