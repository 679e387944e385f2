# backend/app/models.py
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain.scheduling.windows import local_tz


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.utcnow()


class LocalDateTime(TypeDecorator):
    """
    Stored as naive UTC on every backend (SQLite drops offsets),
    surfaced as an aware datetime in the fixed scheduling offset.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("LocalDateTime requires an aware datetime")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc).astimezone(local_tz())


# -----------------------------
# People
# -----------------------------
class Inspector(Base):
    """The scheduling-relevant subset of an inspector's user profile."""

    __tablename__ = "inspectors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="inspector")

    duty_status: Mapped[str] = mapped_column(String(20), nullable=False, default="off_duty")  # on_duty|off_duty
    availability_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    availability_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# -----------------------------
# Establishments / Applications
# -----------------------------
class Establishment(Base):
    __tablename__ = "establishments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="unregistered")
    date_registered: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    rejections: Mapped[List["EstablishmentRejection"]] = relationship(
        back_populates="establishment",
        order_by="EstablishmentRejection.id",
    )


class EstablishmentRejection(Base):
    """Append-only rejection log; rows are never updated or deleted."""

    __tablename__ = "establishment_rejections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    establishment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("establishments.id"), nullable=False, index=True
    )
    reasons_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    establishment: Mapped["Establishment"] = relationship(back_populates="rejections")


class Application(Base):
    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    establishment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("establishments.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)  # FSEC|FSIC-Occupancy|FSIC-Business
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    establishment: Mapped["Establishment"] = relationship()


# -----------------------------
# Inspections
# -----------------------------
class Inspection(Base):
    __tablename__ = "inspections"
    __table_args__ = (
        UniqueConstraint("application_id", name="uq_inspections_application"),
        CheckConstraint(
            "(scheduled_start IS NULL AND scheduled_end IS NULL) OR "
            "(scheduled_start IS NOT NULL AND scheduled_end IS NOT NULL AND scheduled_end > scheduled_start)",
            name="ck_inspections_schedule_bounds",
        ),
        Index("ix_inspections_inspector_status", "inspector_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)

    establishment_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    establishment_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Unknown")
    application_id: Mapped[str] = mapped_column(String(36), ForeignKey("applications.id"), nullable=False)

    inspector_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("inspectors.id"), nullable=True)
    inspector_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    type: Mapped[str] = mapped_column(String(30), nullable=False)  # FSIC-Occupancy|FSIC-Business
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)

    scheduled_start: Mapped[Optional[datetime]] = mapped_column(LocalDateTime, nullable=True)
    scheduled_end: Mapped[Optional[datetime]] = mapped_column(LocalDateTime, nullable=True)

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reasons_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    certificate_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class InspectorScheduleLock(Base):
    """
    One row per inspector. Schedulers bump `version` as the first write of their
    transaction, which serializes check-and-reserve for that inspector.
    """

    __tablename__ = "inspector_schedule_locks"

    inspector_id: Mapped[str] = mapped_column(String(36), ForeignKey("inspectors.id"), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    holder: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


# -----------------------------
# Audit / workflow
# -----------------------------
class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False, index=True)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class WorkflowEvent(Base):
    __tablename__ = "workflow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    establishment_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    event_type: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
