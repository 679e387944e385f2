# backend/app/domain/scheduling/expiry.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from .states import CANCELLED, SCHEDULED
from .windows import start_of_local_day


@dataclass(frozen=True)
class ExpiryPlan:
    cutoff: datetime
    expired_ids: tuple[str, ...]

    @property
    def empty(self) -> bool:
        return not self.expired_ids


def is_expired(inspection: Any, cutoff: datetime) -> bool:
    # Only `scheduled` rows expire; inspected/approved/rejected are never touched.
    return (
        inspection.status == SCHEDULED
        and inspection.scheduled_start is not None
        and inspection.scheduled_start < cutoff
    )


def plan_expiry(inspections: Iterable[Any], now: datetime, *, offset_hours: Optional[int] = None) -> ExpiryPlan:
    cutoff = start_of_local_day(now, offset_hours)
    ids = tuple(str(i.id) for i in inspections if is_expired(i, cutoff))
    return ExpiryPlan(cutoff=cutoff, expired_ids=ids)


def apply_expiry(inspections: Iterable[Any], now: datetime, *, offset_hours: Optional[int] = None) -> list[Any]:
    """
    In-memory sweep: mutates expired rows to `cancelled` and returns them.
    A second pass over the result finds nothing to change.
    """
    rows = list(inspections)
    plan = plan_expiry(rows, now, offset_hours=offset_hours)
    expired = set(plan.expired_ids)
    changed = []
    for r in rows:
        if str(r.id) in expired:
            r.status = CANCELLED
            changed.append(r)
    return changed
