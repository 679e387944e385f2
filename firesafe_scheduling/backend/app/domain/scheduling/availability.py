# backend/app/domain/scheduling/availability.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from .states import OCCUPYING, ON_DUTY
from .windows import ScheduleWindow

# Refusal reasons (stable strings; surfaced in SchedulingConflict.reason)
UNKNOWN_INSPECTOR = "unknown_inspector"
NOT_AN_INSPECTOR = "not_an_inspector"
OFF_DUTY = "off_duty"
NO_AVAILABILITY_WINDOW = "no_availability_window"
OUTSIDE_AVAILABILITY = "outside_availability"
OVERLAP = "overlap"

REASON_MESSAGES = {
    UNKNOWN_INSPECTOR: "Selected inspector does not exist",
    NOT_AN_INSPECTOR: "Selected user is not an inspector",
    OFF_DUTY: "Selected inspector is off duty",
    NO_AVAILABILITY_WINDOW: "Selected inspector has no availability window set",
    OUTSIDE_AVAILABILITY: "Selected date is outside the inspector's availability window",
    OVERLAP: "Selected inspector is not available at the scheduled time",
}

IntervalLike = Union[ScheduleWindow, Sequence[datetime]]


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: Optional[str] = None
    conflicting_inspection_id: Optional[str] = None

    def __bool__(self) -> bool:
        return self.eligible

    @property
    def message(self) -> Optional[str]:
        return REASON_MESSAGES.get(self.reason) if self.reason else None


ELIGIBLE = Eligibility(True)


@dataclass(frozen=True)
class AssignmentOption:
    value: Optional[str]
    label: str
    selectable: bool = True


NO_ELIGIBLE_INSPECTOR = AssignmentOption(value=None, label="No available inspectors", selectable=False)


@dataclass(frozen=True)
class EligibleRoster:
    """
    Inspectors who may take a proposed window. An empty roster is reported
    through `none_available` and a single non-selectable option, never as a
    bare empty list that a picker could mistake for "not loaded yet".
    """

    window: ScheduleWindow
    inspectors: tuple[Any, ...]

    @property
    def none_available(self) -> bool:
        return not self.inspectors

    def options(self) -> list[AssignmentOption]:
        if self.none_available:
            return [NO_ELIGIBLE_INSPECTOR]
        return [AssignmentOption(value=str(i.id), label=_display_name(i)) for i in self.inspectors]


def _display_name(inspector: Any) -> str:
    name = getattr(inspector, "full_name", None)
    if name:
        return str(name)
    first = getattr(inspector, "first_name", "") or ""
    last = getattr(inspector, "last_name", "") or ""
    return f"{first} {last}".strip() or str(inspector.id)


def _as_window(interval: IntervalLike) -> ScheduleWindow:
    if isinstance(interval, ScheduleWindow):
        return interval
    start, end = interval
    # raises ValidationError for end <= start; that is a caller error,
    # not an eligibility outcome
    return ScheduleWindow(start=start, end=end)


def _roster_map(roster: Union[Mapping[str, Any], Iterable[Any]]) -> dict[str, Any]:
    if isinstance(roster, Mapping):
        return {str(k): v for k, v in roster.items()}
    return {str(i.id): i for i in roster}


def find_conflict(
    inspector_id: str,
    window: ScheduleWindow,
    existing: Iterable[Any],
    *,
    exclude_inspection_id: Optional[str] = None,
) -> Optional[Any]:
    """
    First inspection of `inspector_id` whose slot intersects `window`.
    The inspection being rescheduled is skipped by its own id.
    """
    for ins in existing:
        if str(getattr(ins, "inspector_id", None) or "") != str(inspector_id):
            continue
        if exclude_inspection_id is not None and str(ins.id) == str(exclude_inspection_id):
            continue
        if ins.status not in OCCUPYING:
            continue
        if ins.scheduled_start is None or ins.scheduled_end is None:
            continue
        if window.overlaps(ins.scheduled_start, ins.scheduled_end):
            return ins
    return None


def _within(d: date, start: Optional[date], end: Optional[date]) -> bool:
    return start is not None and end is not None and start <= d <= end


def check_eligibility(
    inspector_id: str,
    interval: IntervalLike,
    roster: Union[Mapping[str, Any], Iterable[Any]],
    existing: Iterable[Any],
    *,
    exclude_inspection_id: Optional[str] = None,
) -> Eligibility:
    window = _as_window(interval)

    inspector = _roster_map(roster).get(str(inspector_id))
    if inspector is None:
        return Eligibility(False, UNKNOWN_INSPECTOR)
    if (getattr(inspector, "role", "inspector") or "inspector") != "inspector":
        return Eligibility(False, NOT_AN_INSPECTOR)
    if inspector.duty_status != ON_DUTY:
        return Eligibility(False, OFF_DUTY)
    if inspector.availability_start is None or inspector.availability_end is None:
        return Eligibility(False, NO_AVAILABILITY_WINDOW)
    if not _within(window.local_date, inspector.availability_start, inspector.availability_end):
        return Eligibility(False, OUTSIDE_AVAILABILITY)

    clash = find_conflict(inspector_id, window, existing, exclude_inspection_id=exclude_inspection_id)
    if clash is not None:
        return Eligibility(False, OVERLAP, conflicting_inspection_id=str(clash.id))

    return ELIGIBLE


def is_eligible(
    inspector_id: str,
    interval: IntervalLike,
    roster: Union[Mapping[str, Any], Iterable[Any]],
    existing: Iterable[Any],
    *,
    exclude_inspection_id: Optional[str] = None,
) -> bool:
    return check_eligibility(
        inspector_id,
        interval,
        roster,
        existing,
        exclude_inspection_id=exclude_inspection_id,
    ).eligible


def eligible_inspectors(
    interval: IntervalLike,
    roster: Union[Mapping[str, Any], Iterable[Any]],
    existing: Iterable[Any],
    *,
    exclude_inspection_id: Optional[str] = None,
) -> EligibleRoster:
    window = _as_window(interval)
    inspectors = _roster_map(roster)
    existing = list(existing)

    ok = [
        ins
        for iid, ins in inspectors.items()
        if check_eligibility(iid, window, inspectors, existing, exclude_inspection_id=exclude_inspection_id)
    ]
    ok.sort(key=lambda i: _display_name(i).lower())
    return EligibleRoster(window=window, inspectors=tuple(ok))
