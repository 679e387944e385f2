# backend/app/domain/scheduling/__init__.py
from .availability import (
    NO_ELIGIBLE_INSPECTOR,
    Eligibility,
    EligibleRoster,
    check_eligibility,
    eligible_inspectors,
    find_conflict,
    is_eligible,
)
from .expiry import ExpiryPlan, apply_expiry, plan_expiry
from .states import ensure_transition, can_transition
from .windows import ScheduleWindow, TimeOfDay, build_window, local_tz, start_of_local_day

__all__ = [
    "NO_ELIGIBLE_INSPECTOR",
    "Eligibility",
    "EligibleRoster",
    "ExpiryPlan",
    "ScheduleWindow",
    "TimeOfDay",
    "apply_expiry",
    "build_window",
    "can_transition",
    "check_eligibility",
    "eligible_inspectors",
    "ensure_transition",
    "find_conflict",
    "is_eligible",
    "local_tz",
    "plan_expiry",
    "start_of_local_day",
]
