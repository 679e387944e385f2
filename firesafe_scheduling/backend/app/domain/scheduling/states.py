# backend/app/domain/scheduling/states.py
from __future__ import annotations

from ...errors import InvalidTransitionError

# -----------------------------------------------------------------------------
# Inspection lifecycle
# -----------------------------------------------------------------------------
#   pending -> scheduled -> inspected -> approved | rejected
#   scheduled -> pending      (clear schedule)
#   scheduled -> scheduled    (reschedule / reassign)
#   scheduled -> cancelled    (expiry sweep only)
#   rejected  -> pending      (re-inspection request)
# approved and cancelled are terminal; rejected can be re-opened.
# -----------------------------------------------------------------------------

PENDING = "pending"
SCHEDULED = "scheduled"
INSPECTED = "inspected"
APPROVED = "approved"
REJECTED = "rejected"
CANCELLED = "cancelled"

INSPECTION_STATUSES = (PENDING, SCHEDULED, INSPECTED, APPROVED, REJECTED, CANCELLED)
TERMINAL = frozenset({APPROVED, CANCELLED})

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({SCHEDULED}),
    SCHEDULED: frozenset({SCHEDULED, PENDING, INSPECTED, CANCELLED}),
    INSPECTED: frozenset({APPROVED, REJECTED}),
    REJECTED: frozenset({PENDING}),
    APPROVED: frozenset(),
    CANCELLED: frozenset(),
}

# Statuses whose schedule still occupies the inspector's time. `inspected`
# stays blocking until an admin decides; approved keeps its historical slot.
OCCUPYING = frozenset({SCHEDULED, INSPECTED, APPROVED})

# Working-set ordering used by the admin listing.
STATUS_PRIORITY: dict[str, int] = {
    PENDING: 1,
    INSPECTED: 2,
    CANCELLED: 3,
    SCHEDULED: 4,
    APPROVED: 5,
    REJECTED: 6,
}

# Application / establishment lifecycles
APP_PENDING = "pending"
APP_APPROVED = "approved"
APP_REJECTED = "rejected"

FSEC = "FSEC"
FSIC_OCCUPANCY = "FSIC-Occupancy"
FSIC_BUSINESS = "FSIC-Business"
APPLICATION_TYPES = (FSEC, FSIC_OCCUPANCY, FSIC_BUSINESS)
INSPECTION_TYPES = frozenset({FSIC_OCCUPANCY, FSIC_BUSINESS})

EST_UNREGISTERED = "unregistered"
EST_PRE_REGISTERED = "pre_registered"
EST_REGISTERED = "registered"

ON_DUTY = "on_duty"
OFF_DUTY = "off_duty"


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str, *, entity: str = "inspection") -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(entity, current, target)


def requires_inspection(application_type: str) -> bool:
    return application_type in INSPECTION_TYPES
