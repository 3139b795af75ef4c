"""
Booking state machine.

State transitions:
- PENDING  -> APPROVED   (admin approve)
- PENDING  -> REJECTED   (admin reject, or displaced by a competing approval)
- PENDING  -> CANCELLED  (owner cancel, or stale-pending sweep)
- APPROVED -> CANCELLED  (owner cancel)
- APPROVED -> UTILIZED   (owner check-in inside the grace window)
- APPROVED -> RELEASED   (auto-release sweep, no check-in)

REJECTED, CANCELLED, RELEASED and UTILIZED are terminal.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from .errors import InvalidTransition
from .models import Booking, BookingStatus

CONFLICT_REJECTION_REASON = "Slot allocated to another request"
AUTO_RELEASE_REASON = "auto-released due to no check-in"
STALE_PENDING_REASON = "not seen by admin"


class Action(str, PyEnum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    CHECK_IN = "check_in"
    RELEASE = "release"
    EXPIRE = "expire"


TRANSITIONS: Dict[Action, Tuple[FrozenSet[BookingStatus], BookingStatus]] = {
    Action.APPROVE: (frozenset({BookingStatus.PENDING}), BookingStatus.APPROVED),
    Action.REJECT: (frozenset({BookingStatus.PENDING}), BookingStatus.REJECTED),
    Action.CANCEL: (
        frozenset({BookingStatus.PENDING, BookingStatus.APPROVED}),
        BookingStatus.CANCELLED,
    ),
    Action.CHECK_IN: (frozenset({BookingStatus.APPROVED}), BookingStatus.UTILIZED),
    Action.RELEASE: (frozenset({BookingStatus.APPROVED}), BookingStatus.RELEASED),
    Action.EXPIRE: (frozenset({BookingStatus.PENDING}), BookingStatus.CANCELLED),
}

TERMINAL_STATUSES = frozenset(
    {
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
        BookingStatus.RELEASED,
        BookingStatus.UTILIZED,
    }
)


def allowed_targets(status: BookingStatus) -> FrozenSet[BookingStatus]:
    """Statuses reachable from ``status`` in one step."""
    return frozenset(target for sources, target in TRANSITIONS.values() if status in sources)


def source_statuses(action: Action) -> FrozenSet[BookingStatus]:
    return TRANSITIONS[action][0]


def require_transition(current: BookingStatus, action: Action) -> BookingStatus:
    """
    Validate that ``action`` may be taken from ``current``.

    Returns
    -------
    BookingStatus
        The status the booking moves to.

    Raises
    ------
    InvalidTransition
        Naming the source state(s) the action requires.
    """
    sources, target = TRANSITIONS[action]
    if current not in sources:
        required = sorted(s.value for s in sources)
        raise InvalidTransition(
            f"cannot {action.value.replace('_', ' ')} a {current.value} booking; "
            f"booking must be {' or '.join(required)}",
            required=required,
        )
    return target


def transition_values(
    action: Action,
    now: datetime,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Column values written by ``action``.

    Shared by single-row transitions and the bulk sweeps so both paths
    stamp bookings identically.
    """
    values: Dict[str, Any] = {"status": TRANSITIONS[action][1], "updated_at": now}
    if action is Action.APPROVE:
        values.update(approved_by=actor, approved_at=now, rejection_reason=None)
    elif action is Action.REJECT:
        values.update(approved_by=actor, approved_at=now, rejection_reason=reason)
    elif action is Action.CHECK_IN:
        values.update(checked_in_at=now)
    elif action is Action.RELEASE:
        values.update(rejection_reason=reason or AUTO_RELEASE_REASON)
    elif action is Action.EXPIRE:
        values.update(rejection_reason=reason or STALE_PENDING_REASON)
    elif action is Action.CANCEL:
        pass
    else:
        raise ValueError(f"unhandled action: {action!r}")
    return values


def apply_transition(
    booking: Booking,
    action: Action,
    now: datetime,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
) -> Booking:
    """Move ``booking`` through ``action`` in memory; persisting is the caller's job."""
    require_transition(BookingStatus.parse(booking.status), action)
    for name, value in transition_values(action, now, actor, reason).items():
        setattr(booking, name, value)
    return booking
