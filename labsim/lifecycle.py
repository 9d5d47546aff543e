"""Explicit lifecycle state machine for simulation sessions.

Transitions are one-directional except ``in_progress <-> paused``. The same
table is used by the controller (to refuse invalid user actions before any
network call) and by the in-memory service (to judge transitions the way a
strict server would).
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from .errors import InvalidTransitionError
from .schemas import SessionStatus


class LifecycleEvent(str, Enum):
    """User-driven events that move a session between statuses."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"


TRANSITIONS: Dict[Tuple[SessionStatus, LifecycleEvent], SessionStatus] = {
    (SessionStatus.NOT_STARTED, LifecycleEvent.START): SessionStatus.IN_PROGRESS,
    (SessionStatus.IN_PROGRESS, LifecycleEvent.PAUSE): SessionStatus.PAUSED,
    (SessionStatus.PAUSED, LifecycleEvent.RESUME): SessionStatus.IN_PROGRESS,
    (SessionStatus.IN_PROGRESS, LifecycleEvent.COMPLETE): SessionStatus.COMPLETED,
    (SessionStatus.PAUSED, LifecycleEvent.COMPLETE): SessionStatus.COMPLETED,
}

ACTIVE_STATUSES: FrozenSet[SessionStatus] = frozenset(
    {SessionStatus.IN_PROGRESS, SessionStatus.PAUSED}
)


def next_status(current: SessionStatus, event: LifecycleEvent) -> SessionStatus:
    """Return the status reached by applying ``event`` to ``current``.

    Raises:
        InvalidTransitionError: If the table has no such transition.
    """

    try:
        return TRANSITIONS[(SessionStatus(current), LifecycleEvent(event))]
    except KeyError:
        raise InvalidTransitionError(current=current, event=LifecycleEvent(event).value) from None


def can_apply(current: SessionStatus, event: LifecycleEvent) -> bool:
    return (SessionStatus(current), LifecycleEvent(event)) in TRANSITIONS


def allowed_events(current: SessionStatus) -> list[LifecycleEvent]:
    """Events valid from ``current``, in declaration order."""

    status = SessionStatus(current)
    return [event for (source, event) in TRANSITIONS if source is status]


def event_for_target(current: SessionStatus, target: SessionStatus) -> LifecycleEvent | None:
    """Find the event that moves ``current`` to ``target``, if one exists.

    Used to judge a raw ``status`` field arriving in a state patch.
    """

    for (source, event), destination in TRANSITIONS.items():
        if source is SessionStatus(current) and destination is SessionStatus(target):
            return event
    return None


__all__ = [
    "LifecycleEvent",
    "TRANSITIONS",
    "ACTIVE_STATUSES",
    "next_status",
    "can_apply",
    "allowed_events",
    "event_for_target",
]
