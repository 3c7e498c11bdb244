"""Remaining time derivation for activities."""

import math
from datetime import datetime

from timeblock.domain.activity import Activity


def remaining_time(activity: Activity, now: datetime) -> int:
    """Return the whole seconds left on *activity* at *now*.

    Completed activities have nothing left; running ones derive it from
    ``end_time`` (rounded half-up, never negative); paused ones report their
    stored ``duration``. This is the only source of truth for remaining time
    and must be evaluated at call time.
    """
    if activity.is_completed:
        return 0
    if activity.is_running:
        if activity.end_time is None:
            return activity.duration
        delta = (activity.end_time - now).total_seconds()
        return max(0, math.floor(delta + 0.5))
    return activity.duration


def is_expired(activity: Activity, now: datetime) -> bool:
    """Whether a running activity has reached zero."""
    return activity.is_running and not activity.is_completed and remaining_time(activity, now) <= 0
