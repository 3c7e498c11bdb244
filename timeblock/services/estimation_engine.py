"""Projected finish times for the active queue."""

from datetime import datetime, timedelta

from timeblock.domain.activity import Activity
from timeblock.services.remaining_time import remaining_time


def queue_order(activities: list[Activity]) -> list[Activity]:
    """Active activities in the order they will run: the running one first, then by order."""
    active = [a for a in activities if not a.is_completed]
    return sorted(active, key=lambda a: (not a.is_running, a.sort_key))


def estimate_finish_times(activities: list[Activity], now: datetime) -> dict[str, datetime]:
    """Map each active activity id to the wall-clock time it is projected to finish.

    Each activity finishes after everything ahead of it in the queue plus its own
    remaining time. Completed activities get no estimate.
    """
    estimates: dict[str, datetime] = {}
    cumulative = now
    for activity in queue_order(activities):
        cumulative += timedelta(seconds=remaining_time(activity, now))
        estimates[activity.id] = cumulative
    return estimates


def estimated_queue_end(activities: list[Activity], now: datetime) -> datetime:
    """When the whole active queue is projected to be done (``now`` if it is empty)."""
    estimates = estimate_finish_times(activities, now)
    return max(estimates.values(), default=now)
