"""Single-flight guard for activity completion."""

import logging
from collections import OrderedDict
from datetime import datetime


logger = logging.getLogger(__name__)


class CompletionGuard:
    """Admit exactly one caller per activity per completion event.

    The tick checker, the visibility catch-up checker and snapshot delivery can
    all notice the same expired activity. ``try_acquire`` is synchronous, so on
    the asyncio loop no other trigger can interleave between the check and the
    grant. A completion event is keyed by the activity id and the ``end_time``
    of the run being completed; once an event has been settled successfully,
    replays of it (e.g. a stale snapshot that still shows the run) are denied.
    """

    def __init__(self, *, settled_memory: int = 256) -> None:
        self._in_flight: dict[str, datetime | None] = {}
        self._settled: OrderedDict[tuple[str, datetime | None], None] = OrderedDict()
        self._settled_memory = settled_memory

    def try_acquire(self, activity_id: str, *, run_end: datetime | None = None) -> bool:
        """Grant the completion of *activity_id* to the caller, or deny it.

        Args:
            activity_id: Activity being completed
            run_end: ``end_time`` of the run, identifying the completion event

        Returns:
            True if the caller must run the completion routine, False otherwise
        """
        if activity_id in self._in_flight:
            logger.debug("completion_denied", extra={"activity_id": activity_id, "reason": "in_flight"})
            return False
        if (activity_id, run_end) in self._settled:
            logger.debug("completion_denied", extra={"activity_id": activity_id, "reason": "settled"})
            return False
        self._in_flight[activity_id] = run_end
        return True

    def settle(self, activity_id: str) -> None:
        """Record that the in-flight completion of *activity_id* was persisted."""
        if activity_id not in self._in_flight:
            return
        self._settled[(activity_id, self._in_flight[activity_id])] = None
        while len(self._settled) > self._settled_memory:
            self._settled.popitem(last=False)

    def release(self, activity_id: str) -> None:
        """Release the grant for *activity_id*. Safe to call when nothing is held."""
        self._in_flight.pop(activity_id, None)

    def is_held(self, activity_id: str) -> bool:
        return activity_id in self._in_flight

    def forget(self, activity_id: str) -> None:
        """Drop settled events of an activity that was deleted."""
        for key in [key for key in self._settled if key[0] == activity_id]:
            del self._settled[key]
