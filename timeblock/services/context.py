"""Scheduler context: the state every trigger handler works against."""

import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime

from timeblock.core.clock import Clock
from timeblock.core.config import Constants
from timeblock.core.errors import ActivityNotFoundError, classify_error
from timeblock.domain.activity import Activity, Partition, sorted_partition
from timeblock.domain.update_models import ActivityPatch
from timeblock.services.activity_store import ActivityStore
from timeblock.services.completion_guard import CompletionGuard
from timeblock.services.estimation_engine import estimate_finish_times
from timeblock.services.notification_service import CompletionNotifier
from timeblock.services.session_controller import SessionController


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PendingWrite:
    """A locally submitted write overlaying the confirmed list.

    ``revision`` stays None while the write is in flight and is set to the store
    revision it was committed as once it returns.
    """

    activity_id: str
    patch: ActivityPatch | None = None
    revision: int | None = None

    @property
    def is_delete(self) -> bool:
        return self.patch is None


class ActivitySnapshot:
    """Last confirmed activity list plus locally submitted, unconfirmed writes.

    The confirmed list only changes when the store delivers a snapshot. A
    pending write overlays it from the moment it is submitted until a delivered
    snapshot is known to include it, or until the write fails. Snapshots older
    than one already applied are ignored, so the view never goes backwards.
    """

    def __init__(self) -> None:
        self._confirmed: dict[str, Activity] = {}
        self._pending: list[PendingWrite] = []
        self.revision: int | None = None
        self.loaded = False

    def replace(self, activities: list[Activity], *, revision: int | None = None) -> bool:
        """Apply a delivered snapshot.

        A snapshot without a revision is a direct read and counts as including
        every write that has returned.

        Returns:
            False if the snapshot was older than the current one and ignored
        """
        if revision is not None and self.revision is not None and revision < self.revision:
            logger.debug("Ignoring stale snapshot", extra={"revision": revision, "current": self.revision})
            return False
        self._confirmed = {a.id: a for a in activities}
        if revision is not None:
            self.revision = revision
        self._pending = [w for w in self._pending if not self._includes(w, revision)]
        self.loaded = True
        return True

    @staticmethod
    def _includes(write: PendingWrite, revision: int | None) -> bool:
        if write.revision is None:
            return False
        return revision is None or write.revision <= revision

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def propose(self, activity_id: str, patch: ActivityPatch) -> PendingWrite | None:
        if self.get(activity_id) is None:
            return None
        write = PendingWrite(activity_id, patch)
        self._pending.append(write)
        return write

    def propose_delete(self, activity_id: str) -> PendingWrite:
        write = PendingWrite(activity_id)
        self._pending.append(write)
        return write

    def confirm(self, writes: list[PendingWrite | None], revision: int) -> None:
        """Record that *writes* were committed as store *revision*."""
        for write in writes:
            if write is not None:
                write.revision = revision
        if self.revision is not None and revision <= self.revision:
            # An already applied snapshot includes them
            self._pending = [w for w in self._pending if not self._includes(w, self.revision)]

    def rollback(self, writes: list[PendingWrite | None]) -> None:
        failed = {id(w) for w in writes if w is not None}
        self._pending = [w for w in self._pending if id(w) not in failed]

    def get(self, activity_id: str) -> Activity | None:
        activity = self._confirmed.get(activity_id)
        for write in self._pending:
            if write.activity_id != activity_id:
                continue
            if write.is_delete:
                activity = None
            elif activity is not None:
                activity = activity.model_copy(update=write.patch.changes())
        return activity

    def activities(self) -> list[Activity]:
        views = (self.get(i) for i in self._confirmed)
        return [a for a in views if a is not None]

    def active(self) -> list[Activity]:
        return sorted_partition(self.activities(), Partition.ACTIVE)

    def completed(self) -> list[Activity]:
        return sorted_partition(self.activities(), Partition.COMPLETED)

    def running(self) -> list[Activity]:
        """Running activities, authoritative one (earliest end time) first."""
        running = [a for a in self.activities() if a.is_running and not a.is_completed]
        return sorted(running, key=lambda a: (a.end_time is None, a.end_time or datetime.max, a.sort_key))


@dataclass
class SchedulerContext:
    """Everything a tick, catch-up or snapshot handler needs.

    Passed explicitly to every handler instead of being captured from module state.
    """

    scope: str
    store: ActivityStore
    clock: Clock
    notifier: CompletionNotifier
    guard: CompletionGuard = field(default_factory=CompletionGuard)
    session: SessionController = field(default_factory=SessionController)
    snapshot: ActivitySnapshot = field(default_factory=ActivitySnapshot)
    estimates: dict[str, datetime] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    load_error: str | None = None

    def now(self) -> datetime:
        return self.clock.now()

    def require(self, activity_id: str) -> Activity:
        """Return the current view of an activity or raise ``ActivityNotFoundError``."""
        activity = self.snapshot.get(activity_id)
        if activity is None:
            raise ActivityNotFoundError(f"Activity not found: {activity_id}")
        return activity

    def refresh_estimates(self) -> dict[str, datetime]:
        self.estimates = estimate_finish_times(self.snapshot.activities(), self.now())
        return self.estimates

    async def submit(self, activity_id: str, patch: ActivityPatch) -> None:
        """Apply *patch* optimistically and persist it.

        Raises:
            StoreWriteError: The write failed; the pending change has been rolled back
        """
        write = self.snapshot.propose(activity_id, patch)
        await self._persist([write], self.store.update(self.scope, activity_id, patch))

    async def submit_batch(self, patches: list[tuple[str, ActivityPatch]]) -> None:
        """Apply several patches optimistically and persist them as one batch."""
        if not patches:
            return
        writes = [self.snapshot.propose(activity_id, patch) for activity_id, patch in patches]
        await self._persist(writes, self.store.batch_update(self.scope, patches))

    async def submit_delete(self, activity_id: str) -> None:
        write = self.snapshot.propose_delete(activity_id)
        await self._persist([write], self.store.delete(self.scope, activity_id))

    async def _persist(self, writes: list[PendingWrite | None], operation: Awaitable[int]) -> None:
        self.refresh_estimates()
        try:
            revision = await operation
        except Exception:
            self.snapshot.rollback(writes)
            self.refresh_estimates()
            raise
        self.snapshot.confirm(writes, revision)

    def report_error(self, exception: Exception) -> str:
        """Record a dismissible, user-facing message for *exception*."""
        message = classify_error(exception).message
        if not self.errors or self.errors[-1] != message:
            self.errors.append(message)
            del self.errors[: -Constants.MAX_ERROR_MESSAGES]
        return message

    def dismiss_errors(self) -> None:
        self.errors.clear()
