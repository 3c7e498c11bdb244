"""Global run/pause session state machine."""

import logging
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from timeblock.core.errors import InvalidTransitionError, InvariantViolationError, SubscriptionError
from timeblock.core.logging import span
from timeblock.domain.activity import Activity
from timeblock.domain.update_models import ActivityPatch
from timeblock.services.remaining_time import remaining_time


if TYPE_CHECKING:
    from timeblock.services.context import SchedulerContext


logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    """Whether the queue is allowed to run."""

    RUNNING = "running"
    PAUSED = "paused"


async def start_activity(ctx: "SchedulerContext", activity: Activity) -> Activity:
    """Start *activity* from its current remaining time.

    Raises:
        InvalidTransitionError: The activity is completed, has nothing left, or
            its remaining time exceeds its initial duration
    """
    now = ctx.now()
    current = ctx.require(activity.id)
    if current.is_completed:
        raise InvalidTransitionError(f"Cannot start: activity {current.id} is completed")
    if current.is_running:
        return current

    remaining = remaining_time(current, now)
    if remaining <= 0:
        raise InvalidTransitionError(f"Cannot start: activity {current.id} has no time remaining")
    if remaining > current.initial_duration:
        raise InvalidTransitionError(
            f"Cannot start: activity {current.id} has {remaining}s remaining, more than its "
            f"initial duration of {current.initial_duration}s"
        )

    end_time = now + timedelta(seconds=remaining)
    await ctx.submit(current.id, ActivityPatch(is_running=True, end_time=end_time))
    logger.info("Started activity %s, ends at %s", current.id, end_time.isoformat())
    return ctx.require(current.id)


async def pause_activity(ctx: "SchedulerContext", activity: Activity) -> Activity:
    """Freeze the remaining time of a running *activity* into ``duration``.

    An activity with no time left is completed instead, without advancing the queue.
    """
    from timeblock.services import sequencer

    current = ctx.require(activity.id)
    if not current.is_running:
        return current

    remaining = remaining_time(current, ctx.now())
    if remaining <= 0:
        logger.info("Activity %s ran out while pausing; completing it", current.id)
        await sequencer.complete_guarded(ctx, current, session_was_running=False)
        return ctx.require(current.id)

    await ctx.submit(current.id, ActivityPatch(is_running=False, end_time=None, duration=remaining))
    logger.info("Paused activity %s with %ds remaining", current.id, remaining)
    return ctx.require(current.id)


class SessionController:
    """Two-state machine (RUNNING, PAUSED) keeping at most one activity running.

    Flipping the state reconciles the activities: going to RUNNING starts the
    top task unless something already runs, going to PAUSED pauses whatever runs.
    """

    def __init__(self, state: SessionState = SessionState.PAUSED) -> None:
        self.state = state

    @property
    def is_running(self) -> bool:
        return self.state == SessionState.RUNNING

    def _force_paused(self, reason: str) -> None:
        if self.state != SessionState.PAUSED:
            logger.info("Session paused", extra={"reason": reason})
        self.state = SessionState.PAUSED

    async def set_running(self, ctx: "SchedulerContext", running: bool) -> SessionState:
        """Transition the session and start or pause activities accordingly.

        Raises:
            SubscriptionError: No live snapshot is available to run against
            StoreWriteError: Persisting the started/paused activity failed
        """
        with span("session_controller.set_running"):
            if running:
                await self._start(ctx)
            else:
                await self._pause(ctx)
            ctx.refresh_estimates()
            return self.state

    async def toggle(self, ctx: "SchedulerContext") -> SessionState:
        return await self.set_running(ctx, not self.is_running)

    async def _start(self, ctx: "SchedulerContext") -> None:
        if ctx.load_error is not None or not ctx.snapshot.loaded:
            self._force_paused("no_snapshot")
            raise SubscriptionError(ctx.load_error or "Activities have not been loaded yet")

        active = ctx.snapshot.active()
        if not active:
            self._force_paused("no_active_activities")
            return

        self.state = SessionState.RUNNING
        if ctx.snapshot.running():
            return

        startable = [a for a in active if remaining_time(a, ctx.now()) > 0]
        if not startable:
            self._force_paused("nothing_startable")
            return
        try:
            await start_activity(ctx, startable[0])
        except Exception:
            self._force_paused("start_failed")
            raise

    async def _pause(self, ctx: "SchedulerContext") -> None:
        self.state = SessionState.PAUSED
        for activity in ctx.snapshot.running():
            await pause_activity(ctx, activity)

    async def toggle_activity(self, ctx: "SchedulerContext", activity_id: str) -> Activity:
        """Play or pause one activity, keeping the session consistent with it."""
        with span("session_controller.toggle_activity"):
            activity = ctx.require(activity_id)
            if activity.is_running:
                self.state = SessionState.PAUSED
                paused = await pause_activity(ctx, activity)
                ctx.refresh_estimates()
                return paused

            if ctx.load_error is not None:
                raise SubscriptionError(ctx.load_error)
            if activity.is_completed or remaining_time(activity, ctx.now()) <= 0:
                raise InvalidTransitionError(f"Cannot play: activity {activity_id} has no time remaining")

            for other in ctx.snapshot.running():
                await pause_activity(ctx, other)
            try:
                started = await start_activity(ctx, activity)
            except Exception:
                self._force_paused("start_failed")
                raise
            self.state = SessionState.RUNNING
            ctx.refresh_estimates()
            return started

    async def reconcile(self, ctx: "SchedulerContext") -> list[str]:
        """Bring the session and a freshly delivered snapshot back in line.

        * More than one running activity: the earliest ``end_time`` stays, the
          others are paused.
        * A running activity in the snapshot means the session runs (e.g. after
          a restart or a change from another client), unless the session is
          paused and local writes are still pending.
        * A running session with an empty active partition is paused.

        Returns:
            Ids of activities paused as a correction
        """
        with span("session_controller.reconcile"):
            corrected: list[str] = []
            local_writes_pending = ctx.snapshot.has_pending
            running = ctx.snapshot.running()
            if len(running) > 1:
                authoritative, extras = running[0], running[1:]
                violation = InvariantViolationError(
                    f"{len(running)} activities running; keeping {authoritative.id}"
                )
                logger.warning(str(violation), extra={"extra_ids": [a.id for a in extras]})
                for extra in extras:
                    await pause_activity(ctx, extra)
                    corrected.append(extra.id)
                ctx.report_error(violation)

            if ctx.snapshot.running():
                if not self.is_running and local_writes_pending:
                    # Pending local writes take precedence over the snapshot
                    logger.debug("Snapshot shows a run while local writes are pending; session stays paused")
                else:
                    self.state = SessionState.RUNNING
            elif self.is_running and not ctx.snapshot.active():
                self._force_paused("no_active_activities")

            return corrected
