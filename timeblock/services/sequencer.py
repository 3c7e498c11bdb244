"""Completion of the running activity and auto-advance to the next one."""

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel

from timeblock.core.errors import TimeBlockError
from timeblock.core.logging import span
from timeblock.domain.activity import Activity
from timeblock.domain.update_models import ActivityPatch
from timeblock.services.remaining_time import remaining_time
from timeblock.services.session_controller import SessionState, start_activity


if TYPE_CHECKING:
    from timeblock.services.context import SchedulerContext


logger = logging.getLogger(__name__)


class CompletionResult(BaseModel):
    """Outcome of one completion."""

    completed: Activity
    time_spent_added: int
    next_task: Activity | None = None
    next_started: bool = False
    all_complete: bool = False


def find_next_task(activities: list[Activity], completed: Activity) -> Activity | None:
    """Active activity with the smallest order strictly greater than *completed*'s order."""
    candidates = [
        a for a in activities if not a.is_completed and a.id != completed.id and a.order > completed.order
    ]
    return min(candidates, key=lambda a: a.sort_key, default=None)


async def complete(
    ctx: "SchedulerContext",
    activity: Activity,
    *,
    session_was_running: bool,
) -> CompletionResult | None:
    """Mark *activity* completed and advance the queue.

    The activity is re-read from the current snapshot, so calling this again for
    an activity that is already completed does nothing and returns None. The
    completed activity goes to the end of the completed list and the active list
    is renumbered to close the gap; the next task is chosen by the orders as
    they were before renumbering.

    Args:
        ctx: Scheduler context
        activity: Activity whose timer ran out
        session_was_running: Session state when the expiry was detected

    Returns:
        CompletionResult, or None if there was nothing to complete

    Raises:
        StoreWriteError: Persisting the completion failed (rolled back locally)
    """
    with span("sequencer.complete"):
        current = ctx.snapshot.get(activity.id)
        if current is None or current.is_completed:
            logger.debug("Completion skipped", extra={"activity_id": activity.id})
            return None

        now = ctx.now()
        remaining = remaining_time(current, now)
        spent = max(0, current.initial_duration - remaining)
        next_task = find_next_task(ctx.snapshot.activities(), current)

        await ctx.submit(
            current.id,
            ActivityPatch(
                is_running=False,
                is_completed=True,
                end_time=None,
                duration=0,
                time_spent=current.time_spent + spent,
                order=len(ctx.snapshot.completed()),
            ),
        )
        logger.info("Completed activity %s (+%ds)", current.id, spent)
        ctx.notifier.activity_completed(current)
        await _close_active_gap(ctx)

        result = CompletionResult(completed=ctx.require(current.id), time_spent_added=spent, next_task=next_task)

        if next_task is None:
            result.all_complete = True
            ctx.session.state = SessionState.PAUSED
            ctx.notifier.all_completed()
            logger.info("All activities complete")
        elif session_was_running and ctx.session.is_running:
            try:
                result.next_task = await start_activity(ctx, next_task)
                result.next_started = True
            except TimeBlockError as e:
                # The completion itself is persisted; only the advance failed
                logger.warning("Could not start next activity %s: %s", next_task.id, e)
                ctx.session.state = SessionState.PAUSED
                ctx.report_error(e)
        elif ctx.snapshot.get(next_task.id) is not None:
            result.next_task = ctx.require(next_task.id)

        ctx.refresh_estimates()
        return result


async def _close_active_gap(ctx: "SchedulerContext") -> None:
    patches = [
        (a.id, ActivityPatch(order=index))
        for index, a in enumerate(ctx.snapshot.active())
        if a.order != index
    ]
    try:
        await ctx.submit_batch(patches)
    except TimeBlockError as e:
        logger.warning("Could not renumber active activities: %s", e)
        ctx.report_error(e)


async def complete_guarded(
    ctx: "SchedulerContext",
    activity: Activity,
    *,
    session_was_running: bool,
) -> CompletionResult | None:
    """Run ``complete`` for the current run of *activity* unless another trigger already is."""
    if not ctx.guard.try_acquire(activity.id, run_end=activity.end_time):
        return None
    try:
        result = await complete(ctx, activity, session_was_running=session_was_running)
        ctx.guard.settle(activity.id)
        return result
    finally:
        ctx.guard.release(activity.id)
