"""Activity service for creating, editing, resetting and deleting activities."""

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from timeblock.core.errors import ActivityValidationError, InvalidDurationError, InvalidTransitionError
from timeblock.core.logging import span
from timeblock.domain.activity import Activity, Partition
from timeblock.domain.create_models import ActivityCreate
from timeblock.domain.update_models import ActivityEdit, ActivityPatch
from timeblock.services import reorder_engine
from timeblock.services.reorder_engine import MoveRequest, Position
from timeblock.services.remaining_time import remaining_time
from timeblock.services.session_controller import SessionState


if TYPE_CHECKING:
    from timeblock.services.context import SchedulerContext


logger = logging.getLogger(__name__)


def format_hms(total_seconds: int | float) -> str:
    """Format seconds as ``HH:MM:SS`` (``00:00:00`` for negative input)."""
    if total_seconds < 0:
        return "00:00:00"
    total = int(total_seconds)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def _validate_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ActivityValidationError("Please give the activity a title.")
    return cleaned


async def add_activity(ctx: "SchedulerContext", data: ActivityCreate) -> str:
    """Create an activity at the end of the active queue.

    Returns:
        The new activity's id

    Raises:
        ActivityValidationError: Blank title
        InvalidDurationError: Non-positive total duration
        StoreWriteError: The store rejected the write
    """
    with span("activity_service.add_activity"):
        title = _validate_title(data.title)
        total = data.total_seconds
        if total <= 0:
            raise InvalidDurationError("Please set a duration greater than zero.")

        fields = {
            "title": title,
            "initialDuration": total,
            "duration": total,
            "endTime": None,
            "isRunning": False,
            "isCompleted": False,
            "order": len(ctx.snapshot.active()),
            "timeSpent": 0,
            "createdAt": ctx.now(),
        }
        activity_id = await ctx.store.create(ctx.scope, fields)
        logger.info("Created activity %s (%ds)", activity_id, total)
        return activity_id


async def edit_activity(ctx: "SchedulerContext", activity_id: str, edit: ActivityEdit) -> Activity:
    """Change an activity's title and/or duration.

    Editing the duration sets ``initial_duration`` and resets ``duration`` to the
    new value, discarding progress of a partially run, paused activity.

    Raises:
        InvalidTransitionError: The activity is running, or a duration edit targets a completed activity
        ActivityValidationError: Blank title
        InvalidDurationError: Non-positive duration
    """
    with span("activity_service.edit_activity"):
        activity = ctx.require(activity_id)
        if activity.is_running:
            raise InvalidTransitionError(f"Cannot edit: activity {activity_id} is running")

        changes: dict[str, object] = {}
        if edit.title is not None:
            changes["title"] = _validate_title(edit.title)
        if edit.duration_seconds is not None:
            if activity.is_completed:
                raise InvalidTransitionError(f"Cannot change duration: activity {activity_id} is completed")
            if edit.duration_seconds <= 0:
                raise InvalidDurationError("Please set a duration greater than zero.")
            changes["initial_duration"] = edit.duration_seconds
            changes["duration"] = edit.duration_seconds

        if not changes:
            return activity
        try:
            patch = ActivityPatch(**changes)
        except ValidationError as e:
            raise ActivityValidationError(str(e)) from e
        await ctx.submit(activity_id, patch)
        ctx.refresh_estimates()
        return ctx.require(activity_id)


async def reset_activity(ctx: "SchedulerContext", activity_id: str) -> Activity:
    """Restore an activity's full duration.

    Seconds consumed by the abandoned run are added to ``time_spent``. A completed
    activity is moved back to the end of the active queue instead.
    """
    with span("activity_service.reset_activity"):
        activity = ctx.require(activity_id)

        if activity.is_completed:
            completed = ctx.snapshot.completed()
            index = next(i for i, a in enumerate(completed) if a.id == activity_id)
            await reorder_engine.move_activity(
                ctx,
                MoveRequest(
                    source=Position(partition=Partition.COMPLETED, index=index),
                    destination=Position(partition=Partition.ACTIVE, index=len(ctx.snapshot.active())),
                ),
            )
            return ctx.require(activity_id)

        consumed = max(0, activity.initial_duration - remaining_time(activity, ctx.now()))
        if activity.is_running:
            ctx.session.state = SessionState.PAUSED
        await ctx.submit(
            activity_id,
            ActivityPatch(
                duration=activity.initial_duration,
                end_time=None,
                is_running=False,
                time_spent=activity.time_spent + consumed,
            ),
        )
        logger.info("Reset activity %s", activity_id)
        ctx.refresh_estimates()
        return ctx.require(activity_id)


async def delete_activity(ctx: "SchedulerContext", activity_id: str) -> None:
    """Delete an activity and close the gap it leaves in its partition."""
    with span("activity_service.delete_activity"):
        activity = ctx.require(activity_id)
        if activity.is_running:
            ctx.session.state = SessionState.PAUSED

        await ctx.submit_delete(activity_id)
        ctx.guard.forget(activity_id)

        remaining = ctx.snapshot.completed() if activity.is_completed else ctx.snapshot.active()
        patches = [(a.id, ActivityPatch(order=index)) for index, a in enumerate(remaining) if a.order != index]
        await ctx.submit_batch(patches)
        logger.info("Deleted activity %s", activity_id)
        ctx.refresh_estimates()
