"""Trigger handlers: periodic tick, visibility catch-up and snapshot delivery.

Expiry is detected by polling the running activity's ``end_time`` against the
clock rather than by cancellable timers, so a process that was suspended and
missed ticks corrects itself on the next tick or catch-up check. Handlers never
raise: store and invariant errors are logged and surfaced as dismissible
messages on the context so the triggers keep firing.
"""

import logging
from enum import StrEnum

from timeblock.core.errors import SubscriptionError, TimeBlockError
from timeblock.core.logging import log_with_context
from timeblock.domain.activity import Activity
from timeblock.services import sequencer
from timeblock.services.context import SchedulerContext
from timeblock.services.remaining_time import is_expired
from timeblock.services.sequencer import CompletionResult
from timeblock.services.session_controller import SessionState


logger = logging.getLogger(__name__)


class Trigger(StrEnum):
    """Source that asked for an expiry check."""

    TICK = "tick"
    VISIBILITY = "visibility"
    SNAPSHOT = "snapshot"


async def _complete_guarded(ctx: SchedulerContext, activity: Activity, trigger: Trigger) -> CompletionResult | None:
    result = await sequencer.complete_guarded(ctx, activity, session_was_running=ctx.session.is_running)
    if result is not None:
        log_with_context(
            logger,
            "info",
            "Activity expired",
            activity_id=activity.id,
            trigger=str(trigger),
            next_task=result.next_task.id if result.next_task else None,
        )
    return result


async def check_expiry(ctx: SchedulerContext, trigger: Trigger) -> CompletionResult | None:
    """Complete the running activity if its time is up.

    Only the authoritative running activity (earliest end time) is considered;
    extra running activities are corrected by the session reconciliation.
    """
    running = ctx.snapshot.running()
    if not running or not is_expired(running[0], ctx.now()):
        return None
    try:
        return await _complete_guarded(ctx, running[0], trigger)
    except TimeBlockError as e:
        log_with_context(
            logger, "error", "Completion failed", activity_id=running[0].id, trigger=str(trigger), error=str(e)
        )
        ctx.report_error(e)
        return None


async def handle_tick(ctx: SchedulerContext) -> CompletionResult | None:
    """Periodic tick: check expiry and refresh estimates."""
    try:
        return await check_expiry(ctx, Trigger.TICK)
    except Exception as e:
        logger.exception("Tick handler failed", extra={"error": str(e)})
        ctx.report_error(e)
        return None
    finally:
        ctx.refresh_estimates()


async def handle_visibility_regained(ctx: SchedulerContext) -> CompletionResult | None:
    """Catch-up check run when the client becomes visible again."""
    try:
        return await check_expiry(ctx, Trigger.VISIBILITY)
    except Exception as e:
        logger.exception("Catch-up check failed", extra={"error": str(e)})
        ctx.report_error(e)
        return None
    finally:
        ctx.refresh_estimates()


async def handle_snapshot(
    ctx: SchedulerContext,
    activities: list[Activity],
    *,
    revision: int | None = None,
) -> CompletionResult | None:
    """Replace the confirmed snapshot, reconcile the session and catch any expiry it reveals.

    A snapshot older than the one already applied is dropped without further work.
    """
    ctx.load_error = None
    if not ctx.snapshot.replace(activities, revision=revision):
        return None
    try:
        await ctx.session.reconcile(ctx)
        return await check_expiry(ctx, Trigger.SNAPSHOT)
    except Exception as e:
        logger.exception("Snapshot handling failed", extra={"error": str(e)})
        ctx.report_error(e)
        return None
    finally:
        ctx.refresh_estimates()


def handle_subscription_error(ctx: SchedulerContext, error: SubscriptionError) -> None:
    """Enter the blocking "could not load" state."""
    ctx.load_error = ctx.report_error(error)
    ctx.session.state = SessionState.PAUSED
    logger.error("Activity subscription failed", extra={"scope": ctx.scope, "error": str(error)})


async def run_subscription(ctx: SchedulerContext) -> None:
    """Pump the store's snapshot stream into the context until it closes or fails."""
    try:
        subscription = await ctx.store.subscribe(ctx.scope)
    except SubscriptionError as e:
        handle_subscription_error(ctx, e)
        return

    try:
        async for snapshot in subscription:
            await handle_snapshot(ctx, snapshot.activities, revision=snapshot.revision)
    except SubscriptionError as e:
        handle_subscription_error(ctx, e)
    finally:
        subscription.close()
