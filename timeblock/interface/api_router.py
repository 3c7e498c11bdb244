"""HTTP interface for the activity queue and session."""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from timeblock.core.errors import (
    ActivityNotFoundError,
    ActivityValidationError,
    InvalidMoveError,
    InvalidTransitionError,
    StoreWriteError,
    SubscriptionError,
    TimeBlockError,
    classify_error,
)
from timeblock.domain.activity import Activity
from timeblock.domain.create_models import ActivityCreate
from timeblock.domain.update_models import ActivityEdit
from timeblock.models.service_models import ActivityBoard, ActivityView, ErrorList, SessionStatus
from timeblock.services import activity_service, reorder_engine, timer_engine
from timeblock.services.activity_service import format_hms
from timeblock.services.context import SchedulerContext
from timeblock.services.estimation_engine import estimated_queue_end
from timeblock.services.remaining_time import remaining_time
from timeblock.services.reorder_engine import MoveRequest


logger = logging.getLogger(__name__)

router = APIRouter(tags=["activities"])

# Request body was well-formed but the values were rejected
HTTP_UNPROCESSABLE = 422


def get_context(request: Request) -> SchedulerContext:
    """Return the scheduler context attached to the application."""
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Timer engine not started")
    return ctx


def _status_for(exc: TimeBlockError) -> int:
    if isinstance(exc, ActivityNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ActivityValidationError):
        return HTTP_UNPROCESSABLE
    if isinstance(exc, InvalidMoveError | InvalidTransitionError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, StoreWriteError | SubscriptionError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def _raise_http(ctx: SchedulerContext, exc: TimeBlockError) -> NoReturn:
    """Record the dismissible message and translate *exc* into an HTTP error."""
    response = classify_error(exc)
    if isinstance(exc, StoreWriteError | SubscriptionError):
        ctx.report_error(exc)
    logger.warning("request_failed", extra={"code": response.code, "error": str(exc)})
    raise HTTPException(
        status_code=_status_for(exc),
        detail={"code": response.code, "message": response.message, "suggestion": response.suggestion},
    ) from exc


def _view(ctx: SchedulerContext, activity: Activity) -> ActivityView:
    remaining = remaining_time(activity, ctx.now())
    return ActivityView.from_activity(
        activity,
        remaining=remaining,
        remaining_display=format_hms(remaining),
        estimated_finish=ctx.estimates.get(activity.id),
    )


def _session_status(ctx: SchedulerContext) -> SessionStatus:
    running = ctx.snapshot.running()
    return SessionStatus(
        state=ctx.session.state,
        running_activity_id=running[0].id if running else None,
        loaded=ctx.snapshot.loaded,
        load_error=ctx.load_error,
    )


@router.get("/activities")
async def list_activities(ctx: SchedulerContext = Depends(get_context)) -> ActivityBoard:
    """Both partitions with remaining time and projected finish times."""
    if ctx.load_error is not None:
        _raise_http(ctx, SubscriptionError(ctx.load_error))
    ctx.refresh_estimates()
    return ActivityBoard(
        active=[_view(ctx, a) for a in ctx.snapshot.active()],
        completed=[_view(ctx, a) for a in ctx.snapshot.completed()],
        estimated_queue_end=estimated_queue_end(ctx.snapshot.activities(), ctx.now()),
    )


@router.post("/activities", status_code=status.HTTP_201_CREATED)
async def create_activity(data: ActivityCreate, ctx: SchedulerContext = Depends(get_context)) -> dict[str, str]:
    """Add an activity to the end of the active queue."""
    try:
        activity_id = await activity_service.add_activity(ctx, data)
    except TimeBlockError as e:
        _raise_http(ctx, e)
    return {"id": activity_id}


@router.patch("/activities/{activity_id}")
async def update_activity(
    activity_id: str,
    edit: ActivityEdit,
    ctx: SchedulerContext = Depends(get_context),
) -> ActivityView:
    """Edit an activity's title or duration."""
    try:
        activity = await activity_service.edit_activity(ctx, activity_id, edit)
    except TimeBlockError as e:
        _raise_http(ctx, e)
    return _view(ctx, activity)


@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_activity(activity_id: str, ctx: SchedulerContext = Depends(get_context)) -> Response:
    """Delete an activity."""
    try:
        await activity_service.delete_activity(ctx, activity_id)
    except TimeBlockError as e:
        _raise_http(ctx, e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/activities/{activity_id}/toggle")
async def toggle_activity(activity_id: str, ctx: SchedulerContext = Depends(get_context)) -> ActivityView:
    """Play or pause a single activity."""
    try:
        activity = await ctx.session.toggle_activity(ctx, activity_id)
    except TimeBlockError as e:
        _raise_http(ctx, e)
    return _view(ctx, activity)


@router.post("/activities/{activity_id}/reset")
async def reset_activity(activity_id: str, ctx: SchedulerContext = Depends(get_context)) -> ActivityView:
    """Restore an activity's full duration."""
    try:
        activity = await activity_service.reset_activity(ctx, activity_id)
    except TimeBlockError as e:
        _raise_http(ctx, e)
    return _view(ctx, activity)


@router.post("/activities/reorder")
async def reorder_activities(move: MoveRequest, ctx: SchedulerContext = Depends(get_context)) -> list[ActivityView]:
    """Move an activity within or between partitions; returns the destination partition."""
    try:
        partition = await reorder_engine.move_activity(ctx, move)
    except TimeBlockError as e:
        _raise_http(ctx, e)
    return [_view(ctx, a) for a in partition]


@router.get("/session")
async def get_session(ctx: SchedulerContext = Depends(get_context)) -> SessionStatus:
    """Current session state."""
    return _session_status(ctx)


@router.post("/session/toggle")
async def toggle_session(ctx: SchedulerContext = Depends(get_context)) -> SessionStatus:
    """Start or pause the whole queue."""
    try:
        await ctx.session.toggle(ctx)
    except TimeBlockError as e:
        _raise_http(ctx, e)
    return _session_status(ctx)


@router.post("/session/visible")
async def visibility_regained(ctx: SchedulerContext = Depends(get_context)) -> SessionStatus:
    """Catch-up check for a client that was hidden or suspended."""
    await timer_engine.handle_visibility_regained(ctx)
    return _session_status(ctx)


@router.get("/errors")
async def list_errors(ctx: SchedulerContext = Depends(get_context)) -> ErrorList:
    """Dismissible error messages."""
    return ErrorList(errors=list(ctx.errors))


@router.delete("/errors", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_errors(ctx: SchedulerContext = Depends(get_context)) -> Response:
    """Dismiss every error message."""
    ctx.dismiss_errors()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
