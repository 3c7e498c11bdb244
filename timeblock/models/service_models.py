"""Pydantic models for service layer return types.

These models shape what the HTTP interface returns: activities enriched with
derived values (remaining time, projected finish) that are never persisted.
"""

from datetime import datetime

from pydantic import BaseModel

from timeblock.domain.activity import Activity, Partition
from timeblock.services.session_controller import SessionState


class ActivityView(BaseModel):
    """Activity plus its derived timing at the moment of the request."""

    id: str
    title: str
    partition: Partition
    order: int
    initial_duration: int
    remaining_time: int
    remaining_display: str
    is_running: bool
    is_completed: bool
    time_spent: int
    end_time: datetime | None = None
    estimated_finish: datetime | None = None
    created_at: datetime

    @classmethod
    def from_activity(
        cls,
        activity: Activity,
        *,
        remaining: int,
        remaining_display: str,
        estimated_finish: datetime | None,
    ) -> "ActivityView":
        return cls(
            id=activity.id,
            title=activity.title,
            partition=activity.partition,
            order=activity.order,
            initial_duration=activity.initial_duration,
            remaining_time=remaining,
            remaining_display=remaining_display,
            is_running=activity.is_running,
            is_completed=activity.is_completed,
            time_spent=activity.time_spent,
            end_time=activity.end_time,
            estimated_finish=estimated_finish,
            created_at=activity.created_at,
        )


class ActivityBoard(BaseModel):
    """Both partitions in display order."""

    active: list[ActivityView]
    completed: list[ActivityView]
    estimated_queue_end: datetime


class SessionStatus(BaseModel):
    """Global session state."""

    state: SessionState
    running_activity_id: str | None = None
    loaded: bool
    load_error: str | None = None


class ErrorList(BaseModel):
    """Dismissible user-facing error messages."""

    errors: list[str]
