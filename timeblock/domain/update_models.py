"""Partial update models for activities."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActivityPatch(BaseModel):
    """A partial set of activity fields to persist.

    Only explicitly set fields are written, so ``end_time=None`` clears the stored
    end time while an omitted ``end_time`` leaves it untouched.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    initial_duration: int | None = Field(default=None, ge=1, alias="initialDuration")
    duration: int | None = Field(default=None, ge=0)
    end_time: datetime | None = Field(default=None, alias="endTime")
    is_running: bool | None = Field(default=None, alias="isRunning")
    is_completed: bool | None = Field(default=None, alias="isCompleted")
    order: int | None = Field(default=None, ge=0)
    time_spent: int | None = Field(default=None, ge=0, alias="timeSpent")

    def changes(self) -> dict[str, Any]:
        """Set fields keyed by attribute name, for applying to an ``Activity``."""
        return self.model_dump(exclude_unset=True)

    def to_store(self) -> dict[str, Any]:
        """Set fields keyed by store field name."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class ActivityEdit(BaseModel):
    """User edit of an activity's label or duration."""

    title: str | None = Field(default=None, description="New title")
    duration_seconds: int | None = Field(default=None, description="New baseline duration in seconds")
