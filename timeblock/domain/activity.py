"""Activity domain models and enums."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Partition(StrEnum):
    """Which ordered list an activity belongs to."""

    ACTIVE = "active"
    COMPLETED = "completed"


def _as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps loaded from the store as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Activity(BaseModel):
    """One user-created timed block.

    Attribute names are snake_case; the store-facing aliases are the camelCase
    field names persisted by earlier releases.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = Field(..., description="Stable identity assigned by the store")
    title: str = Field(..., description="User label")
    initial_duration: int = Field(..., ge=1, alias="initialDuration", description="Baseline duration in seconds")
    duration: int = Field(..., ge=0, description="Remaining seconds while paused, 0 once completed")
    end_time: datetime | None = Field(default=None, alias="endTime", description="Instant the timer reaches zero")
    is_running: bool = Field(default=False, alias="isRunning")
    is_completed: bool = Field(default=False, alias="isCompleted")
    order: int = Field(default=0, ge=0, description="Rank within its partition")
    time_spent: int = Field(default=0, ge=0, alias="timeSpent", description="Cumulative consumed seconds")
    created_at: datetime = Field(..., alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def _fill_legacy_fields(cls, data: Any) -> Any:
        # Records from the first release only carried duration/endTime/isRunning/createdAt
        if isinstance(data, dict) and data.get("initialDuration") is None and data.get("initial_duration") is None:
            data = {**data, "initialDuration": max(int(data.get("duration") or 0), 1)}
        return data

    @field_validator("end_time", "created_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def partition(self) -> Partition:
        return Partition.COMPLETED if self.is_completed else Partition.ACTIVE

    @property
    def sort_key(self) -> tuple[int, datetime, str]:
        """Order within a partition, falling back to creation time then id."""
        return (self.order, self.created_at, self.id)

    def to_record(self) -> dict[str, Any]:
        """Return the store representation (camelCase field names, no id)."""
        return self.model_dump(by_alias=True, exclude={"id"})


def sorted_partition(activities: list[Activity], partition: Partition) -> list[Activity]:
    """Return the activities of one partition in display order."""
    return sorted((a for a in activities if a.partition == partition), key=lambda a: a.sort_key)
