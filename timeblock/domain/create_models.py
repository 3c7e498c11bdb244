"""Input models for creating activities."""

from pydantic import BaseModel, Field

from timeblock.core.config import Constants


class ActivityCreate(BaseModel):
    """Form input for a new activity (duration given as hours, minutes, seconds)."""

    title: str = Field(..., description="Activity title")
    hours: int = Field(default=0, ge=0, description="Whole hours")
    minutes: int = Field(default=0, ge=0, description="Whole minutes")
    seconds: int = Field(default=0, ge=0, description="Whole seconds")

    @property
    def total_seconds(self) -> int:
        return self.hours * Constants.SECONDS_PER_HOUR + self.minutes * Constants.SECONDS_PER_MINUTE + self.seconds
