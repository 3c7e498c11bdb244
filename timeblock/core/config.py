"""Configuration management for timeblock."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage Configuration
    sqlite_db_path: str = Field(default="./timeblock.db", description="Path to the SQLite activity store")
    app_id: str = Field(default="default-time-blocker", description="Application namespace for stored activities")
    default_scope: str = Field(default="local", description="Owner scope used when no identity is supplied")

    # Scheduler Configuration
    tick_interval_seconds: float = Field(default=1.0, gt=0, description="Interval of the expiry-check tick")

    # Completion Cues
    notifications_enabled: bool = Field(default=True, description="Send a notification when an activity completes")
    audio_cue_enabled: bool = Field(default=True, description="Play the audio cue when an activity completes")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Completion Guard
    settled_completion_memory: int = Field(
        default=256,
        ge=1,
        description="Number of settled completion events remembered to reject stale snapshot replays",
    )

    def store_scope(self, scope: str | None = None) -> str:
        """Return the fully qualified store scope for an owner.

        Args:
            scope: Owner identifier, defaults to ``default_scope``

        Returns:
            Scope string of the form ``<app_id>/<owner>``

        Raises:
            ValueError: If the resolved owner is empty
        """
        owner = (scope if scope is not None else self.default_scope).strip()
        if not owner:
            raise ValueError("Store scope must not be empty. Set DEFAULT_SCOPE or pass an owner explicitly.")
        return f"{self.app_id}/{owner}"


# Application Constants
class Constants:
    """Application-wide constants."""

    # Store
    ACTIVITIES_COLLECTION: str = "activities"
    DEFAULT_PER_PAGE_LIMIT: int = 500  # Page size when loading a snapshot

    # Time
    MS_PER_SECOND: int = 1000
    SECONDS_PER_MINUTE: int = 60
    SECONDS_PER_HOUR: int = 3600

    # Error reporting
    MAX_ERROR_MESSAGES: int = 20  # Dismissible messages kept in the context

    # Scheduler
    TICK_JOB_ID: str = "activity_tick"

    # Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
