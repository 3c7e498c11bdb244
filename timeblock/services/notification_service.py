"""Completion cues: notifications and the audio cue."""

import logging
from enum import StrEnum
from typing import Protocol

from timeblock.core.config import settings
from timeblock.domain.activity import Activity


logger = logging.getLogger(__name__)


class NotificationPermission(StrEnum):
    """Permission state reported by a notification sink."""

    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


class NotificationSink(Protocol):
    """Delivers user-visible notifications."""

    def notify(self, title: str, body: str) -> None: ...

    def request_permission(self) -> NotificationPermission: ...


class AudioCue(Protocol):
    """Plays the completion sound."""

    def play(self) -> None: ...


class LoggingNotificationSink:
    """Notification sink that writes notifications to the log."""

    def notify(self, title: str, body: str) -> None:
        logger.info("notification", extra={"title": title, "body": body})

    def request_permission(self) -> NotificationPermission:
        return NotificationPermission.GRANTED


class LoggingAudioCue:
    """Audio cue stand-in for headless deployments."""

    def play(self) -> None:
        logger.debug("audio_cue_played")


class CompletionNotifier:
    """Fires the notification and audio cue for completion events.

    Permission is requested lazily on the first completion and cached; a sink
    that answers ``default`` is asked again next time.
    """

    def __init__(
        self,
        sink: NotificationSink,
        audio: AudioCue | None = None,
        *,
        notifications_enabled: bool | None = None,
        audio_enabled: bool | None = None,
    ) -> None:
        self._sink = sink
        self._audio = audio
        self._notifications_enabled = (
            settings.notifications_enabled if notifications_enabled is None else notifications_enabled
        )
        self._audio_enabled = settings.audio_cue_enabled if audio_enabled is None else audio_enabled
        self._permission = NotificationPermission.DEFAULT

    @property
    def permission(self) -> NotificationPermission:
        return self._permission

    def _ensure_permission(self) -> bool:
        if self._permission == NotificationPermission.DEFAULT:
            try:
                self._permission = NotificationPermission(self._sink.request_permission())
            except Exception as e:
                logger.warning("notification_permission_failed", extra={"error": str(e)})
                return False
        return self._permission == NotificationPermission.GRANTED

    def _deliver(self, title: str, body: str) -> None:
        # Cues never interrupt sequencing
        if self._audio_enabled and self._audio is not None:
            try:
                self._audio.play()
            except Exception as e:
                logger.warning("audio_cue_failed", extra={"error": str(e)})

        if not self._notifications_enabled or not self._ensure_permission():
            return
        try:
            self._sink.notify(title, body)
        except Exception as e:
            logger.warning("notification_failed", extra={"title": title, "error": str(e)})

    def activity_completed(self, activity: Activity) -> None:
        """Announce that *activity* finished."""
        self._deliver("Time's up!", f'"{activity.title}" is complete.')

    def all_completed(self) -> None:
        """Announce that the queue has run out."""
        self._deliver("All done!", "All activities are complete.")
