"""
Bot Detection Exceptions - Error hierarchy for the detection pipeline.

Per-user failures inside a batch are logged and skipped by the
orchestrator; everything else propagates to the caller.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID


class BotDetectionError(Exception):
    """Base exception for all bot detection errors."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ConfigurationError(BotDetectionError):
    """Invalid configuration value."""

    def __init__(
        self,
        message: str,
        key: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.key = key


class SignalDetectionError(BotDetectionError):
    """
    A detection rule could not be evaluated.

    `signals` holds whatever the other rules already produced so the
    caller can still keep them.
    """

    def __init__(
        self,
        message: str,
        signals: Optional[List[Any]] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.signals = list(signals or [])


class ScoringError(BotDetectionError):
    """Signals could not be turned into a risk score."""

    def __init__(
        self,
        message: str,
        user_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.user_id = user_id


class BadgeTransitionError(BotDetectionError):
    """Requested badge transition is not allowed."""

    def __init__(
        self,
        message: str,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.from_status = from_status
        self.to_status = to_status


class RepositoryError(BotDetectionError):
    """Storage operation failed."""

    def __init__(
        self,
        message: str,
        operation: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.operation = operation


class NotificationError(BotDetectionError):
    """Notification could not be delivered."""

    def __init__(
        self,
        message: str,
        channel: str = "",
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.channel = channel
        self.status_code = status_code


class JobNotFoundError(BotDetectionError):
    """Batch job id is not known to the job store."""

    def __init__(self, job_id: UUID) -> None:
        super().__init__(f"Job not found: {job_id}", {"job_id": str(job_id)})
        self.job_id = job_id
