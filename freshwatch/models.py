"""Data models for version checks and audit entries."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class VersionRecord:
    """Version metadata fetched from the server.

    Attributes:
        version: Opaque version identifier; any textual difference counts as new.
        last_updated: Server-provided last update time, or None if not provided.
    """

    version: str
    last_updated: str | None = None


class UpdatePreference(Enum):
    """Persisted answer to "refresh automatically next time?"."""

    UNSET = "unset"
    ALWAYS_AUTO_REFRESH = "always-auto-refresh"
    ALWAYS_MANUAL = "always-manual"


class RefreshChoice(Enum):
    """The three actions offered by the confirm dialog."""

    REFRESH_NOW = "refresh-now"
    ALWAYS_AUTO_REFRESH = "always-auto-refresh"
    DEFER = "defer"


@dataclass(frozen=True)
class Confirmation:
    """User answer to the confirm dialog."""

    choice: RefreshChoice
    remember: bool = False


class DetectorState(Enum):
    """States of the update detector."""

    IDLE = "idle"
    CHECKING = "checking"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    REFRESHING = "refreshing"
    FAILED = "failed"


class CheckOutcome(Enum):
    """Result of a single check cycle."""

    SKIPPED = "skipped"  # another check was already in flight
    UNCHANGED = "unchanged"
    DEFERRED = "deferred"
    REFRESHED = "refreshed"
    FAILED = "failed"


@dataclass(frozen=True)
class UpdateEntry:
    """Audit record of a detected or handled update.

    Attributes:
        timestamp: ISO-8601 UTC time the entry was recorded.
        version: The remote version that was detected.
        action: What happened ("refreshed" or "detected, not refreshed").
        user_agent: User-Agent of the client that recorded the entry.
        url: Site URL the client was watching.
    """

    timestamp: str
    version: str
    action: str
    user_agent: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "version": self.version,
            "action": self.action,
            "userAgent": self.user_agent,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UpdateEntry":
        return cls(
            timestamp=str(data.get("timestamp", "")),
            version=str(data.get("version", "")),
            action=str(data.get("action", "")),
            user_agent=str(data.get("userAgent", "")),
            url=str(data.get("url", "")),
        )


@dataclass(frozen=True)
class ErrorEntry:
    """Audit record of a failure during detection or refresh.

    Attributes:
        timestamp: ISO-8601 UTC time the entry was recorded.
        context: Name of the operation that failed (e.g. "check for updates").
        error_message: The error text.
        stack_trace: Formatted traceback, or None if unavailable.
        user_agent: User-Agent of the client that recorded the entry.
        url: Site URL the client was watching.
    """

    timestamp: str
    context: str
    error_message: str
    user_agent: str
    url: str
    stack_trace: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "context": self.context,
            "errorMessage": self.error_message,
            "stackTrace": self.stack_trace,
            "userAgent": self.user_agent,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ErrorEntry":
        stack_trace = data.get("stackTrace")
        return cls(
            timestamp=str(data.get("timestamp", "")),
            context=str(data.get("context", "")),
            error_message=str(data.get("errorMessage", "")),
            stack_trace=str(stack_trace) if stack_trace is not None else None,
            user_agent=str(data.get("userAgent", "")),
            url=str(data.get("url", "")),
        )
