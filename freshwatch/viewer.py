"""Filtered views, statistics and export over the audit log."""

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from .audit_log import AuditLog
from .models import ErrorEntry, UpdateEntry

logger = logging.getLogger(__name__)

MAX_USER_AGENT_LENGTH = 100


class UpdateFrequency(Enum):
    """How often updates arrive, judged from the retained update entries."""

    MULTIPLE_PER_DAY = "multiple/day"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    IRREGULAR = "irregular"
    NOT_APPLICABLE = "not-applicable"


@dataclass(frozen=True)
class LogStats:
    """Derived statistics over the audit log.

    Attributes:
        total_updates: Number of retained update entries.
        total_errors: Number of retained error entries.
        last_update: Timestamp of the newest update entry, or None.
        last_error: Timestamp of the newest error entry, or None.
        update_frequency: Frequency bucket of updates.
        error_rate: Errors per update as "12.5%", or "N/A" with no updates.
    """

    total_updates: int
    total_errors: int
    last_update: str | None
    last_error: str | None
    update_frequency: UpdateFrequency
    error_rate: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalUpdates": self.total_updates,
            "totalErrors": self.total_errors,
            "lastUpdate": self.last_update,
            "lastError": self.last_error,
            "updateFrequency": self.update_frequency.value,
            "errorRate": self.error_rate,
        }


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def calculate_update_frequency(updates: list[UpdateEntry]) -> UpdateFrequency:
    """Bucket the average gap between retained updates.

    The span runs from the oldest *retained* entry to the newest, so once
    the log has evicted entries this is an approximation of the true
    long-run frequency.

    Args:
        updates: Update entries, most recent first.
    """
    if len(updates) < 2:
        return UpdateFrequency.NOT_APPLICABLE

    newest = _parse_timestamp(updates[0].timestamp)
    oldest = _parse_timestamp(updates[-1].timestamp)
    if newest is None or oldest is None:
        return UpdateFrequency.NOT_APPLICABLE

    days = abs((newest - oldest).total_seconds()) / 86400
    if days == 0:
        return UpdateFrequency.MULTIPLE_PER_DAY

    average_gap = days / len(updates)
    if average_gap < 1:
        return UpdateFrequency.MULTIPLE_PER_DAY
    if average_gap < 7:
        return UpdateFrequency.WEEKLY
    if average_gap < 30:
        return UpdateFrequency.MONTHLY
    return UpdateFrequency.IRREGULAR


def calculate_error_rate(update_count: int, error_count: int) -> str:
    """Errors per update as a percentage with one decimal, or "N/A"."""
    if update_count == 0:
        return "N/A"
    return f"{error_count / update_count * 100:.1f}%"


def truncate_user_agent(user_agent: str, max_length: int = MAX_USER_AGENT_LENGTH) -> str:
    if len(user_agent) <= max_length:
        return user_agent
    return user_agent[:max_length] + "..."


def _format_time(timestamp: str) -> str:
    parsed = _parse_timestamp(timestamp)
    if parsed is None:
        return timestamp
    return parsed.strftime("%Y-%m-%d %H:%M:%S %Z")


class LogViewer:
    """Text views over the audit log with independent update/error filters.

    Example:
        viewer = LogViewer(audit)
        viewer.set_filters(show_errors=False)
        print(viewer.render())
    """

    def __init__(self, audit_log: AuditLog, show_updates: bool = True, show_errors: bool = True) -> None:
        self._audit_log = audit_log
        self.show_updates = show_updates
        self.show_errors = show_errors

    def set_filters(self, show_updates: bool | None = None, show_errors: bool | None = None) -> None:
        """Toggle either filter; None leaves it unchanged."""
        if show_updates is not None:
            self.show_updates = show_updates
        if show_errors is not None:
            self.show_errors = show_errors

    def render(self) -> str:
        """Render the enabled sections as plain text."""
        if not self.show_updates and not self.show_errors:
            return "Select at least one log type to display."

        lines: list[str] = []

        if self.show_updates:
            updates = self._audit_log.list_updates()
            lines.append(f"Update records ({len(updates)})")
            if not updates:
                lines.append("  No update records.")
            for entry in updates:
                lines.extend(self.format_update(entry))

        if self.show_errors:
            if lines:
                lines.append("")
            errors = self._audit_log.list_errors()
            lines.append(f"Error records ({len(errors)})")
            if not errors:
                lines.append("  No error records.")
            for entry in errors:
                lines.extend(self.format_error(entry))

        return "\n".join(lines)

    def format_update(self, entry: UpdateEntry) -> list[str]:
        lines = [
            f"  [update] {_format_time(entry.timestamp)}",
            f"    Version: {entry.version or 'N/A'}",
            f"    Action: {entry.action}",
        ]
        lines.extend(self._format_origin(entry.user_agent, entry.url))
        return lines

    def format_error(self, entry: ErrorEntry) -> list[str]:
        lines = [
            f"  [error] {_format_time(entry.timestamp)}",
            f"    Context: {entry.context}",
            f"    Error: {entry.error_message}",
        ]
        lines.extend(self._format_origin(entry.user_agent, entry.url))
        return lines

    @staticmethod
    def _format_origin(user_agent: str, url: str) -> list[str]:
        lines = []
        if user_agent:
            lines.append(f"    User agent: {truncate_user_agent(user_agent)}")
        if url:
            lines.append(f"    URL: {url}")
        return lines

    def get_stats(self) -> LogStats:
        updates = self._audit_log.list_updates()
        errors = self._audit_log.list_errors()
        return LogStats(
            total_updates=len(updates),
            total_errors=len(errors),
            last_update=updates[0].timestamp if updates else None,
            last_error=errors[0].timestamp if errors else None,
            update_frequency=calculate_update_frequency(updates),
            error_rate=calculate_error_rate(len(updates), len(errors)),
        )

    def render_stats(self) -> str:
        stats = self.get_stats()
        return "\n".join(
            [
                f"Total updates:    {stats.total_updates}",
                f"Total errors:     {stats.total_errors}",
                f"Last update:      {_format_time(stats.last_update) if stats.last_update else 'N/A'}",
                f"Last error:       {_format_time(stats.last_error) if stats.last_error else 'N/A'}",
                f"Update frequency: {stats.update_frequency.value}",
                f"Error rate:       {stats.error_rate}",
            ]
        )

    def build_export(self, export_time: datetime | None = None) -> dict[str, Any]:
        """Both lists, in stored order, plus the export timestamp."""
        return {
            "exportTime": (export_time or datetime.now(UTC)).isoformat(),
            "updateLogs": [entry.to_dict() for entry in self._audit_log.list_updates()],
            "errorLogs": [entry.to_dict() for entry in self._audit_log.list_errors()],
        }

    def export(self, directory: str | Path = ".") -> Path:
        """Write the export document to ``update-logs-<epoch-ms>.json``.

        Returns:
            Path of the written file.

        Raises:
            OSError: If the file cannot be written.
        """
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"update-logs-{int(time.time() * 1000)}.json"

        document = self.build_export()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)

        logger.info(
            "Exported %d update and %d error entries to %s",
            len(document["updateLogs"]),
            len(document["errorLogs"]),
            path,
        )
        return path

    def clear(self, confirm: Callable[[], bool]) -> bool:
        """Clear both logs if ``confirm()`` agrees.

        Callers re-render afterwards to show the emptied view.

        Returns:
            True if the logs were cleared.

        Raises:
            StorageError: If the logs cannot be removed.
        """
        if not confirm():
            logger.debug("Log clear cancelled")
            return False

        self._audit_log.clear_all()
        return True
