"""Bounded, persisted audit trail of detected updates and errors."""

import json
import logging
import threading

from .config import AuditConfig, StorageKeys
from .database import MemoryStore, SqliteStore, StorageError
from .models import ErrorEntry, UpdateEntry

logger = logging.getLogger(__name__)


class AuditLog:
    """Two independently bounded, most-recent-first entry lists.

    Each append is read-insert-truncate-write and is persisted
    immediately. Reads never raise: an absent, corrupted or unreadable
    list is reported as empty so the log can't block update detection.

    Example:
        audit = AuditLog(SqliteStore(conn))
        audit.append_update(entry)
        audit.list_updates()[0] == entry
    """

    def __init__(self, store: SqliteStore | MemoryStore, config: AuditConfig | None = None) -> None:
        self._store = store
        self._config = config or AuditConfig()
        self._lock = threading.Lock()

    @property
    def max_updates(self) -> int:
        return self._config.max_updates

    @property
    def max_errors(self) -> int:
        return self._config.max_errors

    def append_update(self, entry: UpdateEntry) -> None:
        """Record an update entry, evicting the oldest beyond capacity."""
        with self._lock:
            items = self._read_raw(StorageKeys.UPDATE_LOG)
            items.insert(0, entry.to_dict())
            self._write_raw(StorageKeys.UPDATE_LOG, items[: self._config.max_updates])
        logger.debug("Recorded update entry: %s (%s)", entry.version, entry.action)

    def append_error(self, entry: ErrorEntry) -> None:
        """Record an error entry, evicting the oldest beyond capacity."""
        with self._lock:
            items = self._read_raw(StorageKeys.ERROR_LOG)
            items.insert(0, entry.to_dict())
            self._write_raw(StorageKeys.ERROR_LOG, items[: self._config.max_errors])
        logger.debug("Recorded error entry: %s: %s", entry.context, entry.error_message)

    def list_updates(self) -> list[UpdateEntry]:
        with self._lock:
            items = self._read_raw(StorageKeys.UPDATE_LOG)
        return [UpdateEntry.from_dict(item) for item in items]

    def list_errors(self) -> list[ErrorEntry]:
        with self._lock:
            items = self._read_raw(StorageKeys.ERROR_LOG)
        return [ErrorEntry.from_dict(item) for item in items]

    def clear_all(self) -> None:
        """Delete both lists. Irreversible; callers confirm beforehand.

        Raises:
            StorageError: If either list cannot be removed.
        """
        with self._lock:
            self._store.remove(StorageKeys.UPDATE_LOG)
            self._store.remove(StorageKeys.ERROR_LOG)
        logger.info("Audit log cleared")

    def _read_raw(self, key: str) -> list[dict]:
        """Load a persisted list, degrading to [] on any problem."""
        try:
            stored = self._store.get(key)
        except StorageError as e:
            logger.warning("Failed to read %s: %s", key, e)
            return []

        if not stored:
            return []

        try:
            data = json.loads(stored)
        except json.JSONDecodeError as e:
            logger.warning("Discarding corrupted %s: %s", key, e)
            return []

        if not isinstance(data, list):
            logger.warning("Discarding %s: expected a list, got %s", key, type(data).__name__)
            return []

        return [item for item in data if isinstance(item, dict)]

    def _write_raw(self, key: str, items: list[dict]) -> None:
        # Log writes must not cascade into the caller's flow.
        try:
            self._store.set(key, json.dumps(items, ensure_ascii=False))
        except StorageError as e:
            logger.warning("Dropped audit entry, failed to write %s: %s", key, e)
