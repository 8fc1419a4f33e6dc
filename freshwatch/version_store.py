"""Persistence of the acknowledged version and the auto-refresh preference."""

import logging
from datetime import UTC, datetime

from .config import StorageKeys
from .database import MemoryStore, SqliteStore
from .models import UpdatePreference

logger = logging.getLogger(__name__)

# Stored representation of the preference (absent = unset).
_PREFERENCE_VALUES = {
    UpdatePreference.ALWAYS_AUTO_REFRESH: "true",
    UpdatePreference.ALWAYS_MANUAL: "false",
}


class VersionStore:
    """Reads and writes the last acknowledged version and related settings.

    Absence of a stored version is a valid state meaning "no baseline".
    Storage errors propagate as StorageError; the detector decides how to
    report them.
    """

    def __init__(self, store: SqliteStore | MemoryStore) -> None:
        self._store = store

    def get_version(self) -> str | None:
        return self._store.get(StorageKeys.STORED_VERSION)

    def set_version(self, version: str) -> None:
        self._store.set(StorageKeys.STORED_VERSION, version)
        logger.info("Stored version: %s", version)

    def clear_version(self) -> None:
        self._store.remove(StorageKeys.STORED_VERSION)

    def get_preference(self) -> UpdatePreference:
        """Return the persisted preference; unknown values read as UNSET."""
        raw = self._store.get(StorageKeys.AUTO_REFRESH)
        if raw == "true":
            return UpdatePreference.ALWAYS_AUTO_REFRESH
        if raw == "false":
            return UpdatePreference.ALWAYS_MANUAL
        if raw is not None:
            logger.warning("Ignoring unknown auto-refresh preference %r", raw)
        return UpdatePreference.UNSET

    def set_preference(self, preference: UpdatePreference) -> None:
        if preference is UpdatePreference.UNSET:
            self._store.remove(StorageKeys.AUTO_REFRESH)
        else:
            self._store.set(StorageKeys.AUTO_REFRESH, _PREFERENCE_VALUES[preference])
        logger.info("Auto-refresh preference set to %s", preference.value)

    def get_last_check(self) -> str | None:
        return self._store.get(StorageKeys.LAST_CHECK)

    def touch_last_check(self, when: datetime | None = None) -> str:
        """Record the time of the latest successful metadata fetch."""
        timestamp = (when or datetime.now(UTC)).isoformat()
        self._store.set(StorageKeys.LAST_CHECK, timestamp)
        return timestamp

    def clear_last_check(self) -> None:
        self._store.remove(StorageKeys.LAST_CHECK)
