"""SQLite-backed key-value store for detector state and audit logs."""

import sqlite3
import threading
from pathlib import Path


class StorageError(Exception):
    """Raised when a persistent store operation fails."""

    pass


# Global lock for thread-safe database access.
# The detector thread and CLI callers may share one connection.
_db_lock = threading.Lock()


def init_db(db_path: str) -> sqlite3.Connection:
    """Initialize the database and create the key-value table if needed.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        Database connection with WAL mode enabled.

    Raises:
        StorageError: If database initialization fails.
    """
    try:
        parent_dir = Path(db_path).parent
        if not parent_dir.exists():
            parent_dir.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row

        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

        conn.commit()
        return conn

    except sqlite3.Error as e:
        raise StorageError(f"Failed to initialize database: {e}")
    except OSError as e:
        raise StorageError(f"Failed to create database directory: {e}")


class SqliteStore:
    """String key-value store persisted in SQLite.

    Every write is a single-key statement committed immediately, so a
    value is either fully written or not written at all.

    Example:
        store = SqliteStore(init_db("state.db"))
        store.set("site_version", "1.2")
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, key: str) -> str | None:
        """Get value by key, or None if the key doesn't exist.

        Raises:
            StorageError: If the query fails.
        """
        try:
            with _db_lock:
                row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read '{key}': {e}")

    def set(self, key: str, value: str) -> None:
        """Set value by key (insert or replace).

        Raises:
            StorageError: If the write fails.
        """
        try:
            with _db_lock:
                self._conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                    (key, value),
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write '{key}': {e}")

    def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored.

        Raises:
            StorageError: If the delete fails.
        """
        try:
            with _db_lock:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove '{key}': {e}")

    def close(self) -> None:
        self._conn.close()


class MemoryStore:
    """In-process key-value store with the same interface as SqliteStore."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def close(self) -> None:
        pass
