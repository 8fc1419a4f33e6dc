"""Tests for the audit log."""

import json
from unittest.mock import MagicMock

import pytest

from freshwatch.audit_log import AuditLog
from freshwatch.config import AuditConfig, StorageKeys
from freshwatch.database import MemoryStore, StorageError
from freshwatch.models import ErrorEntry, UpdateEntry


def make_update(index: int) -> UpdateEntry:
    return UpdateEntry(
        timestamp=f"2024-05-01T12:00:{index % 60:02d}+00:00",
        version=f"v{index}",
        action="refreshed",
        user_agent="FreshWatch/0.1",
        url="https://example.com",
    )


def make_error(index: int) -> ErrorEntry:
    return ErrorEntry(
        timestamp=f"2024-05-01T12:00:{index % 60:02d}+00:00",
        context="check for updates",
        error_message=f"failure {index}",
        user_agent="FreshWatch/0.1",
        url="https://example.com",
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def audit(store: MemoryStore) -> AuditLog:
    return AuditLog(store)


class TestAppend:
    """Tests for appending entries."""

    def test_update_is_front_inserted(self, audit: AuditLog) -> None:
        audit.append_update(make_update(1))
        audit.append_update(make_update(2))

        assert [e.version for e in audit.list_updates()] == ["v2", "v1"]

    def test_error_is_front_inserted(self, audit: AuditLog) -> None:
        audit.append_error(make_error(1))
        audit.append_error(make_error(2))

        assert [e.error_message for e in audit.list_errors()] == ["failure 2", "failure 1"]

    def test_entries_round_trip_all_fields(self, audit: AuditLog) -> None:
        error = ErrorEntry(
            timestamp="2024-05-01T12:00:00+00:00",
            context="refresh content",
            error_message="boom",
            stack_trace="Traceback ...",
            user_agent="UA",
            url="https://example.com",
        )
        audit.append_error(error)
        assert audit.list_errors() == [error]

    def test_persisted_immediately_as_json(self, audit: AuditLog, store: MemoryStore) -> None:
        audit.append_update(make_update(1))

        stored = json.loads(store.get(StorageKeys.UPDATE_LOG))
        assert stored == [make_update(1).to_dict()]
        assert stored[0]["userAgent"] == "FreshWatch/0.1"

    def test_update_and_error_lists_are_independent(self, audit: AuditLog) -> None:
        audit.append_update(make_update(1))
        assert audit.list_errors() == []


class TestCapacity:
    """Tests for bounded retention."""

    def test_update_log_never_exceeds_50(self, audit: AuditLog) -> None:
        for i in range(60):
            audit.append_update(make_update(i))
            assert len(audit.list_updates()) <= 50

        versions = [e.version for e in audit.list_updates()]
        assert len(versions) == 50
        # Oldest ten evicted, the rest keep their relative order.
        assert versions == [f"v{i}" for i in range(59, 9, -1)]

    def test_error_log_never_exceeds_20(self, audit: AuditLog) -> None:
        for i in range(25):
            audit.append_error(make_error(i))
            assert len(audit.list_errors()) <= 20

        messages = [e.error_message for e in audit.list_errors()]
        assert messages == [f"failure {i}" for i in range(24, 4, -1)]

    def test_custom_bounds(self, store: MemoryStore) -> None:
        audit = AuditLog(store, AuditConfig(max_updates=2, max_errors=1))
        for i in range(3):
            audit.append_update(make_update(i))
            audit.append_error(make_error(i))

        assert [e.version for e in audit.list_updates()] == ["v2", "v1"]
        assert [e.error_message for e in audit.list_errors()] == ["failure 2"]


class TestTolerantReads:
    """Reads degrade to empty lists instead of failing."""

    def test_absent_lists_are_empty(self, audit: AuditLog) -> None:
        assert audit.list_updates() == []
        assert audit.list_errors() == []

    def test_corrupted_json_reads_as_empty(self, store: MemoryStore) -> None:
        store.set(StorageKeys.UPDATE_LOG, "{not json")
        assert AuditLog(store).list_updates() == []

    def test_non_list_json_reads_as_empty(self, store: MemoryStore) -> None:
        store.set(StorageKeys.ERROR_LOG, json.dumps({"oops": True}))
        assert AuditLog(store).list_errors() == []

    def test_non_object_items_are_skipped(self, store: MemoryStore) -> None:
        store.set(StorageKeys.UPDATE_LOG, json.dumps([42, make_update(1).to_dict(), "x"]))
        assert AuditLog(store).list_updates() == [make_update(1)]

    def test_append_after_corruption_starts_fresh(self, store: MemoryStore) -> None:
        store.set(StorageKeys.UPDATE_LOG, "garbage")
        audit = AuditLog(store)
        audit.append_update(make_update(1))
        assert audit.list_updates() == [make_update(1)]

    def test_storage_read_failure_reads_as_empty(self) -> None:
        store = MagicMock()
        store.get.side_effect = StorageError("locked")
        audit = AuditLog(store)

        assert audit.list_updates() == []
        assert audit.list_errors() == []

    def test_storage_write_failure_is_dropped(self) -> None:
        store = MagicMock()
        store.get.return_value = None
        store.set.side_effect = StorageError("disk full")
        audit = AuditLog(store)

        audit.append_update(make_update(1))
        audit.append_error(make_error(1))
        assert store.set.call_count == 2


class TestClearAll:
    """Tests for clear_all."""

    def test_empties_both_lists(self, audit: AuditLog) -> None:
        audit.append_update(make_update(1))
        audit.append_error(make_error(1))

        audit.clear_all()

        assert audit.list_updates() == []
        assert audit.list_errors() == []

    def test_does_not_touch_other_keys(self, audit: AuditLog, store: MemoryStore) -> None:
        store.set(StorageKeys.STORED_VERSION, "1.0")
        audit.clear_all()
        assert store.get(StorageKeys.STORED_VERSION) == "1.0"

    def test_storage_failure_propagates(self) -> None:
        store = MagicMock()
        store.remove.side_effect = StorageError("locked")
        with pytest.raises(StorageError):
            AuditLog(store).clear_all()
