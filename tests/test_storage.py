"""
Tests for storage backends and version-checked writes
"""

import pytest

from gold_platform.errors import ConcurrencyConflict, NotFound
from gold_platform.storage import InMemoryStorage, SQLiteStorage


record = {
    "id": "case_001",
    "user_id": "user-1",
    "status": "pending",
    "version": 0,
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestStorageBackends:
    """Behaviour shared by every backend"""

    def test_save_and_load(self, storage):
        storage.save("kyc_cases", "user-1", record)
        assert storage.load("kyc_cases", "user-1") == record
        assert storage.load("kyc_cases", "missing") is None

    def test_loaded_copy_is_detached(self, storage):
        storage.save("kyc_cases", "user-1", record)
        loaded = storage.load("kyc_cases", "user-1")
        loaded["status"] = "verified"
        assert storage.load("kyc_cases", "user-1")["status"] == "pending"

    def test_find_and_count(self, storage):
        storage.save("kyc_cases", "user-1", record)
        storage.save("kyc_cases", "user-2", dict(record, id="case_002", user_id="user-2", status="submitted"))

        assert storage.count("kyc_cases") == 2
        found = storage.find("kyc_cases", {"status": "submitted"})
        assert [r["user_id"] for r in found] == ["user-2"]
        assert len(storage.load_all("kyc_cases")) == 2

    def test_delete(self, storage):
        storage.save("kyc_cases", "user-1", record)
        assert storage.delete("kyc_cases", "user-1") is True
        assert storage.delete("kyc_cases", "user-1") is False
        assert storage.count("kyc_cases") == 0

    def test_compare_and_swap(self, storage):
        storage.save("kyc_cases", "user-1", record)
        storage.compare_and_swap("kyc_cases", "user-1", dict(record, status="submitted", version=1), 0)
        assert storage.load("kyc_cases", "user-1")["version"] == 1

    def test_compare_and_swap_conflict(self, storage):
        storage.save("kyc_cases", "user-1", dict(record, version=3))
        with pytest.raises(ConcurrencyConflict) as exc_info:
            storage.compare_and_swap("kyc_cases", "user-1", dict(record, version=3), 2)
        assert exc_info.value.actual_version == 3
        assert storage.load("kyc_cases", "user-1")["status"] == "pending"

    def test_compare_and_swap_missing(self, storage):
        with pytest.raises(NotFound):
            storage.compare_and_swap("kyc_cases", "ghost", record, 0)


class TestSQLiteTransactions:

    def test_atomic_rollback(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "tx.db")
        assert storage.count("kyc_cases") == 0
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("kyc_cases", "user-1", record)
                raise RuntimeError("abort")
        assert storage.load("kyc_cases", "user-1") is None
        storage.close()

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "persist.db"
        storage = SQLiteStorage(path)
        storage.save("kyc_cases", "user-1", record)
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("kyc_cases", "user-1") == record
        reopened.close()
