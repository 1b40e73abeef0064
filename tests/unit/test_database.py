"""
Tests for the database module: lock retry, pool lifecycle and schema checks.
"""

import sqlite3

import pytest

from dailydrop.infrastructure.database import (
    get_db_connection,
    get_pool,
    get_pool_stats,
    reset_pool,
    retry_on_db_lock,
    validate_schema,
)


def test_retry_decorator_success():
    """Test retry decorator with successful operation"""
    call_count = [0]

    @retry_on_db_lock(max_retries=3, base_delay=0.01)
    def successful_operation():
        call_count[0] += 1
        return "success"

    assert successful_operation() == "success"
    assert call_count[0] == 1, "Should succeed on first try"


def test_retry_decorator_recovers_from_lock():
    """Test retry decorator recovers from database lock errors"""
    call_count = [0]

    @retry_on_db_lock(max_retries=3, base_delay=0.01, max_delay=0.05)
    def flaky_operation():
        call_count[0] += 1
        if call_count[0] < 3:
            raise sqlite3.OperationalError("database is locked")
        return "success"

    assert flaky_operation() == "success"
    assert call_count[0] == 3, "Should retry twice before success"


def test_retry_decorator_fails_after_max_retries():
    """Test retry decorator gives up after max retries"""
    call_count = [0]

    @retry_on_db_lock(max_retries=2, base_delay=0.01)
    def always_fails():
        call_count[0] += 1
        raise sqlite3.OperationalError("database is locked")

    with pytest.raises(sqlite3.OperationalError, match="database is locked"):
        always_fails()

    assert call_count[0] == 3, "Should try 3 times (initial + 2 retries)"


def test_retry_decorator_ignores_non_lock_errors():
    """Test retry decorator doesn't retry non-lock errors"""
    call_count = [0]

    @retry_on_db_lock(max_retries=3, base_delay=0.01)
    def schema_error():
        call_count[0] += 1
        raise sqlite3.OperationalError("no such table: foo")

    with pytest.raises(sqlite3.OperationalError, match="no such table"):
        schema_error()

    assert call_count[0] == 1, "Should not retry non-lock errors"


def test_pool_singleton(db):
    assert get_pool() is get_pool(), "get_pool() should return singleton instance"


def test_reset_pool_closes_and_reopens(db):
    old = get_pool()
    reset_pool()

    assert old.closed is True
    assert get_pool() is not old


def test_pool_stats(db):
    stats = get_pool_stats()

    assert stats["pool_size"] == 5, "Default pool size should be 5"
    assert stats["available"] + stats["in_use"] == stats["pool_size"]
    assert stats["closed"] is False


def test_connection_returned_to_pool(db):
    before = get_pool_stats()["available"]

    with get_db_connection() as conn:
        conn.execute("SELECT 1")
        assert get_pool_stats()["available"] == before - 1

    assert get_pool_stats()["available"] == before


def test_connections_enforce_foreign_keys(db):
    with get_db_connection() as conn:
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1


def test_missing_database_file(tmp_path, monkeypatch):
    monkeypatch.setenv("DAILYDROP_DB_PATH", str(tmp_path / "absent.db"))
    reset_pool()

    with pytest.raises(FileNotFoundError), get_db_connection():
        pass

    reset_pool()


def test_validate_schema(db):
    assert validate_schema() is True


def test_validate_schema_reports_missing_tables(tmp_path, monkeypatch):
    db_path = tmp_path / "empty.db"
    sqlite3.connect(db_path).close()
    monkeypatch.setenv("DAILYDROP_DB_PATH", str(db_path))
    reset_pool()

    with pytest.raises(ValueError, match="missing tables"):
        validate_schema()

    reset_pool()
