"""Tests for SqliteClient - the development and test database backend."""

import pytest
from datetime import date, datetime, timezone
from uuid import uuid4

from clients.base import DatabaseError
from clients.sqlite_client import SqliteClient


@pytest.fixture
def sqlite(tmp_path):
    client = SqliteClient(tmp_path / "scratch.db")
    client.execute_script("""
        CREATE TABLE things (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            day TEXT,
            seen_at TEXT,
            count INTEGER NOT NULL DEFAULT 0
        );
    """)
    return client


class TestInit:
    def test_rejects_memory_database(self):
        with pytest.raises(ValueError, match="memory"):
            SqliteClient(":memory:")

    def test_uses_wal_journal(self, sqlite):
        assert sqlite.execute_single("PRAGMA journal_mode")["journal_mode"] == "wal"


class TestExecuteMethods:
    """Query execution with %s placeholders."""

    def test_insert_returning(self, sqlite):
        thing_id = uuid4()
        rows = sqlite.execute_returning(
            "INSERT INTO things (id, name) VALUES (%s, %s) RETURNING *",
            (thing_id, "widget")
        )

        assert rows[0]["id"] == str(thing_id)
        assert rows[0]["name"] == "widget"

    def test_execute_single_none_when_empty(self, sqlite):
        assert sqlite.execute_single("SELECT * FROM things WHERE name = %s", ("nope",)) is None

    def test_execute_without_result_returns_empty_list(self, sqlite):
        assert sqlite.execute("INSERT INTO things (id, name) VALUES (%s, %s)", (uuid4(), "a")) == []

    def test_dates_and_datetimes_are_iso_text(self, sqlite):
        seen = datetime(2025, 3, 10, 8, 30, tzinfo=timezone.utc)
        sqlite.execute(
            "INSERT INTO things (id, name, day, seen_at) VALUES (%s, %s, %s, %s)",
            (uuid4(), "dated", date(2025, 3, 10), seen)
        )

        row = sqlite.execute_single("SELECT day, seen_at FROM things WHERE name = %s", ("dated",))

        assert row["day"] == "2025-03-10"
        assert row["seen_at"] == "2025-03-10T08:30:00.000000+00:00"

    def test_conditional_update_returning(self, sqlite):
        """UPDATE ... RETURNING reports only the rows it changed."""
        sqlite.execute("INSERT INTO things (id, name) VALUES (%s, %s)", (uuid4(), "counter"))

        first = sqlite.execute_single(
            "UPDATE things SET count = count + 1 WHERE name = %s AND count = %s RETURNING count",
            ("counter", 0)
        )
        second = sqlite.execute_single(
            "UPDATE things SET count = count + 1 WHERE name = %s AND count = %s RETURNING count",
            ("counter", 0)
        )

        assert first["count"] == 1
        assert second is None


class TestErrors:
    def test_constraint_violation_is_database_error(self, sqlite):
        sqlite.execute("INSERT INTO things (id, name) VALUES (%s, %s)", (uuid4(), "dup"))

        with pytest.raises(DatabaseError, match="UNIQUE"):
            sqlite.execute("INSERT INTO things (id, name) VALUES (%s, %s)", (uuid4(), "dup"))

    def test_syntax_error_is_database_error(self, sqlite):
        with pytest.raises(DatabaseError):
            sqlite.execute("SELEC nonsense")
