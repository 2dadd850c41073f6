from pathlib import Path

import pytest

import src.infrastructure.postgres_migrations as migrations_module
from src.infrastructure.postgres_migrations import (
    MIGRATION_NAMESPACES,
    PostgresMigration,
    _execute_sql_statements,
    _migration_lock_key,
    apply_postgres_migrations,
    pending_postgres_migrations,
)


class _FakeCursor:
    def __init__(self, rows=None):
        self._rows = rows or []

    def fetchall(self):
        return list(self._rows)


class _FakeConnection:
    def __init__(self, *, fail_on: str = ""):
        self.schema_migrations: dict[tuple[str, str], str] = {}
        self.applied_statements: list[str] = []
        self.commit_count = 0
        self.rollback_count = 0
        self.lock_calls: list[int] = []
        self.unlock_calls: list[int] = []
        self._fail_on = fail_on

    def execute(self, query, args=None):
        sql = " ".join(str(query).split())
        if sql == "SELECT pg_advisory_lock(%s::bigint)":
            self.lock_calls.append(int(args[0]))
            return _FakeCursor()
        if sql == "SELECT pg_advisory_unlock(%s::bigint)":
            self.unlock_calls.append(int(args[0]))
            return _FakeCursor()
        if sql.startswith("CREATE TABLE IF NOT EXISTS schema_migrations"):
            return _FakeCursor()
        if "FROM schema_migrations" in sql:
            namespace = args[0]
            rows = [
                {"version": version, "checksum": checksum}
                for (stored_namespace, version), checksum in self.schema_migrations.items()
                if stored_namespace == namespace
            ]
            return _FakeCursor(rows=sorted(rows, key=lambda row: row["version"]))
        if "INSERT INTO schema_migrations" in sql:
            self.schema_migrations[(args[1], args[0])] = args[2]
            return _FakeCursor()
        if self._fail_on and self._fail_on in sql:
            raise RuntimeError("statement failed")
        self.applied_statements.append(sql)
        return _FakeCursor()

    def commit(self):
        self.commit_count += 1

    def rollback(self):
        self.rollback_count += 1


def test_systematic_plan_migrations_are_forward_only_and_idempotent():
    connection = _FakeConnection()
    lock_key = _migration_lock_key(namespace="systematic_plans")

    applied = apply_postgres_migrations(connection=connection, namespace="systematic_plans")
    first_count = len(connection.applied_statements)

    assert MIGRATION_NAMESPACES == ("systematic_plans",)
    assert applied == ["0001"]
    assert first_count > 0
    assert any(
        sql.startswith("CREATE TABLE IF NOT EXISTS systematic_plans (")
        for sql in connection.applied_statements
    )
    assert ("systematic_plans", "systematic_plans:0001") in connection.schema_migrations
    assert connection.lock_calls == [lock_key]
    assert connection.unlock_calls == [lock_key]

    assert apply_postgres_migrations(connection=connection, namespace="systematic_plans") == []
    assert len(connection.applied_statements) == first_count
    assert connection.commit_count == 2
    assert pending_postgres_migrations(connection=connection, namespace="systematic_plans") == []


def test_migration_failure_rolls_back_and_releases_lock():
    connection = _FakeConnection(fail_on="CREATE INDEX")

    with pytest.raises(RuntimeError, match="statement failed"):
        apply_postgres_migrations(connection=connection, namespace="systematic_plans")

    assert connection.rollback_count == 1
    assert connection.unlock_calls == connection.lock_calls
    assert connection.schema_migrations == {}


def test_checksum_mismatch_is_detected(monkeypatch, tmp_path: Path):
    sql_path = tmp_path / "0001_test.sql"
    sql_path.write_text("CREATE TABLE IF NOT EXISTS sample_table (id TEXT PRIMARY KEY);")
    migration = PostgresMigration(version="0001", sql_path=sql_path, checksum="checksum-new")
    monkeypatch.setattr(migrations_module, "_load_migrations", lambda namespace: [migration])
    connection = _FakeConnection()
    connection.schema_migrations[("systematic_plans", "systematic_plans:0001")] = "checksum-old"

    with pytest.raises(RuntimeError, match="POSTGRES_MIGRATION_CHECKSUM_MISMATCH"):
        apply_postgres_migrations(connection=connection, namespace="systematic_plans")
    assert connection.rollback_count == 1


def test_unknown_namespace_is_rejected():
    with pytest.raises(RuntimeError, match="POSTGRES_MIGRATIONS_NAMESPACE_NOT_FOUND:ledger"):
        apply_postgres_migrations(connection=_FakeConnection(), namespace="ledger")


def test_sql_comment_lines_are_skipped():
    connection = _FakeConnection()

    _execute_sql_statements(
        connection=connection,
        sql="-- header\nCREATE TABLE a (id TEXT);\n\n-- trailing note\n",
    )

    assert connection.applied_statements == ["CREATE TABLE a (id TEXT)"]
