from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MIGRATIONS_ROOT = Path(__file__).with_name("postgres_migrations")
MIGRATION_NAMESPACES = ("systematic_plans",)


@dataclass(frozen=True)
class PostgresMigration:
    version: str
    sql_path: Path
    checksum: str


def apply_postgres_migrations(*, connection: Any, namespace: str) -> list[str]:
    """Apply pending forward-only migrations under an advisory lock; returns applied versions."""
    lock_key = _migration_lock_key(namespace=namespace)
    connection.execute("SELECT pg_advisory_lock(%s::bigint)", (lock_key,))
    try:
        return _apply_pending_locked(connection=connection, namespace=namespace)
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.execute("SELECT pg_advisory_unlock(%s::bigint)", (lock_key,))


def pending_postgres_migrations(*, connection: Any, namespace: str) -> list[PostgresMigration]:
    applied = _applied_checksums(connection=connection, namespace=namespace)
    return [
        migration
        for migration in _load_migrations(namespace=namespace)
        if _verify_checksum(namespace=namespace, migration=migration, applied=applied)
    ]


def _apply_pending_locked(*, connection: Any, namespace: str) -> list[str]:
    applied_versions: list[str] = []
    for migration in pending_postgres_migrations(connection=connection, namespace=namespace):
        _execute_sql_statements(
            connection=connection,
            sql=migration.sql_path.read_text(encoding="utf-8"),
        )
        connection.execute(
            """
            INSERT INTO schema_migrations (
                version,
                namespace,
                checksum,
                applied_at
            ) VALUES (%s, %s, %s, %s)
            """,
            (
                f"{namespace}:{migration.version}",
                namespace,
                migration.checksum,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        applied_versions.append(migration.version)
        logger.info(
            "postgres migration applied",
            extra={"extra_fields": {"namespace": namespace, "version": migration.version}},
        )
    connection.commit()
    return applied_versions


def _applied_checksums(*, connection: Any, namespace: str) -> dict[str, str]:
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            namespace TEXT NOT NULL,
            checksum TEXT NOT NULL,
            applied_at TEXT NOT NULL
        )
        """
    )
    rows = connection.execute(
        """
        SELECT version, checksum
        FROM schema_migrations
        WHERE namespace = %s
        ORDER BY version ASC
        """,
        (namespace,),
    ).fetchall()
    prefix = f"{namespace}:"
    applied: dict[str, str] = {}
    for row in rows:
        stored_version = str(row["version"])
        version = stored_version.removeprefix(prefix)
        checksum = str(row["checksum"])
        if applied.get(version, checksum) != checksum:
            raise RuntimeError(f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{version}")
        applied[version] = checksum
    return applied


def _verify_checksum(
    *, namespace: str, migration: PostgresMigration, applied: dict[str, str]
) -> bool:
    """True when the migration still has to run; raises if an applied file was edited."""
    existing_checksum = applied.get(migration.version)
    if existing_checksum is None:
        return True
    if existing_checksum != migration.checksum:
        raise RuntimeError(
            f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{migration.version}"
        )
    return False


def _execute_sql_statements(*, connection: Any, sql: str) -> None:
    for statement in sql.split(";"):
        lines = [line for line in statement.splitlines() if not line.strip().startswith("--")]
        normalized = "\n".join(lines).strip()
        if normalized:
            connection.execute(normalized)


def _load_migrations(*, namespace: str) -> list[PostgresMigration]:
    namespace_path = MIGRATIONS_ROOT / namespace
    if not namespace_path.is_dir():
        raise RuntimeError(f"POSTGRES_MIGRATIONS_NAMESPACE_NOT_FOUND:{namespace}")
    migrations: list[PostgresMigration] = []
    for sql_path in sorted(namespace_path.glob("*.sql")):
        sql = sql_path.read_text(encoding="utf-8")
        migrations.append(
            PostgresMigration(
                version=sql_path.stem.split("_", maxsplit=1)[0],
                sql_path=sql_path,
                checksum=hashlib.sha256(sql.encode("utf-8")).hexdigest(),
            )
        )
    return migrations


def _migration_lock_key(*, namespace: str) -> int:
    digest = hashlib.sha256(f"migrations:{namespace}".encode("utf-8")).digest()[:8]
    return int.from_bytes(digest, byteorder="big", signed=True)
