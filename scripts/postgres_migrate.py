import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the systematic plan store."
    )
    parser.add_argument(
        "--dsn",
        default=os.getenv("PLAN_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN for the systematic plan store.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List pending migrations without applying them.",
    )
    args = parser.parse_args()

    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    if not args.dsn:
        raise RuntimeError("POSTGRES_MIGRATION_DSN_REQUIRED:systematic_plans")
    import psycopg
    from psycopg.rows import dict_row

    from src.infrastructure.postgres_migrations import (
        MIGRATION_NAMESPACES,
        apply_postgres_migrations,
        pending_postgres_migrations,
    )

    with psycopg.connect(args.dsn, row_factory=dict_row) as connection:
        for namespace in MIGRATION_NAMESPACES:
            if args.dry_run:
                pending = pending_postgres_migrations(connection=connection, namespace=namespace)
                versions = ", ".join(migration.version for migration in pending) or "none"
                print(f"Pending migrations for namespace={namespace}: {versions}")
                continue
            applied = apply_postgres_migrations(connection=connection, namespace=namespace)
            print(f"Applied {len(applied)} migration(s) for namespace={namespace}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
