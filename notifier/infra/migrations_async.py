# notifier/infra/migrations_async.py
"""
SQL migrations (asyncpg).

Files in notifier/infra/sql are applied in name order, each in its own
transaction, and recorded in ``schema_migrations``. A session-level advisory
lock keeps two runners (e.g. web and scheduler containers starting together)
from applying the same file twice.
"""
from __future__ import annotations
from pathlib import Path

from notifier.infra.db_async import db_conn
from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)

# arbitrary constant shared by every runner
MIGRATION_LOCK_ID = 7_310_425

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations(
  version text PRIMARY KEY,
  applied_at timestamptz NOT NULL DEFAULT now()
)
"""


def sql_dir() -> Path:
    return Path(__file__).resolve().parent / "sql"


def list_migration_files() -> list[Path]:
    return sorted(p for p in sql_dir().glob("*.sql") if p.is_file())


async def _applied_versions(conn) -> set[str]:
    await conn.execute(_CREATE_TABLE)
    return {row["version"] for row in await conn.fetch("SELECT version FROM schema_migrations")}


async def pending_migrations() -> list[str]:
    """File names not yet recorded in schema_migrations."""
    async with db_conn() as conn:
        applied = await _applied_versions(conn)
    return [p.name for p in list_migration_files() if p.name not in applied]


async def apply_migrations() -> dict:
    """
    Returns:
        {"ok": True, "applied": [file names applied by this run], "count": int}
    """
    applied_now: list[str] = []

    async with db_conn() as conn:
        await conn.execute("SELECT pg_advisory_lock($1)", MIGRATION_LOCK_ID)
        try:
            applied = await _applied_versions(conn)
            for path in list_migration_files():
                if path.name in applied:
                    logger.debug(f"Migration {path.name} already applied, skipping")
                    continue

                logger.info(f"Applying migration: {path.name}")
                async with conn.transaction():
                    await conn.execute(path.read_text(encoding="utf-8"))
                    await conn.execute("INSERT INTO schema_migrations(version) VALUES ($1)", path.name)
                applied_now.append(path.name)
        finally:
            await conn.execute("SELECT pg_advisory_unlock($1)", MIGRATION_LOCK_ID)

    logger.info(f"Migrations complete: {len(applied_now)} applied")
    return {"ok": True, "applied": applied_now, "count": len(applied_now)}
