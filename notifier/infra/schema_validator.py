# notifier/infra/schema_validator.py
"""
Schema version validator.

The application does NOT run migrations itself. At startup it checks that the
latest applied migration matches settings.expected_schema_version and refuses
to start otherwise.
"""
from __future__ import annotations
from notifier.config import settings
from notifier.infra.db_async import db_conn
from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)


async def validate_schema_version() -> dict:
    """
    Raises:
        RuntimeError: If the schema is missing or at an unexpected version
    """
    async with db_conn() as conn:
        table_exists = await conn.fetchval(
            """
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = 'public'
                AND table_name = 'schema_migrations'
            )
            """
        )

        if not table_exists:
            error = (
                "Schema migrations table not found. "
                "Run migrations first: python -m notifier.infra.migrate"
            )
            logger.critical(error)
            raise RuntimeError(error)

        latest = await conn.fetchrow(
            """
            SELECT version, applied_at
            FROM schema_migrations
            ORDER BY version DESC
            LIMIT 1
            """
        )

    if not latest:
        error = "No migrations have been applied. Run migrations first: python -m notifier.infra.migrate"
        logger.critical(error)
        raise RuntimeError(error)

    current_version = latest['version']
    if current_version != settings.expected_schema_version:
        error = (
            f"Schema version mismatch! "
            f"Expected: {settings.expected_schema_version}, "
            f"Found: {current_version}. "
            f"Run migrations to update schema: python -m notifier.infra.migrate"
        )
        logger.critical(error)
        raise RuntimeError(error)

    logger.info(f"Schema version validated: {current_version}")
    return {
        "ok": True,
        "current_version": current_version,
        "expected_version": settings.expected_schema_version,
    }
