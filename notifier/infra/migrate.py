#!/usr/bin/env python3
# notifier/infra/migrate.py
"""
Standalone migration runner.

    python -m notifier.infra.migrate            # apply pending migrations
    python -m notifier.infra.migrate --status   # list pending, apply nothing

Run it before starting the application (CI/CD step, init container or by
hand). The application validates the schema version at startup but never
migrates by itself.
"""
import asyncio
import sys

from notifier.config import settings
from notifier.infra.db_async import close_pool, init_pool
from notifier.infra.logging_config import get_logger, setup_logging
from notifier.infra.migrations_async import apply_migrations, pending_migrations

setup_logging(level="INFO", use_json=settings.is_production)
logger = get_logger(__name__)


async def main(argv: list[str]) -> int:
    status_only = "--status" in argv
    logger.info(f"Migration runner: env={settings.app_env}, expected={settings.expected_schema_version}")

    try:
        await init_pool()

        if status_only:
            pending = await pending_migrations()
            for name in pending:
                logger.info(f"  pending: {name}")
            logger.info(f"{len(pending)} pending migration(s)")
            return 0

        result = await apply_migrations()
        for name in result["applied"]:
            logger.info(f"  ✓ {name}")
        if not result["applied"]:
            logger.info("No new migrations to apply")
        return 0 if result["ok"] else 1

    except Exception as exc:
        logger.critical(f"MIGRATION FAILED: {exc}", exc_info=True)
        return 1

    finally:
        await close_pool()


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
