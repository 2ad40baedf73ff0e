# notifier/infra/http_client.py
"""
Shared aiohttp session for Telegram Bot API calls.

Created lazily on first use and reused for every delivery, so concurrent
director fan-out shares one connection pool. ``close_all_sessions()`` runs
once in the application shutdown.
"""
from __future__ import annotations

import aiohttp

from notifier.config import settings
from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)

SENDER_POOL_LIMIT = 20
SENDER_CONNECT_TIMEOUT = 5

_sender_session: aiohttp.ClientSession | None = None


def get_sender_session() -> aiohttp.ClientSession:
    """Session for outbound Telegram calls; recreated if it was closed."""
    global _sender_session

    if _sender_session is None or _sender_session.closed:
        _sender_session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(
                total=settings.telegram_timeout_seconds,
                connect=SENDER_CONNECT_TIMEOUT,
            ),
            connector=aiohttp.TCPConnector(
                limit=SENDER_POOL_LIMIT,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            ),
        )
        logger.debug(f"Telegram HTTP session created (timeout={settings.telegram_timeout_seconds}s)")
    return _sender_session


async def close_all_sessions() -> None:
    global _sender_session

    session, _sender_session = _sender_session, None
    if session is not None and not session.closed:
        await session.close()
        logger.debug("Telegram HTTP session closed")
