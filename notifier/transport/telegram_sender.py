# notifier/transport/telegram_sender.py
"""
Telegram Bot API outbound sender.

Uses the Bot API to:
- Send text messages (optionally with one row of inline URL buttons)
- Check the bot identity at startup (getMe)

Error classification (TelegramSendError.retryable):
- Rate limiting (429)                → retryable  (backoff then retry)
- Server errors 500/502/503/504      → retryable  (transient)
- DNS / timeout / connection reset   → retryable  (transient)
- Token invalid (401), bot blocked (403), bad request (400),
  chat not found, any other status   → NOT retryable

HTTP session lifecycle:
- Uses the shared sender session from notifier.infra.http_client.
- Call close_all_sessions() during application shutdown.
"""
from __future__ import annotations

import asyncio

import aiohttp

from notifier.config import settings
from notifier.infra.http_client import get_sender_session
from notifier.infra.logging_config import get_logger, mask_address
from notifier.infra.metrics import inc_counter

logger = get_logger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _bot_url(method: str, token: str | None = None) -> str:
    """Build Telegram Bot API URL."""
    bot_token = token or settings.telegram_bot_token
    return f"{settings.telegram_api_url.rstrip('/')}/bot{bot_token}/{method}"


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES


def build_inline_keyboard(buttons: list[tuple[str, str]]) -> dict:
    """One row of URL buttons: [(label, url), ...] -> reply_markup dict."""
    return {
        "inline_keyboard": [
            [{"text": label, "url": url} for label, url in buttons]
        ]
    }


# ---------------------------------------------------------------------------
# Error type
# ---------------------------------------------------------------------------

class TelegramSendError(Exception):
    """Error sending message via Telegram Bot API.

    Attributes:
        status:     HTTP status code (0 for connection-level errors).
        error_code: Telegram-specific error code from the response body.
        retryable:  Whether the caller should schedule a retry.
        retry_after: Seconds Telegram asked us to wait (429 only).
    """

    def __init__(
        self,
        status: int,
        error_code: int | None,
        message: str,
        *,
        retryable: bool = False,
        retry_after: int | None = None,
    ):
        self.status = status
        self.error_code = error_code
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(f"Telegram API error {status} (code={error_code}): {message}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def send_text_message(
    chat_id: str,
    text: str,
    buttons: list[tuple[str, str]] | None = None,
    token: str | None = None,
) -> dict:
    """
    Send a text message via Telegram Bot API.

    Args:
        chat_id: Telegram chat ID (numeric string)
        text: Message text body
        buttons: Optional single row of (label, url) inline buttons
        token: Bot token override (defaults to settings.telegram_bot_token)

    Returns:
        Telegram API response dict

    Raises:
        TelegramSendError: On API errors (check .retryable before scheduling retry)
    """
    if not (token or settings.telegram_bot_token):
        raise TelegramSendError(0, None, "bot token not configured", retryable=False)

    url = _bot_url("sendMessage", token)
    # plain text, no parse_mode
    payload: dict = {
        "chat_id": chat_id,
        "text": text,
    }
    if buttons:
        payload["reply_markup"] = build_inline_keyboard(buttons)

    return await _send_request(url, payload, chat_id)


async def get_me(token: str | None = None) -> dict | None:
    """Return the bot's own user object, or None if the token is unusable."""
    if not (token or settings.telegram_bot_token):
        return None

    url = _bot_url("getMe", token)
    try:
        session = get_sender_session()
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=10)) as resp:
            data = await _safe_response_json(resp)
            if resp.status == 200 and data and data.get("ok"):
                return data.get("result")
            logger.warning(f"Telegram getMe failed: status={resp.status}")
            return None
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning(f"Telegram getMe error: {type(exc).__name__}: {exc}")
        return None


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------

async def _safe_response_json(resp: aiohttp.ClientResponse) -> dict | None:
    """Parse JSON from response, returning None if body is not valid JSON."""
    try:
        return await resp.json(content_type=None)
    except Exception:
        logger.warning(f"Telegram API returned non-JSON body: status={resp.status}")
        return None


async def _send_request(url: str, payload: dict, chat_id: str) -> dict:
    """
    Execute a Telegram Bot API request with error classification.
    """
    masked = mask_address(chat_id)
    try:
        session = get_sender_session()
        async with session.post(url, json=payload) as resp:
            body = await _safe_response_json(resp)

            if resp.status == 200 and body and body.get("ok"):
                result = body.get("result", {})
                msg_id = result.get("message_id", "unknown") if isinstance(result, dict) else "ok"
                logger.info(f"Telegram message sent: to={masked}, msg_id={msg_id}")
                inc_counter("telegram_outbound_sent")
                return body

            # --- Error path ------------------------------------------------
            error_desc = (body or {}).get("description", "Unknown error")
            error_code = (body or {}).get("error_code")

            if resp.status == 429:
                retry_after = (body or {}).get("parameters", {}).get("retry_after")
                logger.warning(f"Telegram API rate limit: to={masked}, retry_after={retry_after}s")
                inc_counter("telegram_outbound_rate_limited")
                raise TelegramSendError(
                    resp.status, error_code, error_desc,
                    retryable=True, retry_after=retry_after,
                )

            if is_retryable_status(resp.status):
                logger.warning(f"Telegram API server error: status={resp.status}, msg={error_desc}")
                inc_counter("telegram_outbound_server_error")
                raise TelegramSendError(
                    resp.status, error_code, error_desc, retryable=True,
                )

            # 401 token invalid, 403 bot blocked, 400 chat not found / bad markup, ...
            logger.warning(
                f"Telegram API rejected message: to={masked}, status={resp.status}, "
                f"code={error_code}, msg={error_desc}"
            )
            inc_counter("telegram_outbound_rejected", status=resp.status)
            raise TelegramSendError(
                resp.status, error_code, error_desc, retryable=False,
            )

    except TelegramSendError:
        raise
    except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as exc:
        # DNS failures, connection resets, server disconnects and timeouts
        logger.warning(f"Telegram API connection error: {type(exc).__name__}: {exc}")
        inc_counter("telegram_outbound_connection_error")
        raise TelegramSendError(0, None, f"{type(exc).__name__}: {exc}", retryable=True)
    except aiohttp.ClientError as exc:
        logger.error(f"Telegram API client error: {exc}", exc_info=True)
        inc_counter("telegram_outbound_client_error")
        raise TelegramSendError(0, None, str(exc), retryable=False)
