# notifier/infra/delivery_client.py
"""
Telegram delivery with bounded retries.

    client = TelegramDeliveryClient()
    attempt = await client.send(chat_id, text, buttons=[("📋 Открыть заказ", url)])
    if not attempt:
        log attempt.error

Retries happen only for errors classified retryable by the sender
(429, 500/502/503/504, DNS/timeout/connection). The delay starts at
``base_delay`` and doubles per retry, capped at ``max_delay``; a 429
``retry_after`` hint raises the delay up to that cap. ``send`` never raises.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from notifier.config import settings
from notifier.core.domain import DeliveryAttempt
from notifier.core.errors import DeliveryFailed
from notifier.infra.logging_config import get_logger, mask_address
from notifier.infra.metrics import inc_counter
from notifier.transport.telegram_sender import TelegramSendError, send_text_message

logger = get_logger(__name__)

SendFunc = Callable[..., Awaitable[dict]]


class TelegramDeliveryClient:
    def __init__(
        self,
        send_func: Optional[SendFunc] = None,
        *,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        self._send = send_func or send_text_message
        self._max_attempts = max(1, max_attempts if max_attempts is not None else settings.delivery_max_attempts)
        self._base_delay = base_delay if base_delay is not None else settings.delivery_base_delay
        self._max_delay = max_delay if max_delay is not None else settings.delivery_max_delay

    def backoff_delay(self, attempt: int, retry_after: Optional[int] = None) -> float:
        """Delay before retry number ``attempt`` (1-based): base, 2*base, 4*base..."""
        delay = self._base_delay * (2 ** (attempt - 1))
        if retry_after:
            delay = max(delay, float(retry_after))
        return min(delay, self._max_delay)

    async def send(
        self,
        address: str,
        text: str,
        buttons: Optional[list[tuple[str, str]]] = None,
    ) -> DeliveryAttempt:
        masked = mask_address(address)
        last_error: Optional[str] = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._send(address, text, buttons)
                if attempt > 1:
                    logger.info(f"Delivered to {masked} on attempt {attempt}")
                return DeliveryAttempt(success=True, attempts=attempt)

            except TelegramSendError as exc:
                last_error = str(exc)
                if not exc.retryable:
                    inc_counter("delivery_failed", reason="terminal")
                    return DeliveryAttempt.failed(DeliveryFailed(last_error, attempts=attempt))

                if attempt >= self._max_attempts:
                    break

                delay = self.backoff_delay(attempt, exc.retry_after)
                logger.warning(
                    f"Retryable delivery error to {masked} "
                    f"(attempt {attempt}/{self._max_attempts}): {exc}. Retrying in {delay:.1f}s"
                )
                inc_counter("delivery_retries")
                await asyncio.sleep(delay)

            except Exception as exc:
                logger.error(f"Unexpected delivery error to {masked}: {exc}", exc_info=True)
                inc_counter("delivery_failed", reason="unexpected")
                return DeliveryAttempt.failed(
                    DeliveryFailed(f"{type(exc).__name__}: {exc}", attempts=attempt)
                )

        logger.warning(f"Delivery to {masked} failed after {self._max_attempts} attempts: {last_error}")
        inc_counter("delivery_failed", reason="exhausted")
        return DeliveryAttempt.failed(DeliveryFailed(last_error or "delivery failed", attempts=self._max_attempts))
