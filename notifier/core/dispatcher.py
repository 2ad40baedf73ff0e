# notifier/core/dispatcher.py
"""
Dispatch orchestrator.

dispatch(event):
1. Look up the template; an unknown kind yields one synthetic failure outcome.
2. Directors (policy director/both, city set): render once, deliver to every
   director of the city concurrently. Directors without an address are noted
   as "unreachable" skips. One failing director never affects the others.
3. Master (policy master/both, master id set): resolve, render, deliver.
   Not found / unreachable masters are noted as zero-attempt skips.
4. Persist one history record per outcome. History errors are logged only.

A crash inside one branch becomes a failure outcome for that branch; the
other branch still runs.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from notifier.core.domain import (
    DeliveryOutcome,
    Destination,
    DispatchResult,
    DispatchStatus,
    Event,
    RecipientType,
)
from notifier.core.errors import RecipientError, UnknownTemplate
from notifier.core.payloads import payload_for
from notifier.core.ports import HistoryStore, MessagingChannel
from notifier.core.recipients import RecipientResolver
from notifier.core.templates import RenderContext, TemplateSpec, render, resolve
from notifier.infra.logging_config import LogContext, get_logger, mask_address
from notifier.infra.metrics import AppMetrics

logger = get_logger(__name__)

OPEN_ORDER_LABEL = "📋 Открыть заказ"

Buttons = Optional[list[tuple[str, str]]]


class NotificationDispatcher:
    """
    Usage:
        dispatcher = NotificationDispatcher(resolver, channel, history)
        result = await dispatcher.dispatch(Event(EventKind.NEW_ORDER, 42, city="Москва", payload=...))
    """

    def __init__(
        self,
        resolver: RecipientResolver,
        channel: MessagingChannel,
        history: Optional[HistoryStore] = None,
        *,
        director_order_url: str = "",
        master_order_url: str = "",
    ):
        self._resolver = resolver
        self._channel = channel
        self._history = history
        self._director_order_url = director_order_url
        self._master_order_url = master_order_url

    async def dispatch(self, event: Event) -> DispatchResult:
        log = LogContext(logger, order_id=event.order_id, event_kind=event.kind_value, master_id=event.master_id)

        try:
            spec = resolve(event.kind)
        except UnknownTemplate as exc:
            log.warning(f"Dispatch rejected: {exc.detail}")
            outcome = DeliveryOutcome(
                recipient_type=None,
                destination=None,
                success=False,
                error=exc.detail,
                skip_reason="unknown_template",
            )
            return DispatchResult(event=event, outcomes=[outcome], status=DispatchStatus.UNKNOWN_TEMPLATE)

        payload = payload_for(spec.kind, event.payload)
        records: list[tuple[DeliveryOutcome, Optional[str]]] = []

        with AppMetrics.track_dispatch_time(event.kind_value):
            if spec.policy.includes_directors and event.city:
                records += await self._run_branch(
                    RecipientType.DIRECTOR, self._director_branch(spec, event, payload), log,
                )
            elif spec.policy.includes_directors:
                log.debug("No city on event, director branch skipped")

            if spec.policy.includes_master and event.master_id is not None:
                records += await self._run_branch(
                    RecipientType.MASTER, self._master_branch(spec, event, payload), log,
                )

        outcomes = [outcome for outcome, _ in records]
        result = DispatchResult.from_outcomes(event, outcomes)
        await self._persist(event, records, log)

        log.info(
            f"Dispatch done: status={result.status.value}, "
            f"delivered={sum(o.success for o in outcomes)}/{len(result.attempted)}, "
            f"skipped={len(outcomes) - len(result.attempted)}"
        )
        return result

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def _run_branch(self, recipient_type: RecipientType, branch, log: LogContext):
        try:
            return await branch
        except Exception as exc:
            log.error(f"{recipient_type.value} branch failed: {exc}", exc_info=True)
            AppMetrics.notification_failed(log.context.get("event_kind", ""), recipient_type.value)
            outcome = DeliveryOutcome(
                recipient_type=recipient_type,
                destination=None,
                success=False,
                error=f"{type(exc).__name__}: {exc}",
                skip_reason="error",
            )
            return [(outcome, None)]

    async def _director_branch(self, spec: TemplateSpec, event: Event, payload):
        directors = await self._resolver.city_directors(event.city)
        if not directors:
            logger.warning(f"No directors found for city: {event.city}")
            return []

        text = render(spec, payload, RenderContext(order_id=event.order_id, city=event.city))
        buttons = self._buttons(self._director_order_url, event.order_id)

        async def notify(director: Destination):
            if not director.reachable:
                detail = f"Director {director.display_name} has no Telegram configured"
                return self._skipped(director, "unreachable", detail, spec), None
            return await self._deliver(spec, director, text, buttons), text

        # gather keeps the store's director order
        return list(await asyncio.gather(*(notify(d) for d in directors)))

    async def _master_branch(self, spec: TemplateSpec, event: Event, payload):
        try:
            destination = await self._resolver.resolve_master(event.master_id)
        except RecipientError as exc:
            logger.warning(f"Master branch skipped for order {event.order_id}: {exc.detail}")
            dest = exc.destination or Destination(RecipientType.MASTER, event.master_id, "")
            return [(self._skipped(dest, exc.skip_reason, exc.detail, spec), None)]

        text = render(spec, payload, RenderContext(order_id=event.order_id))
        buttons = self._buttons(self._master_order_url, event.order_id) if spec.master_link else None
        return [(await self._deliver(spec, destination, text, buttons), text)]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _deliver(self, spec: TemplateSpec, destination: Destination, text: str, buttons: Buttons) -> DeliveryOutcome:
        kind = spec.kind.value
        recipient_type = destination.recipient_type.value
        try:
            attempt = await self._channel.send(destination.channel_address, text, buttons)
        except Exception as exc:
            logger.error(
                f"Channel raised for {recipient_type} {destination.recipient_id}: {exc}",
                exc_info=True,
            )
            AppMetrics.notification_failed(kind, recipient_type)
            return DeliveryOutcome(
                recipient_type=destination.recipient_type,
                destination=destination,
                success=False,
                attempts=1,
                error=f"{type(exc).__name__}: {exc}",
            )

        if attempt.success:
            AppMetrics.notification_delivered(kind, recipient_type)
            logger.info(
                f"Notification {kind} sent to {recipient_type} {destination.recipient_id} "
                f"({mask_address(destination.channel_address)})"
            )
        else:
            AppMetrics.notification_failed(kind, recipient_type)
            logger.warning(
                f"Notification {kind} to {recipient_type} {destination.recipient_id} failed "
                f"after {attempt.attempts} attempt(s): {attempt.error}"
            )

        return DeliveryOutcome(
            recipient_type=destination.recipient_type,
            destination=destination,
            success=attempt.success,
            attempts=max(attempt.attempts, 1),
            error=attempt.error,
        )

    @staticmethod
    def _skipped(destination: Destination, reason: str, detail: str, spec: TemplateSpec) -> DeliveryOutcome:
        AppMetrics.recipient_skipped(spec.kind.value, reason)
        return DeliveryOutcome(
            recipient_type=destination.recipient_type,
            destination=destination,
            success=False,
            attempts=0,
            error=detail,
            skip_reason=reason,
        )

    @staticmethod
    def _buttons(url_template: str, order_id: int) -> Buttons:
        if not url_template:
            return None
        return [(OPEN_ORDER_LABEL, url_template.format(order_id=order_id))]

    async def _persist(self, event: Event, records, log: LogContext) -> None:
        if self._history is None:
            return
        for outcome, message in records:
            try:
                await self._history.record_delivery_outcome(event, outcome, message)
            except Exception as exc:
                log.warning(f"Failed to save notification history: {exc}")
                AppMetrics.database_error("record_delivery_outcome")
