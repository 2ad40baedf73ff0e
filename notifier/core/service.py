# notifier/core/service.py
"""
Application service wiring the engine together.

The HTTP layer talks only to ``NotificationService``: webhooks go through
``notify`` (enrichment, then dispatch), admin endpoints use ``history`` and
``scheduler``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from notifier.core.dispatcher import NotificationDispatcher
from notifier.core.domain import DispatchResult, Event
from notifier.core.enrichment import OrderEnricher
from notifier.core.ports import HistoryStore, MessagingChannel, RecordStore
from notifier.core.recipients import RecipientResolver
from notifier.core.reminders import ReminderScheduler


@dataclass
class NotificationService:
    dispatcher: NotificationDispatcher
    enricher: OrderEnricher
    scheduler: ReminderScheduler
    history: Any

    async def notify(self, event: Event) -> DispatchResult:
        return await self.dispatcher.dispatch(await self.enricher.enrich(event))


def build_notification_service(
    store: RecordStore,
    history: HistoryStore,
    channel: MessagingChannel,
    config,
    **scheduler_kwargs,
) -> NotificationService:
    """Build the engine from ports and a Settings-like ``config``."""
    resolver = RecipientResolver(
        store,
        director_address_field=config.director_address_field,
        master_address_field=config.master_address_field,
    )
    dispatcher = NotificationDispatcher(
        resolver,
        channel,
        history,
        director_order_url=config.director_order_url,
        master_order_url=config.master_order_url,
    )
    scheduler = ReminderScheduler(
        store,
        history,
        dispatcher,
        resolver,
        first_reminder_hours=config.first_reminder_hours,
        reminder_interval_hours=config.reminder_interval_hours,
        modern_reminder_days=config.modern_reminder_days,
        pending_closure_statuses=config.pending_closure_statuses,
        modern_status=config.modern_status,
        modern_check_hour=config.modern_check_hour,
        modern_check_minute=config.modern_check_minute,
        **scheduler_kwargs,
    )
    return NotificationService(
        dispatcher=dispatcher,
        enricher=OrderEnricher(store),
        scheduler=scheduler,
        history=history,
    )
