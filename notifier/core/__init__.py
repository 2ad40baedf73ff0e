# notifier/core/__init__.py
"""
Notification engine: templates, recipient resolution, dispatch and reminders.

Canonical imports:
    from notifier.core import NotificationDispatcher, ReminderScheduler
    from notifier.core.domain import Event, EventKind
    from notifier.core.ports import RecordStore, HistoryStore, MessagingChannel
"""
from notifier.core.domain import (  # noqa: F401
    DeliveryOutcome,
    DispatchResult,
    DispatchStatus,
    Event,
    EventKind,
    RecipientPolicy,
)
from notifier.core.dispatcher import NotificationDispatcher  # noqa: F401
from notifier.core.recipients import RecipientResolver  # noqa: F401
from notifier.core.reminders import ReminderScheduler  # noqa: F401
from notifier.core.service import NotificationService, build_notification_service  # noqa: F401
