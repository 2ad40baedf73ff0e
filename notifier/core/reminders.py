# notifier/core/reminders.py
"""
Reminder scheduler.

Two reconciliation passes over persisted order state:

Close-order pass (every hour, on the hour)
    Orders in "Принял" / "В пути" / "В работе" whose meeting was at least
    FIRST_REMINDER_HOURS ago. The first reminder goes out once that much time
    has passed since the meeting, later ones every REMINDER_INTERVAL_HOURS
    since the last one. "days overdue" = whole days since the meeting.

Modern-closing pass (daily at MODERN_CHECK_HOUR:MODERN_CHECK_MINUTE, display tz)
    Orders in "Модерн".
    - with an expected closing date: on that day (days_until_closing = 0)
      and every later day (negative days_until_closing), once per day;
    - without one: once MODERN_REMINDER_DAYS passed since the last update,
      then once per day.

The last send per (kind, order, master) is a watermark in the history store.
It is written only after the dispatch attempt finished, successful or not.
A failure on one order is logged and the pass moves on.

Both passes can be triggered on demand; each pass holds its own lock so a
timer tick and a manual run never work on the same orders at once.
"""
from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from notifier.core.dispatcher import NotificationDispatcher
from notifier.core.domain import Event, EventKind, OrderRecord, ReminderPassReport
from notifier.core.enrichment import payload_from_order
from notifier.core.errors import RecipientError
from notifier.core.formatting import local_date, parse_date, to_local
from notifier.core.ports import HistoryStore, RecordStore
from notifier.core.recipients import RecipientResolver
from notifier.infra.logging_config import LogContext, get_logger
from notifier.infra.metrics import AppMetrics, inc_counter

logger = get_logger(__name__)

# Tolerance for hourly tick drift
CADENCE_GRACE = timedelta(minutes=5)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return to_local(value) if value.tzinfo is None else value


# ============================================================================
# CADENCE RULES
# ============================================================================

def close_reminder_due(
    meeting: datetime,
    last_sent: Optional[datetime],
    now: datetime,
    first_reminder_hours: int,
    interval_hours: int,
) -> bool:
    meeting, now = _aware(meeting), _aware(now)
    if now - meeting < timedelta(hours=first_reminder_hours):
        return False
    # A watermark from before this meeting belongs to an earlier appointment
    if last_sent is None or _aware(last_sent) < meeting:
        return True
    return now - _aware(last_sent) >= timedelta(hours=interval_hours) - CADENCE_GRACE


def days_overdue(meeting: datetime, now: datetime) -> int:
    hours = (_aware(now) - _aware(meeting)).total_seconds() / 3600
    return max(int(hours // 24), 0)


def modern_days_until_closing(
    expected_closing: Optional[date],
    updated_at: Optional[datetime],
    today: date,
    modern_reminder_days: int,
) -> Optional[int]:
    """
    Signed days until the expected closing date when a reminder is due,
    None when nothing is due today.
    """
    if expected_closing is not None:
        if expected_closing > today:
            return None
        return -(today - expected_closing).days

    if updated_at is None:
        return None
    if (today - local_date(updated_at)).days >= modern_reminder_days:
        return 0
    return None


def seconds_until_next_hour(now: datetime) -> float:
    next_hour = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return max((next_hour - now).total_seconds(), 1.0)


def seconds_until_daily(now: datetime, hour: int, minute: int) -> float:
    """Seconds from ``now`` (display-local) to the next hour:minute."""
    local = to_local(now)
    target = local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= local:
        target += timedelta(days=1)
    return max((target - local).total_seconds(), 1.0)


# ============================================================================
# SCHEDULER
# ============================================================================

class ReminderScheduler:
    """
    Usage:
        scheduler = ReminderScheduler(store, history, dispatcher, resolver)
        await scheduler.start()          # hourly + daily background loops
        report = await scheduler.run_close_order_pass()   # on demand
        await scheduler.stop()
    """

    def __init__(
        self,
        store: RecordStore,
        history: HistoryStore,
        dispatcher: NotificationDispatcher,
        resolver: RecipientResolver,
        *,
        first_reminder_hours: int = 3,
        reminder_interval_hours: int = 3,
        modern_reminder_days: int = 3,
        pending_closure_statuses: Sequence[str] = ("Принял", "В пути", "В работе"),
        modern_status: str = "Модерн",
        modern_check_hour: int = 10,
        modern_check_minute: int = 0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._history = history
        self._dispatcher = dispatcher
        self._resolver = resolver
        self._first_hours = first_reminder_hours
        self._interval_hours = reminder_interval_hours
        self._modern_days = modern_reminder_days
        self._pending_statuses = list(pending_closure_statuses)
        self._modern_status = modern_status
        self._modern_hour = modern_check_hour
        self._modern_minute = modern_check_minute
        self._clock = clock

        self._close_lock = asyncio.Lock()
        self._modern_lock = asyncio.Lock()
        self._tasks: list[asyncio.Task] = []
        self._running = False

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def run_close_order_pass(self) -> ReminderPassReport:
        async with self._close_lock:
            now = self._clock()
            report = ReminderPassReport("close_orders", started_at=now)
            logger.info("🔍 Checking orders that need to be closed...")

            orders = await self._store.find_orders_pending_closure(
                self._pending_statuses, now - timedelta(hours=self._first_hours),
            )
            logger.info(f"Found {len(orders)} orders to check for close reminders")

            for order in orders:
                report.checked += 1
                try:
                    await self._process_close_order(order, now, report)
                except Exception as exc:
                    report.errors += 1
                    AppMetrics.reminder_pass_error("close_orders")
                    logger.error(f"Close reminder failed for order {order.id}: {exc}", exc_info=True)

            logger.info(f"Close-order pass done: {report.to_dict()}")
            return report

    async def run_modern_closing_pass(self) -> ReminderPassReport:
        async with self._modern_lock:
            now = self._clock()
            today = local_date(now)
            report = ReminderPassReport("modern", started_at=now)
            logger.info("🔍 Checking orders in modern status...")

            orders = await self._store.find_orders_in_modern_status(self._modern_status)
            logger.info(f"Found {len(orders)} orders in modern status")

            for order in orders:
                report.checked += 1
                try:
                    await self._process_modern_order(order, now, today, report)
                except Exception as exc:
                    report.errors += 1
                    AppMetrics.reminder_pass_error("modern")
                    logger.error(f"Modern reminder failed for order {order.id}: {exc}", exc_info=True)

            logger.info(f"Modern pass done: {report.to_dict()}")
            return report

    async def run_all(self) -> list[ReminderPassReport]:
        logger.info("🧪 Running reminder passes on demand")
        return [await self.run_close_order_pass(), await self.run_modern_closing_pass()]

    # ------------------------------------------------------------------
    # Per-order processing
    # ------------------------------------------------------------------

    async def _master_reachable(self, order: OrderRecord) -> bool:
        if order.master_id is None:
            return False
        try:
            await self._resolver.resolve_master(order.master_id)
        except RecipientError as exc:
            logger.debug(f"Order {order.id}: {exc.detail}")
            return False
        return True

    async def _process_close_order(self, order: OrderRecord, now: datetime, report: ReminderPassReport) -> None:
        kind = EventKind.CLOSE_ORDER_REMINDER
        if order.date_meeting is None or not await self._master_reachable(order):
            report.skipped += 1
            return

        last_sent = await self._history.last_reminder_sent_at(kind.value, order.id, order.master_id)
        if not close_reminder_due(order.date_meeting, last_sent, now, self._first_hours, self._interval_hours):
            report.skipped += 1
            return

        overdue = days_overdue(order.date_meeting, now)
        event = Event(
            kind=kind,
            order_id=order.id,
            master_id=order.master_id,
            payload=payload_from_order(kind, order, days_overdue=overdue),
        )
        await self._send_and_mark(event, now, report)

    async def _process_modern_order(
        self, order: OrderRecord, now: datetime, today: date, report: ReminderPassReport,
    ) -> None:
        kind = EventKind.MODERN_CLOSING_REMINDER
        if not await self._master_reachable(order):
            report.skipped += 1
            return

        days_until = modern_days_until_closing(
            parse_date(order.expected_closing_date), order.updated_at, today, self._modern_days,
        )
        if days_until is None:
            report.skipped += 1
            return

        last_sent = await self._history.last_reminder_sent_at(kind.value, order.id, order.master_id)
        if last_sent is not None and local_date(last_sent) == today:
            report.skipped += 1
            return

        event = Event(
            kind=kind,
            order_id=order.id,
            master_id=order.master_id,
            payload=payload_from_order(kind, order, days_until_closing=days_until),
        )
        await self._send_and_mark(event, now, report)

    async def _send_and_mark(self, event: Event, now: datetime, report: ReminderPassReport) -> None:
        log = LogContext(logger, order_id=event.order_id, event_kind=event.kind_value, master_id=event.master_id)
        result = await self._dispatcher.dispatch(event)
        await self._history.save_reminder_watermark(event.kind_value, event.order_id, event.master_id, now)

        if result.success:
            report.sent += 1
            AppMetrics.reminder_sent(event.kind_value)
            log.info(f"✅ Sent {event.kind_value} for order {event.order_id}")
        else:
            report.failed += 1
            log.warning(f"Reminder {event.kind_value} not delivered: status={result.status.value}")

    # ------------------------------------------------------------------
    # Background loops
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._running = True
        self._tasks = [
            asyncio.create_task(self._hourly_loop(), name="close_order_reminders"),
            asyncio.create_task(self._daily_loop(), name="modern_reminders"),
        ]
        for task in self._tasks:
            task.add_done_callback(self._on_task_done)
        logger.info(
            f"Reminder scheduler started: first={self._first_hours}h, interval={self._interval_hours}h, "
            f"modern_days={self._modern_days}, modern_at={self._modern_hour:02d}:{self._modern_minute:02d}"
        )

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            if not task.done():
                task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Reminder scheduler stopped")

    async def _hourly_loop(self) -> None:
        while self._running:
            await asyncio.sleep(seconds_until_next_hour(self._clock()))
            try:
                await self.run_close_order_pass()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"Error checking orders to close: {exc}", exc_info=True)
                inc_counter("reminder_loop_errors", loop="close_orders")

    async def _daily_loop(self) -> None:
        while self._running:
            await asyncio.sleep(seconds_until_daily(self._clock(), self._modern_hour, self._modern_minute))
            try:
                await self.run_modern_closing_pass()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"Error checking modern orders: {exc}", exc_info=True)
                inc_counter("reminder_loop_errors", loop="modern")

    @staticmethod
    def _on_task_done(task: asyncio.Task) -> None:
        """Log unexpected loop death."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(
                f"Reminder task {task.get_name()} died unexpectedly: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
