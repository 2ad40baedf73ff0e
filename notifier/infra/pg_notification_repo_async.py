# notifier/infra/pg_notification_repo_async.py
"""
Async PostgreSQL notification history (asyncpg).

- one row per delivery outcome in ``notifications``
- reminder watermarks in ``reminder_watermarks`` keyed by (kind, order, master)
- history listing and per-type statistics for the admin endpoints

Database failures surface as HistoryPersistenceError.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from notifier.core.domain import DeliveryOutcome, Event
from notifier.core.errors import HistoryPersistenceError
from notifier.infra.db_resilience_async import safe_db_conn
from notifier.infra.logging_config import get_logger
from notifier.infra.metrics import AppMetrics

logger = get_logger(__name__)


class AsyncPostgresNotificationRepository:
    async def record_delivery_outcome(
        self, event: Event, outcome: DeliveryOutcome, message: Optional[str],
    ) -> None:
        dest = outcome.destination
        try:
            async with safe_db_conn() as conn:
                await conn.execute(
                    """
                    INSERT INTO notifications (
                        type, order_id, recipient_type, recipient_id, recipient_name,
                        address, message, success, attempts, skip_reason, error
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    """,
                    event.kind_value,
                    event.order_id,
                    outcome.recipient_type.value if outcome.recipient_type else None,
                    dest.recipient_id if dest else None,
                    dest.display_name if dest else None,
                    dest.channel_address if dest else None,
                    message,
                    outcome.success,
                    outcome.attempts,
                    outcome.skip_reason,
                    (outcome.error or "")[:1000] or None,
                )
        except Exception as exc:
            AppMetrics.database_error("record_delivery_outcome")
            logger.error(f"Failed to record notification for order {event.order_id}: {exc}", exc_info=True)
            raise HistoryPersistenceError(f"Failed to record notification: {exc}") from exc

    async def last_reminder_sent_at(
        self, kind: str, order_id: int, master_id: int,
    ) -> Optional[datetime]:
        try:
            async with safe_db_conn() as conn:
                return await conn.fetchval(
                    """
                    SELECT sent_at FROM reminder_watermarks
                    WHERE kind = $1 AND order_id = $2 AND master_id = $3
                    """,
                    kind, order_id, master_id,
                )
        except Exception as exc:
            AppMetrics.database_error("last_reminder_sent_at")
            raise HistoryPersistenceError(f"Failed to read reminder watermark: {exc}") from exc

    async def save_reminder_watermark(
        self, kind: str, order_id: int, master_id: int, sent_at: datetime,
    ) -> None:
        try:
            async with safe_db_conn() as conn:
                await conn.execute(
                    """
                    INSERT INTO reminder_watermarks (kind, order_id, master_id, sent_at)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (kind, order_id, master_id)
                    DO UPDATE SET sent_at = EXCLUDED.sent_at
                    """,
                    kind, order_id, master_id, sent_at,
                )
        except Exception as exc:
            AppMetrics.database_error("save_reminder_watermark")
            raise HistoryPersistenceError(f"Failed to save reminder watermark: {exc}") from exc

    async def list_history(
        self,
        *,
        kind: Optional[str] = None,
        order_id: Optional[int] = None,
        recipient_type: Optional[str] = None,
        success: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Newest first, with the total count for pagination."""
        clauses: list[str] = []
        args: list[Any] = []
        for column, value in (
            ("type", kind),
            ("order_id", order_id),
            ("recipient_type", recipient_type),
            ("success", success),
        ):
            if value is not None:
                args.append(value)
                clauses.append(f"{column} = ${len(args)}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        try:
            async with safe_db_conn() as conn:
                total = await conn.fetchval(f"SELECT count(*) FROM notifications {where}", *args)
                rows = await conn.fetch(
                    f"""
                    SELECT id, type, order_id, recipient_type, recipient_id, recipient_name,
                           success, attempts, skip_reason, error, message, created_at
                    FROM notifications {where}
                    ORDER BY created_at DESC, id DESC
                    LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}
                    """,
                    *args, limit, offset,
                )
        except Exception as exc:
            AppMetrics.database_error("list_history")
            raise HistoryPersistenceError(f"Failed to read notification history: {exc}") from exc

        items = []
        for row in rows:
            item = dict(row)
            item["created_at"] = row["created_at"].isoformat()
            items.append(item)
        return {"total": total, "limit": limit, "offset": offset, "items": items}

    async def stats(self, since: Optional[datetime] = None) -> dict[str, Any]:
        """Counts per type and per delivery result."""
        where, args = ("WHERE created_at >= $1", [since]) if since else ("", [])
        try:
            async with safe_db_conn() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT type,
                           count(*) FILTER (WHERE success) AS sent,
                           count(*) FILTER (WHERE NOT success AND attempts > 0) AS failed,
                           count(*) FILTER (WHERE attempts = 0) AS skipped
                    FROM notifications {where}
                    GROUP BY type
                    ORDER BY type
                    """,
                    *args,
                )
        except Exception as exc:
            AppMetrics.database_error("stats")
            raise HistoryPersistenceError(f"Failed to read notification stats: {exc}") from exc

        by_type = {
            row["type"]: {"sent": row["sent"], "failed": row["failed"], "skipped": row["skipped"]}
            for row in rows
        }
        return {
            "total": sum(sum(v.values()) for v in by_type.values()),
            "sent": sum(v["sent"] for v in by_type.values()),
            "failed": sum(v["failed"] for v in by_type.values()),
            "skipped": sum(v["skipped"] for v in by_type.values()),
            "byType": by_type,
        }
