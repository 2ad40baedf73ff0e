# notifier/infra/pg_record_store_async.py
"""
Async PostgreSQL record store (asyncpg).

Read-only access to directors, masters and orders for the dispatcher,
the enrichment step and the reminder scheduler. Every read is retried on
transient database errors.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from notifier.core.domain import DirectorRecord, MasterRecord, OrderRecord
from notifier.infra.db_resilience_async import retry_on_transient_error, safe_db_conn
from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)

_ORDER_COLUMNS = """
    id, status_order, client_name, master_id, city, rk, avito_name, type_equipment,
    phone, address, problem, date_meeting, closing_data, result, expenditure, clean,
    master_change, prepayment, date_closmod, comment, updated_at
"""


def _row_to_order(row) -> OrderRecord:
    return OrderRecord(
        id=row["id"],
        status=row["status_order"],
        client_name=row["client_name"],
        master_id=row["master_id"],
        city=row["city"],
        rk=row["rk"],
        avito_name=row["avito_name"],
        type_equipment=row["type_equipment"],
        phone=row["phone"],
        address=row["address"],
        problem=row["problem"],
        date_meeting=row["date_meeting"],
        closing_date=row["closing_data"],
        total=row["result"],
        expense=row["expenditure"],
        net=row["clean"],
        handover=row["master_change"],
        prepayment=row["prepayment"],
        expected_closing_date=row["date_closmod"],
        comment=row["comment"],
        updated_at=row["updated_at"],
    )


class AsyncPostgresRecordStore:
    @retry_on_transient_error()
    async def find_directors_by_city(self, city: str) -> list[DirectorRecord]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                """
                SELECT id, name, cities, tg_id, chat_id
                FROM directors
                WHERE $1 = ANY(cities)
                ORDER BY id
                """,
                city,
            )
        return [
            DirectorRecord(
                id=row["id"],
                name=row["name"],
                cities=list(row["cities"] or []),
                tg_id=row["tg_id"],
                chat_id=row["chat_id"],
            )
            for row in rows
        ]

    @retry_on_transient_error()
    async def find_master_by_id(self, master_id: int) -> Optional[MasterRecord]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                "SELECT id, name, tg_id, chat_id FROM masters WHERE id = $1",
                master_id,
            )
        if row is None:
            return None
        return MasterRecord(id=row["id"], name=row["name"], tg_id=row["tg_id"], chat_id=row["chat_id"])

    @retry_on_transient_error()
    async def find_order_by_id(self, order_id: int) -> Optional[OrderRecord]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = $1",
                order_id,
            )
        return _row_to_order(row) if row else None

    @retry_on_transient_error()
    async def find_orders_pending_closure(
        self, statuses: Sequence[str], meeting_before: datetime,
    ) -> list[OrderRecord]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_ORDER_COLUMNS}
                FROM orders
                WHERE status_order = ANY($1::text[])
                  AND date_meeting <= $2
                  AND master_id IS NOT NULL
                ORDER BY date_meeting
                """,
                list(statuses),
                meeting_before,
            )
        return [_row_to_order(row) for row in rows]

    @retry_on_transient_error()
    async def find_orders_in_modern_status(self, status: str) -> list[OrderRecord]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_ORDER_COLUMNS}
                FROM orders
                WHERE status_order = $1
                  AND master_id IS NOT NULL
                ORDER BY id
                """,
                status,
            )
        return [_row_to_order(row) for row in rows]
