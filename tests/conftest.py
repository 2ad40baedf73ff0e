# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from notifier.core.dispatcher import NotificationDispatcher  # noqa: E402
from notifier.core.domain import (  # noqa: E402
    DeliveryAttempt,
    DeliveryOutcome,
    DirectorRecord,
    Event,
    MasterRecord,
    OrderRecord,
)
from notifier.core.recipients import RecipientResolver  # noqa: E402

DIRECTOR_URL = "https://new.lead-schem.ru/orders/{order_id}"
MASTER_URL = "https://lead-schem.ru/orders/{order_id}"


# ============================================================================
# IN-MEMORY PORTS
# ============================================================================

class FakeRecordStore:
    def __init__(self, directors=None, masters=None, orders=None):
        self.directors: list[DirectorRecord] = list(directors or [])
        self.masters: dict[int, MasterRecord] = {m.id: m for m in masters or []}
        self.orders: dict[int, OrderRecord] = {o.id: o for o in orders or []}
        self.fail_directors = False
        self.fail_orders = False

    async def find_directors_by_city(self, city: str) -> list[DirectorRecord]:
        if self.fail_directors:
            raise RuntimeError("directors table unavailable")
        return [d for d in self.directors if city in d.cities]

    async def find_master_by_id(self, master_id: int) -> Optional[MasterRecord]:
        return self.masters.get(master_id)

    async def find_order_by_id(self, order_id: int) -> Optional[OrderRecord]:
        if self.fail_orders:
            raise RuntimeError("orders table unavailable")
        return self.orders.get(order_id)

    async def find_orders_pending_closure(self, statuses, meeting_before: datetime) -> list[OrderRecord]:
        return [
            o for o in self.orders.values()
            if o.status in statuses
            and o.master_id is not None
            and o.date_meeting is not None
            and o.date_meeting <= meeting_before
        ]

    async def find_orders_in_modern_status(self, status: str) -> list[OrderRecord]:
        return [o for o in self.orders.values() if o.status == status and o.master_id is not None]


class FakeHistoryStore:
    def __init__(self):
        self.records: list[tuple[Event, DeliveryOutcome, Optional[str]]] = []
        self.watermarks: dict[tuple[str, int, int], datetime] = {}
        self.fail_records = False
        self.fail_orders: set[int] = set()

    async def record_delivery_outcome(self, event, outcome, message) -> None:
        if self.fail_records:
            raise RuntimeError("history table unavailable")
        self.records.append((event, outcome, message))

    async def last_reminder_sent_at(self, kind, order_id, master_id) -> Optional[datetime]:
        if order_id in self.fail_orders:
            raise RuntimeError(f"watermark lookup failed for order {order_id}")
        return self.watermarks.get((kind, order_id, master_id))

    async def save_reminder_watermark(self, kind, order_id, master_id, sent_at) -> None:
        self.watermarks[(kind, order_id, master_id)] = sent_at

    async def list_history(self, *, kind=None, order_id=None, recipient_type=None,
                           success=None, limit=50, offset=0) -> dict:
        items = [
            {
                "type": event.kind_value,
                "orderId": event.order_id,
                **outcome.to_dict(),
                "message": message,
            }
            for event, outcome, message in self.records
        ]
        if kind is not None:
            items = [i for i in items if i["type"] == kind]
        if order_id is not None:
            items = [i for i in items if i["orderId"] == order_id]
        if recipient_type is not None:
            items = [i for i in items if i["recipientType"] == recipient_type]
        if success is not None:
            items = [i for i in items if i["success"] is success]
        return {"total": len(items), "limit": limit, "offset": offset, "items": items[offset:offset + limit]}

    async def stats(self, since=None) -> dict:
        outcomes = [outcome for _, outcome, _ in self.records]
        by_type: dict[str, int] = {}
        for event, _, _ in self.records:
            by_type[event.kind_value] = by_type.get(event.kind_value, 0) + 1
        return {
            "total": len(outcomes),
            "sent": sum(o.success for o in outcomes),
            "failed": sum(not o.success and not o.skipped for o in outcomes),
            "skipped": sum(o.skipped for o in outcomes),
            "byType": by_type,
        }


class FakeChannel:
    """Records sends; replies with scripted results, then with success."""

    def __init__(self, *results):
        self.results = list(results)
        self.sent: list[tuple[str, str, Optional[list]]] = []

    async def send(self, address, text, buttons=None) -> DeliveryAttempt:
        self.sent.append((address, text, buttons))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return DeliveryAttempt(success=True, attempts=1)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def moscow_directors():
    return [
        DirectorRecord(id=1, name="Иван", cities=["Москва"], tg_id="100200300"),
        DirectorRecord(id=2, name="Пётр", cities=["Москва", "Тула"], tg_id=None),
    ]


@pytest.fixture
def master():
    return MasterRecord(id=7, name="Сергей", chat_id="700800900")


@pytest.fixture
def store(moscow_directors, master):
    return FakeRecordStore(directors=moscow_directors, masters=[master])


@pytest.fixture
def history():
    return FakeHistoryStore()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def resolver(store):
    return RecipientResolver(store, director_address_field="tg_id", master_address_field="chat_id")


@pytest.fixture
def dispatcher(resolver, channel, history):
    return NotificationDispatcher(
        resolver,
        channel,
        history,
        director_order_url=DIRECTOR_URL,
        master_order_url=MASTER_URL,
    )
