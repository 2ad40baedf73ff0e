# notifier/core/ports.py
from __future__ import annotations
from datetime import datetime
from typing import Optional, Protocol, Sequence

from notifier.core.domain import (
    DeliveryAttempt,
    DeliveryOutcome,
    DirectorRecord,
    Event,
    MasterRecord,
    OrderRecord,
)


# ============================================================================
# ASYNC PROTOCOLS (asyncpg-backed in production, in-memory fakes in tests)
# ============================================================================

class RecordStore(Protocol):
    async def find_directors_by_city(self, city: str) -> list[DirectorRecord]:
        """All directors whose city set contains ``city`` (address or not)."""
        ...

    async def find_master_by_id(self, master_id: int) -> Optional[MasterRecord]: ...

    async def find_order_by_id(self, order_id: int) -> Optional[OrderRecord]: ...

    async def find_orders_pending_closure(
        self, statuses: Sequence[str], meeting_before: datetime,
    ) -> list[OrderRecord]:
        """Orders in ``statuses`` with a master and a meeting at or before ``meeting_before``."""
        ...

    async def find_orders_in_modern_status(self, status: str) -> list[OrderRecord]:
        """Orders in ``status`` with a master assigned."""
        ...


class HistoryStore(Protocol):
    async def record_delivery_outcome(
        self, event: Event, outcome: DeliveryOutcome, message: Optional[str],
    ) -> None: ...

    async def last_reminder_sent_at(
        self, kind: str, order_id: int, master_id: int,
    ) -> Optional[datetime]: ...

    async def save_reminder_watermark(
        self, kind: str, order_id: int, master_id: int, sent_at: datetime,
    ) -> None: ...


class MessagingChannel(Protocol):
    async def send(
        self,
        address: str,
        text: str,
        buttons: Optional[list[tuple[str, str]]] = None,
    ) -> DeliveryAttempt:
        """Deliver ``text`` to ``address``. Never raises; failures are in the result."""
        ...
