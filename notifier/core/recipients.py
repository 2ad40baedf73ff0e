# notifier/core/recipients.py
"""
Recipient resolution: city -> directors, master id -> master.

Which record field holds the Telegram chat id differs between deployments
(``tg_id`` or ``chat_id``); it is passed in per recipient type.
"""
from __future__ import annotations

from notifier.core.domain import Destination, RecipientType, record_address
from notifier.core.errors import RecipientNotFound, RecipientUnreachable
from notifier.core.ports import RecordStore
from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)


class RecipientResolver:
    def __init__(
        self,
        store: RecordStore,
        *,
        director_address_field: str = "tg_id",
        master_address_field: str = "chat_id",
    ):
        self._store = store
        self._director_field = director_address_field
        self._master_field = master_address_field

    async def city_directors(self, city: str | None) -> list[Destination]:
        """Every director of ``city``, reachable or not."""
        if not city or not city.strip():
            return []

        records = await self._store.find_directors_by_city(city.strip())
        return [
            Destination(
                recipient_type=RecipientType.DIRECTOR,
                recipient_id=record.id,
                display_name=record.name,
                channel_address=record_address(record, self._director_field),
            )
            for record in records
        ]

    async def resolve_directors(self, city: str | None) -> list[Destination]:
        """Directors of ``city`` that have a channel address."""
        return [d for d in await self.city_directors(city) if d.reachable]

    async def resolve_master(self, master_id: int) -> Destination:
        """
        Raises:
            RecipientNotFound: no master with this id
            RecipientUnreachable: master exists but has no channel address
        """
        record = await self._store.find_master_by_id(master_id)
        if record is None:
            raise RecipientNotFound(
                f"Master with ID {master_id} not found",
                destination=Destination(RecipientType.MASTER, master_id, ""),
            )

        destination = Destination(
            recipient_type=RecipientType.MASTER,
            recipient_id=record.id,
            display_name=record.name,
            channel_address=record_address(record, self._master_field),
        )
        if not destination.reachable:
            raise RecipientUnreachable(
                f"Master {record.name} has no Telegram configured",
                destination=destination,
            )
        return destination
