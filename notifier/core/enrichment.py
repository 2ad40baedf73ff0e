# notifier/core/enrichment.py
"""
Order card enrichment.

Webhook callers often send only the order id and a couple of fields. Before
dispatch, blank payload fields (client, RK, Avito account, equipment type,
meeting date, closing figures, expected closing date) and a missing city are
taken from the order record. A failed lookup is logged and the event goes out
with what it has.
"""
from __future__ import annotations

import dataclasses
from typing import Any

from notifier.core.domain import Event, EventKind, OrderRecord
from notifier.core.payloads import PAYLOAD_TYPES, Payload, order_values, payload_for
from notifier.core.ports import RecordStore
from notifier.core.templates import resolve
from notifier.infra.logging_config import get_logger

logger = get_logger(__name__)


def payload_from_order(kind: EventKind, order: OrderRecord, **extra: Any) -> Payload:
    """Typed payload of ``kind`` built from an order record plus explicit values."""
    payload_type = PAYLOAD_TYPES[kind]
    known = {f.name for f in dataclasses.fields(payload_type)}
    values = {k: v for k, v in order_values(order).items() if k in known}
    values.update({k: v for k, v in extra.items() if k in known})
    return payload_type(**values)


class OrderEnricher:
    def __init__(self, store: RecordStore):
        self._store = store

    async def enrich(self, event: Event) -> Event:
        if not isinstance(event.kind, EventKind):
            return event

        payload = payload_for(event.kind, event.payload)
        field_names = tuple(f.name for f in dataclasses.fields(payload))
        wants_city = resolve(event.kind).policy.includes_directors and not event.city
        if not payload.missing(field_names) and not wants_city:
            return dataclasses.replace(event, payload=payload)

        try:
            order = await self._store.find_order_by_id(event.order_id)
        except Exception as exc:
            logger.error(f"Failed to fetch order data for order #{event.order_id}: {exc}")
            return dataclasses.replace(event, payload=payload)

        if order is None:
            logger.debug(f"Order #{event.order_id} not found, sending without enrichment")
            return dataclasses.replace(event, payload=payload)

        return dataclasses.replace(
            event,
            city=event.city or (order.city if wants_city else None),
            payload=payload.fill_missing(**order_values(order)),
        )
