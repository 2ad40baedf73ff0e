# notifier/core/payloads.py
"""
Typed render payloads, one dataclass per event kind.

Incoming webhooks carry an open JSON object; it is converted here, once, into
the payload type of the event kind. Conversion never raises: unknown keys are
ignored, camelCase and snake_case keys are both accepted, and integer fields
that do not parse become None.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional

from notifier.core.domain import EventKind, OrderRecord


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class Payload:
    # Extra lookup keys per field, on top of the field name and its camelCase form
    ALIASES: ClassVar[dict[str, tuple[str, ...]]] = {}
    INT_FIELDS: ClassVar[frozenset[str]] = frozenset()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None):
        data = data or {}
        values: dict[str, Any] = {}
        for f in dataclasses.fields(cls):
            keys = (f.name, _camel(f.name)) + cls.ALIASES.get(f.name, ())
            value = None
            for key in keys:
                if data.get(key) is not None:
                    value = data[key]
                    break
            if f.name in cls.INT_FIELDS:
                value = _to_int(value)
            values[f.name] = value
        return cls(**values)

    def missing(self, names: tuple[str, ...]) -> list[str]:
        return [name for name in names if _is_blank(getattr(self, name, None))]

    def fill_missing(self, **candidates: Any):
        """Copy with blank fields taken from ``candidates`` (non-blank values only)."""
        known = {f.name for f in dataclasses.fields(self)}
        updates = {
            name: value
            for name, value in candidates.items()
            if name in known and not _is_blank(value) and _is_blank(getattr(self, name))
        }
        return dataclasses.replace(self, **updates) if updates else self


@dataclass(frozen=True)
class OrderCard(Payload):
    """Fields of the order card shown at the top of most messages."""
    client_name: Optional[str] = None
    rk: Optional[str] = None
    avito_name: Optional[str] = None
    type_equipment: Optional[str] = None
    date_meeting: Any = None

    CARD_FIELDS: ClassVar[tuple[str, ...]] = (
        "client_name", "rk", "avito_name", "type_equipment", "date_meeting",
    )


@dataclass(frozen=True)
class NewOrderPayload(OrderCard):
    phone: Optional[str] = None
    address: Optional[str] = None
    problem: Optional[str] = None


@dataclass(frozen=True)
class DateChangePayload(OrderCard):
    new_date: Any = None
    old_date: Any = None


@dataclass(frozen=True)
class OrderRejectionPayload(OrderCard):
    phone: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class MasterAssignedPayload(OrderCard):
    address: Optional[str] = None


@dataclass(frozen=True)
class MasterReassignedPayload(Payload):
    pass


@dataclass(frozen=True)
class OrderAcceptedPayload(OrderCard):
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class OrderClosedPayload(Payload):
    client_name: Optional[str] = None
    closing_date: Any = None
    total: Any = None
    expense: Any = None
    net: Any = None
    handover: Any = None

    ALIASES = {
        "closing_date": ("closingData",),
        "total": ("result",),
        "expense": ("expenditure",),
        "net": ("clean",),
        "handover": ("masterChange",),
    }


@dataclass(frozen=True)
class OrderInModernPayload(OrderCard):
    prepayment: Any = None
    expected_closing_date: Any = None
    comment: Optional[str] = None

    ALIASES = {"expected_closing_date": ("dateClosmod",)}


@dataclass(frozen=True)
class CloseOrderReminderPayload(OrderCard):
    days_overdue: Optional[int] = None

    INT_FIELDS = frozenset({"days_overdue"})


@dataclass(frozen=True)
class ModernClosingReminderPayload(OrderCard):
    expected_closing_date: Any = None
    days_until_closing: Optional[int] = None

    ALIASES = {"expected_closing_date": ("dateClosmod",)}
    INT_FIELDS = frozenset({"days_until_closing"})


PAYLOAD_TYPES: dict[EventKind, type[Payload]] = {
    EventKind.NEW_ORDER: NewOrderPayload,
    EventKind.DATE_CHANGE: DateChangePayload,
    EventKind.ORDER_REJECTION: OrderRejectionPayload,
    EventKind.MASTER_ASSIGNED: MasterAssignedPayload,
    EventKind.MASTER_REASSIGNED: MasterReassignedPayload,
    EventKind.ORDER_ACCEPTED: OrderAcceptedPayload,
    EventKind.ORDER_CLOSED: OrderClosedPayload,
    EventKind.ORDER_IN_MODERN: OrderInModernPayload,
    EventKind.CLOSE_ORDER_REMINDER: CloseOrderReminderPayload,
    EventKind.MODERN_CLOSING_REMINDER: ModernClosingReminderPayload,
}


def payload_for(kind: EventKind | str, data: Mapping[str, Any] | Payload | None) -> Payload | Mapping[str, Any] | None:
    """Convert a boundary mapping into the typed payload of ``kind``.

    Typed payloads pass through; unknown kinds keep the raw mapping.
    """
    if isinstance(data, Payload):
        return data
    payload_type = PAYLOAD_TYPES.get(kind) if isinstance(kind, EventKind) else None
    if payload_type is None:
        return dict(data or {})
    return payload_type.from_mapping(data)


def order_values(order: OrderRecord) -> dict[str, Any]:
    """Order record fields under payload field names."""
    return {
        "client_name": order.client_name,
        "rk": order.rk,
        "avito_name": order.avito_name,
        "type_equipment": order.type_equipment,
        "date_meeting": order.date_meeting,
        "phone": order.phone,
        "address": order.address,
        "problem": order.problem,
        "closing_date": order.closing_date,
        "total": order.total,
        "expense": order.expense,
        "net": order.net,
        "handover": order.handover,
        "prepayment": order.prepayment,
        "expected_closing_date": order.expected_closing_date,
        "comment": order.comment,
    }
