# notifier/transport/schemas.py
"""
Webhook request bodies.

Callers send camelCase JSON (``orderId``, ``clientName``); snake_case is
accepted too. Each model turns itself into a core Event with the typed
payload of its kind. The shared webhook token may come in the body as
``token``.
"""
from __future__ import annotations

from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from notifier.core.domain import Event, EventKind
from notifier.core.payloads import payload_for


class WebhookIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    KIND: ClassVar[Optional[EventKind]] = None
    # fields that address recipients, not message content
    ROUTING_FIELDS: ClassVar[frozenset[str]] = frozenset({"order_id", "city", "master_id", "token"})

    order_id: int = Field(gt=0)
    token: Optional[str] = None

    def event_master_id(self) -> Optional[int]:
        return getattr(self, "master_id", None)

    def to_event(self) -> Event:
        data = self.model_dump(exclude=set(self.ROUTING_FIELDS) | {"old_master_id"}, exclude_none=True)
        return Event(
            kind=self.KIND,
            order_id=self.order_id,
            city=getattr(self, "city", None),
            master_id=self.event_master_id(),
            payload=payload_for(self.KIND, data),
        )


class OrderCardIn(WebhookIn):
    client_name: Optional[str] = None
    rk: Optional[str] = None
    avito_name: Optional[str] = None
    type_equipment: Optional[str] = None
    date_meeting: Optional[str] = None


class SendNotificationIn(BaseModel):
    """Generic form: any kind, open ``data`` object."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: str = Field(min_length=1, max_length=64)
    order_id: int = Field(gt=0)
    city: Optional[str] = None
    master_id: Optional[int] = None
    data: dict[str, Any] = Field(default_factory=dict)
    token: Optional[str] = None

    def to_event(self) -> Event:
        kind = EventKind.parse(self.type)
        return Event(
            kind=kind,
            order_id=self.order_id,
            city=self.city,
            master_id=self.master_id,
            payload=payload_for(kind, self.data),
        )


class NewOrderIn(OrderCardIn):
    KIND = EventKind.NEW_ORDER

    city: str = Field(min_length=1)
    phone: Optional[str] = None
    address: Optional[str] = None
    problem: Optional[str] = None


class DateChangeIn(OrderCardIn):
    KIND = EventKind.DATE_CHANGE

    city: Optional[str] = None
    master_id: Optional[int] = None
    new_date: str = Field(min_length=1)
    old_date: Optional[str] = None


class OrderRejectionIn(OrderCardIn):
    KIND = EventKind.ORDER_REJECTION

    city: Optional[str] = None
    master_id: Optional[int] = None
    phone: Optional[str] = None
    reason: Optional[str] = None


class MasterAssignedIn(OrderCardIn):
    KIND = EventKind.MASTER_ASSIGNED

    master_id: int = Field(gt=0)
    address: Optional[str] = None


class MasterReassignedIn(WebhookIn):
    KIND = EventKind.MASTER_REASSIGNED

    old_master_id: int = Field(gt=0)
    new_master_id: Optional[int] = None

    def event_master_id(self) -> Optional[int]:
        # the previous master is the one told about the handover
        return self.old_master_id


class OrderAcceptedIn(OrderCardIn):
    KIND = EventKind.ORDER_ACCEPTED

    master_id: int = Field(gt=0)


class OrderClosedIn(WebhookIn):
    KIND = EventKind.ORDER_CLOSED

    master_id: int = Field(gt=0)
    client_name: Optional[str] = None
    closing_date: Optional[str] = None
    total: Optional[str | float] = None
    expense: Optional[str | float] = None
    net: Optional[str | float] = None
    handover: Optional[str | float] = None


class OrderInModernIn(OrderCardIn):
    KIND = EventKind.ORDER_IN_MODERN

    master_id: int = Field(gt=0)
    expected_closing_date: Optional[str] = None
    prepayment: Optional[str | float] = None
    comment: Optional[str] = None


class CloseOrderReminderIn(OrderCardIn):
    KIND = EventKind.CLOSE_ORDER_REMINDER

    master_id: int = Field(gt=0)
    days_overdue: Optional[int] = None


class ModernClosingReminderIn(OrderCardIn):
    KIND = EventKind.MODERN_CLOSING_REMINDER

    master_id: int = Field(gt=0)
    expected_closing_date: Optional[str] = None
    days_until_closing: Optional[int] = None

