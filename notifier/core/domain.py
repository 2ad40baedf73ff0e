# notifier/core/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from notifier.core.errors import DeliveryFailed


# ============================================================================
# EVENT KINDS AND RECIPIENT POLICY
# ============================================================================

class EventKind(str, Enum):
    NEW_ORDER = "new_order"
    DATE_CHANGE = "date_change"
    ORDER_REJECTION = "order_rejection"
    MASTER_ASSIGNED = "master_assigned"
    MASTER_REASSIGNED = "master_reassigned"
    ORDER_ACCEPTED = "order_accepted"
    ORDER_CLOSED = "order_closed"
    ORDER_IN_MODERN = "order_in_modern"
    CLOSE_ORDER_REMINDER = "close_order_reminder"
    MODERN_CLOSING_REMINDER = "modern_closing_reminder"

    @classmethod
    def parse(cls, value: Any) -> "EventKind | str":
        """Known kinds become enum members; anything else stays a raw string."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return str(value)


class RecipientType(str, Enum):
    DIRECTOR = "director"
    MASTER = "master"


class RecipientPolicy(str, Enum):
    DIRECTOR = "director"
    MASTER = "master"
    BOTH = "both"

    @property
    def includes_directors(self) -> bool:
        return self in (RecipientPolicy.DIRECTOR, RecipientPolicy.BOTH)

    @property
    def includes_master(self) -> bool:
        return self in (RecipientPolicy.MASTER, RecipientPolicy.BOTH)


# ============================================================================
# EVENT
# ============================================================================

@dataclass(frozen=True)
class Event:
    """
    One order-lifecycle event to notify about.

    ``payload`` is the typed payload of the kind (see notifier.core.payloads).
    A plain mapping is accepted too and converted by the dispatcher once the
    template is known.
    """
    kind: EventKind | str
    order_id: int
    city: Optional[str] = None
    master_id: Optional[int] = None
    payload: Any = None

    @property
    def kind_value(self) -> str:
        return self.kind.value if isinstance(self.kind, EventKind) else str(self.kind)


# ============================================================================
# RECORDS (read from the record store)
# ============================================================================

@dataclass
class DirectorRecord:
    id: int
    name: str
    cities: list[str] = field(default_factory=list)
    tg_id: Optional[str] = None
    chat_id: Optional[str] = None


@dataclass
class MasterRecord:
    id: int
    name: str
    tg_id: Optional[str] = None
    chat_id: Optional[str] = None


@dataclass
class OrderRecord:
    id: int
    status: str
    client_name: Optional[str] = None
    master_id: Optional[int] = None
    city: Optional[str] = None
    rk: Optional[str] = None
    avito_name: Optional[str] = None
    type_equipment: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    problem: Optional[str] = None
    date_meeting: Optional[datetime] = None
    closing_date: Optional[datetime] = None
    total: Any = None
    expense: Any = None
    net: Any = None
    handover: Any = None
    prepayment: Any = None
    expected_closing_date: Optional[datetime] = None
    comment: Optional[str] = None
    updated_at: Optional[datetime] = None


def record_address(record: Any, address_field: str) -> Optional[str]:
    """Channel address of a director/master record under the configured field."""
    value = getattr(record, address_field, None)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ============================================================================
# DELIVERY
# ============================================================================

@dataclass(frozen=True)
class Destination:
    recipient_type: RecipientType
    recipient_id: int
    display_name: str
    channel_address: Optional[str] = None

    @property
    def reachable(self) -> bool:
        return bool(self.channel_address)


@dataclass
class DeliveryAttempt:
    """Result of one MessagingChannel.send call (all attempts included)."""
    success: bool
    attempts: int
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def failed(cls, failure: DeliveryFailed) -> "DeliveryAttempt":
        return cls(success=False, attempts=failure.attempts, error=failure.detail)


@dataclass
class DeliveryOutcome:
    """
    One per destination the dispatcher considered.

    ``attempts == 0`` marks a skipped destination; ``skip_reason`` says why
    (``unreachable``, ``not_found``, ``unknown_template``, ``error``).
    """
    recipient_type: Optional[RecipientType]
    destination: Optional[Destination]
    success: bool
    attempts: int = 0
    error: Optional[str] = None
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.attempts == 0

    @property
    def crashed(self) -> bool:
        return self.skip_reason == "error"

    def to_dict(self) -> dict:
        dest = self.destination
        return {
            "recipientType": self.recipient_type.value if self.recipient_type else None,
            "recipientId": dest.recipient_id if dest else None,
            "recipientName": dest.display_name if dest else None,
            "success": self.success,
            "attempts": self.attempts,
            "error": self.error,
            "skipReason": self.skip_reason,
        }


class DispatchStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    NO_RECIPIENTS = "no_recipients"
    UNKNOWN_TEMPLATE = "unknown_template"


@dataclass
class DispatchResult:
    event: Event
    outcomes: list[DeliveryOutcome]
    status: DispatchStatus

    @property
    def success(self) -> bool:
        return any(o.success for o in self.outcomes)

    @property
    def attempted(self) -> list[DeliveryOutcome]:
        return [o for o in self.outcomes if not o.skipped]

    @classmethod
    def from_outcomes(cls, event: Event, outcomes: list[DeliveryOutcome]) -> "DispatchResult":
        if any(o.success for o in outcomes):
            status = DispatchStatus.SENT
        elif any(not o.skipped or o.crashed for o in outcomes):
            # a branch that raised is a failure, not a missing recipient
            status = DispatchStatus.FAILED
        else:
            status = DispatchStatus.NO_RECIPIENTS
        return cls(event=event, outcomes=outcomes, status=status)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "status": self.status.value,
            "type": self.event.kind_value,
            "orderId": self.event.order_id,
            "data": [o.to_dict() for o in self.outcomes],
        }


# ============================================================================
# REMINDERS
# ============================================================================

@dataclass
class ReminderPassReport:
    pass_name: str
    checked: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0
    started_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "pass": self.pass_name,
            "checked": self.checked,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def mapping_get(data: Mapping[str, Any], *keys: str) -> Any:
    """First present, non-None value among the given keys."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None
