# notifier/core/templates.py
"""
Message templates: event kind -> (recipient policy, renderer).

Renderers are pure functions of the typed payload plus the render context
(order id, city). They never raise: missing fields render as "Не указано",
the equipment type defaults to "БТ", dates are normalised by
notifier.core.formatting.

Wording that depends on payload content goes through small decision tables
(rejection reason, modern deadline state) instead of inline string checks.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from notifier.core.domain import EventKind, RecipientPolicy
from notifier.core.errors import UnknownTemplate
from notifier.core.formatting import (
    DEFAULT_EQUIPMENT,
    PLACEHOLDER,
    format_date,
    format_datetime,
    is_blank,
    text,
)
from notifier.core.payloads import (
    CloseOrderReminderPayload,
    DateChangePayload,
    MasterAssignedPayload,
    MasterReassignedPayload,
    ModernClosingReminderPayload,
    NewOrderPayload,
    OrderAcceptedPayload,
    OrderCard,
    OrderClosedPayload,
    OrderInModernPayload,
    OrderRejectionPayload,
    Payload,
)


@dataclass(frozen=True)
class RenderContext:
    order_id: int
    city: Optional[str] = None


Renderer = Callable[[Payload, RenderContext], str]


@dataclass(frozen=True)
class TemplateSpec:
    kind: EventKind
    policy: RecipientPolicy
    render: Renderer
    payload_type: type[Payload]
    master_link: bool = False  # attach the "open order" button for masters


# ============================================================================
# DECISION TABLES
# ============================================================================

class RejectionKind(str, Enum):
    NOT_AN_ORDER = "not_an_order"
    CANCELLED = "cancelled"


NOT_AN_ORDER_REASON = "Незаказ"

_REJECTION_HEADLINES = {
    RejectionKind.NOT_AN_ORDER: "🚫 Заказ №{order_id} отмечен как незаказ",
    RejectionKind.CANCELLED: "❌ Заказ №{order_id} Отменен",
}


def classify_rejection(reason: object) -> RejectionKind:
    if isinstance(reason, str) and reason.strip().casefold() == NOT_AN_ORDER_REASON.casefold():
        return RejectionKind.NOT_AN_ORDER
    return RejectionKind.CANCELLED


class ModernDeadline(str, Enum):
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    NO_DATE = "no_date"
    UPCOMING = "upcoming"


_MODERN_DEADLINE_LINES = {
    ModernDeadline.OVERDUE: "⚠️ Просрочено на {days} дн.",
    ModernDeadline.DUE_TODAY: "⏰ Сегодня день закрытия!",
    ModernDeadline.NO_DATE: "⚠️ Нужно закрыть модерн!",
    ModernDeadline.UPCOMING: "⏰ Осталось дней: {days}",
}


def classify_modern_deadline(days_until_closing: Optional[int], has_date: bool) -> ModernDeadline:
    days = days_until_closing or 0
    if days < 0:
        return ModernDeadline.OVERDUE
    if not has_date:
        return ModernDeadline.NO_DATE
    if days == 0:
        return ModernDeadline.DUE_TODAY
    return ModernDeadline.UPCOMING


# ============================================================================
# RENDERERS
# ============================================================================

def _card_header(p: OrderCard) -> str:
    return (
        f"РК: {text(p.rk)}\n"
        f"Авито: {text(p.avito_name)}\n"
        f"Направление: {text(p.type_equipment, DEFAULT_EQUIPMENT)}"
    )


def _city_suffix(ctx: RenderContext) -> str:
    return "" if is_blank(ctx.city) else f"\n🏙 Город: {text(ctx.city)}"


def render_new_order(p: NewOrderPayload, ctx: RenderContext) -> str:
    return (
        f"🆕 Поступил новый заказ №{ctx.order_id}\n\n"
        f"{_card_header(p)}\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"📞 Телефон: {text(p.phone)}\n"
        f"📍 Адрес: {text(p.address)}\n"
        f"🗓 Дата встречи: {format_datetime(p.date_meeting)}\n"
        f"🔧 Проблема: {text(p.problem)}\n"
        f"🏙 Город: {text(ctx.city)}"
    )


def render_date_change(p: DateChangePayload, ctx: RenderContext) -> str:
    new_date = format_datetime(p.new_date)
    return (
        f"📅 Заказ №{ctx.order_id} перенесен на {new_date}\n\n"
        f"{_card_header(p)}\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"🗓 Дата встречи: {new_date}"
        f"{_city_suffix(ctx)}"
    )


def render_order_rejection(p: OrderRejectionPayload, ctx: RenderContext) -> str:
    headline = _REJECTION_HEADLINES[classify_rejection(p.reason)].format(order_id=ctx.order_id)
    return (
        f"{headline}\n\n"
        f"{_card_header(p)}\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"🗓 Дата встречи: {format_datetime(p.date_meeting)}\n"
        f"💬 Причина: {text(p.reason)}"
        f"{_city_suffix(ctx)}"
    )


def render_master_assigned(p: MasterAssignedPayload, ctx: RenderContext) -> str:
    return (
        f"👷 Вам назначен заказ №{ctx.order_id}\n\n"
        f"{_card_header(p)}\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"🗓 Дата встречи: {format_datetime(p.date_meeting)}\n\n"
        f"⚠️ Подтвердите принятие заказа!"
    )


def render_master_reassigned(p: MasterReassignedPayload, ctx: RenderContext) -> str:
    return f"🔄 Заказ №{ctx.order_id} передан другому мастеру"


def render_order_accepted(p: OrderAcceptedPayload, ctx: RenderContext) -> str:
    return (
        f"✅ Заказ №{ctx.order_id} принят\n\n"
        f"{_card_header(p)}\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"🗓 Дата встречи: {format_datetime(p.date_meeting)}"
    )


def render_order_closed(p: OrderClosedPayload, ctx: RenderContext) -> str:
    return (
        f"🔒 Заказ №{ctx.order_id} закрыт\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"📅 Дата закрытия: {format_date(p.closing_date)}\n\n"
        f"💰 Итог: {text(p.total)}\n"
        f"📉 Расход: {text(p.expense)}\n"
        f"💵 Чистыми: {text(p.net)}\n"
        f"🔄 Сдача мастера: {text(p.handover)}"
    )


def render_order_in_modern(p: OrderInModernPayload, ctx: RenderContext) -> str:
    return (
        f"🕐 Заказ №{ctx.order_id} в модерне\n\n"
        f"{_card_header(p)}\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"🗓 Дата встречи: {format_datetime(p.date_meeting)}\n"
        f"💳 Предоплата: {text(p.prepayment)}\n"
        f"📆 Дата закрытия: {format_date(p.expected_closing_date)}\n"
        f"💬 Комментарий: {text(p.comment)}"
    )


def render_close_order_reminder(p: CloseOrderReminderPayload, ctx: RenderContext) -> str:
    return (
        f"⚠️ Закройте заказ №{ctx.order_id}\n\n"
        f"{_card_header(p)}\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"🗓 Дата встречи: {format_datetime(p.date_meeting)}\n"
        f"⏰ Просрочен на {p.days_overdue or 0} дн."
    )


def render_modern_closing_reminder(p: ModernClosingReminderPayload, ctx: RenderContext) -> str:
    has_date = not is_blank(p.expected_closing_date) and p.expected_closing_date != PLACEHOLDER
    deadline = classify_modern_deadline(p.days_until_closing, has_date)
    days_line = _MODERN_DEADLINE_LINES[deadline].format(days=abs(p.days_until_closing or 0))
    return (
        f"📆 Напоминание о закрытии модерна\n\n"
        f"📋 Заказ №{ctx.order_id}\n\n"
        f"{_card_header(p)}\n\n"
        f"👤 Клиент: {text(p.client_name)}\n"
        f"🗓 Дата встречи: {format_datetime(p.date_meeting)}\n"
        f"📅 Дата закрытия: {format_date(p.expected_closing_date) if has_date else PLACEHOLDER}\n"
        f"{days_line}"
    )


# ============================================================================
# REGISTRY
# ============================================================================

TEMPLATES: dict[EventKind, TemplateSpec] = {
    spec.kind: spec
    for spec in (
        TemplateSpec(EventKind.NEW_ORDER, RecipientPolicy.DIRECTOR,
                     render_new_order, NewOrderPayload),
        TemplateSpec(EventKind.DATE_CHANGE, RecipientPolicy.BOTH,
                     render_date_change, DateChangePayload),
        TemplateSpec(EventKind.ORDER_REJECTION, RecipientPolicy.BOTH,
                     render_order_rejection, OrderRejectionPayload),
        TemplateSpec(EventKind.MASTER_ASSIGNED, RecipientPolicy.MASTER,
                     render_master_assigned, MasterAssignedPayload, master_link=True),
        TemplateSpec(EventKind.MASTER_REASSIGNED, RecipientPolicy.MASTER,
                     render_master_reassigned, MasterReassignedPayload),
        TemplateSpec(EventKind.ORDER_ACCEPTED, RecipientPolicy.MASTER,
                     render_order_accepted, OrderAcceptedPayload),
        TemplateSpec(EventKind.ORDER_CLOSED, RecipientPolicy.MASTER,
                     render_order_closed, OrderClosedPayload),
        TemplateSpec(EventKind.ORDER_IN_MODERN, RecipientPolicy.MASTER,
                     render_order_in_modern, OrderInModernPayload),
        TemplateSpec(EventKind.CLOSE_ORDER_REMINDER, RecipientPolicy.MASTER,
                     render_close_order_reminder, CloseOrderReminderPayload, master_link=True),
        TemplateSpec(EventKind.MODERN_CLOSING_REMINDER, RecipientPolicy.MASTER,
                     render_modern_closing_reminder, ModernClosingReminderPayload, master_link=True),
    )
}


def resolve(kind: EventKind | str) -> TemplateSpec:
    """
    Raises:
        UnknownTemplate: no template registered for ``kind``
    """
    try:
        return TEMPLATES[EventKind(kind)]
    except (ValueError, KeyError, TypeError):
        raise UnknownTemplate(str(getattr(kind, "value", kind))) from None


def render(spec: TemplateSpec, payload: Payload, ctx: RenderContext) -> str:
    if not isinstance(payload, spec.payload_type):
        payload = spec.payload_type.from_mapping(payload if isinstance(payload, dict) else None)
    return spec.render(payload, ctx)
