# tests/test_enrichment.py
"""Tests for order-card enrichment and the application service."""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from notifier.config import settings
from notifier.core.domain import DispatchStatus, Event, EventKind, OrderRecord
from notifier.core.enrichment import OrderEnricher, payload_from_order
from notifier.core.payloads import (
    CloseOrderReminderPayload,
    MasterReassignedPayload,
    NewOrderPayload,
    OrderClosedPayload,
)
from notifier.core.service import build_notification_service


@pytest.fixture
def order():
    return OrderRecord(
        id=42,
        status="Ожидает",
        client_name="Анна",
        master_id=7,
        city="Москва",
        rk="Яндекс",
        avito_name="avito_msk_1",
        type_equipment="КП",
        phone="+79001234567",
        date_meeting=datetime(2026, 3, 15, 11, 30, tzinfo=timezone.utc),
        total=5000,
    )


@pytest.fixture
def order_store(store, order):
    store.orders[order.id] = order
    return store


class TestPayloadFromOrder:
    def test_takes_known_fields_and_extras(self, order):
        payload = payload_from_order(EventKind.CLOSE_ORDER_REMINDER, order, days_overdue=2, unknown="x")

        assert isinstance(payload, CloseOrderReminderPayload)
        assert payload.client_name == "Анна"
        assert payload.days_overdue == 2

    def test_closing_figures(self, order):
        payload = payload_from_order(EventKind.ORDER_CLOSED, order)
        assert isinstance(payload, OrderClosedPayload)
        assert payload.total == 5000


class TestOrderEnricher:
    @pytest.mark.asyncio
    async def test_fills_blank_fields_and_city(self, order_store):
        event = Event(kind=EventKind.NEW_ORDER, order_id=42, payload={"phone": "+70000000000"})

        enriched = await OrderEnricher(order_store).enrich(event)

        assert enriched.city == "Москва"
        assert isinstance(enriched.payload, NewOrderPayload)
        assert enriched.payload.client_name == "Анна"
        assert enriched.payload.rk == "Яндекс"
        assert enriched.payload.phone == "+70000000000"

    @pytest.mark.asyncio
    async def test_explicit_city_kept(self, order_store):
        event = Event(kind=EventKind.NEW_ORDER, order_id=42, city="Тула")
        assert (await OrderEnricher(order_store).enrich(event)).city == "Тула"

    @pytest.mark.asyncio
    async def test_master_only_kind_gets_no_city(self, order_store):
        event = Event(kind=EventKind.ORDER_ACCEPTED, order_id=42, master_id=7)

        enriched = await OrderEnricher(order_store).enrich(event)

        assert enriched.city is None
        assert enriched.payload.client_name == "Анна"

    @pytest.mark.asyncio
    async def test_complete_payload_skips_lookup(self, store):
        store.find_order_by_id = AsyncMock()
        event = Event(kind=EventKind.MASTER_REASSIGNED, order_id=42, master_id=7)

        enriched = await OrderEnricher(store).enrich(event)

        store.find_order_by_id.assert_not_awaited()
        assert isinstance(enriched.payload, MasterReassignedPayload)

    @pytest.mark.asyncio
    async def test_lookup_failure_keeps_event(self, order_store):
        order_store.fail_orders = True
        event = Event(kind=EventKind.NEW_ORDER, order_id=42, city="Москва", payload={"clientName": "Борис"})

        enriched = await OrderEnricher(order_store).enrich(event)

        assert enriched.payload.client_name == "Борис"
        assert enriched.payload.rk is None

    @pytest.mark.asyncio
    async def test_missing_order(self, store):
        event = Event(kind=EventKind.ORDER_CLOSED, order_id=404, master_id=7)

        enriched = await OrderEnricher(store).enrich(event)

        assert isinstance(enriched.payload, OrderClosedPayload)
        assert enriched.payload.client_name is None

    @pytest.mark.asyncio
    async def test_unknown_kind_untouched(self, store):
        event = Event(kind="order_teleported", order_id=42, payload={"a": 1})
        assert await OrderEnricher(store).enrich(event) is event


class TestNotificationService:
    @pytest.mark.asyncio
    async def test_notify_enriches_then_dispatches(self, order_store, history, channel):
        service = build_notification_service(order_store, history, channel, settings)

        result = await service.notify(Event(kind=EventKind.NEW_ORDER, order_id=42))

        assert result.status is DispatchStatus.SENT
        assert result.event.city == "Москва"
        _, text, buttons = channel.sent[0]
        assert "👤 Клиент: Анна" in text
        assert buttons[0][1] == settings.director_order_url.format(order_id=42)
