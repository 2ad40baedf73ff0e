# tests/test_security.py
"""Tests for token checks and webhook request schemas."""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from notifier.core.domain import EventKind
from notifier.core.payloads import MasterAssignedPayload, OrderClosedPayload
from notifier.transport.schemas import (
    MasterAssignedIn,
    MasterReassignedIn,
    OrderClosedIn,
    SendNotificationIn,
)
from notifier.transport.security import (
    sanitize_error_message,
    token_matches,
    validate_token_strength,
    verify_webhook_token,
)

STRONG_TOKEN = "Zk3q9XvB7mN2pL8rT4wY6uH1jF5cD0sA"


def _request(headers=None) -> MagicMock:
    request = MagicMock()
    request.headers = headers or {}
    request.url.path = "/notifications/new-order"
    return request


# ============================================================================
# Tokens
# ============================================================================

class TestTokenStrength:
    def test_strong_token(self):
        assert validate_token_strength(STRONG_TOKEN) == []

    def test_short_token(self):
        warnings = validate_token_strength("abc", "WEBHOOK_TOKEN")
        assert any("too short" in w for w in warnings)

    def test_weak_pattern(self):
        warnings = validate_token_strength("my-secret-" + STRONG_TOKEN)
        assert any("weak pattern 'secret'" in w for w in warnings)


class TestTokenMatches:
    def test_match(self):
        assert token_matches(STRONG_TOKEN, STRONG_TOKEN) is True

    def test_mismatch(self):
        assert token_matches("other", STRONG_TOKEN) is False

    @pytest.mark.parametrize("provided,expected", [(None, STRONG_TOKEN), (STRONG_TOKEN, None), ("", "")])
    def test_missing(self, provided, expected):
        assert token_matches(provided, expected) is False


class TestVerifyWebhookToken:
    @patch("notifier.transport.security.settings")
    def test_header_token(self, mock_settings):
        mock_settings.webhook_token = STRONG_TOKEN
        verify_webhook_token(_request({"X-Webhook-Token": STRONG_TOKEN}), None)

    @patch("notifier.transport.security.settings")
    def test_body_token(self, mock_settings):
        mock_settings.webhook_token = STRONG_TOKEN
        verify_webhook_token(_request(), STRONG_TOKEN)

    @patch("notifier.transport.security.settings")
    def test_invalid_token(self, mock_settings):
        mock_settings.webhook_token = STRONG_TOKEN

        with pytest.raises(HTTPException) as exc_info:
            verify_webhook_token(_request({"X-Webhook-Token": "wrong"}), "also-wrong")
        assert exc_info.value.status_code == 401

    @patch("notifier.transport.security.settings")
    def test_unconfigured_allowed_in_dev(self, mock_settings):
        mock_settings.webhook_token = None
        mock_settings.is_production = False
        verify_webhook_token(_request(), None)

    @patch("notifier.transport.security.settings")
    def test_unconfigured_rejected_in_prod(self, mock_settings):
        mock_settings.webhook_token = None
        mock_settings.is_production = True

        with pytest.raises(HTTPException) as exc_info:
            verify_webhook_token(_request(), None)
        assert exc_info.value.status_code == 503


class TestSanitizeErrorMessage:
    def test_dev_shows_details(self):
        assert sanitize_error_message(ValueError("bad orderId"), False) == "bad orderId"

    def test_prod_generic(self):
        assert sanitize_error_message(ValueError("bad orderId"), True) == "Invalid input"
        assert sanitize_error_message(ZeroDivisionError(), True) == "An error occurred"


# ============================================================================
# Request schemas
# ============================================================================

class TestSchemas:
    def test_camel_case_body(self):
        body = MasterAssignedIn.model_validate({
            "orderId": 42, "masterId": 7, "clientName": "Анна", "token": STRONG_TOKEN,
        })
        event = body.to_event()

        assert event.kind is EventKind.MASTER_ASSIGNED
        assert event.master_id == 7
        assert isinstance(event.payload, MasterAssignedPayload)
        assert event.payload.client_name == "Анна"

    def test_snake_case_body(self):
        body = MasterAssignedIn.model_validate({"order_id": 42, "master_id": 7})
        assert body.to_event().order_id == 42

    def test_order_id_must_be_positive(self):
        with pytest.raises(ValidationError):
            MasterAssignedIn.model_validate({"orderId": 0, "masterId": 7})

    def test_reassigned_targets_old_master(self):
        event = MasterReassignedIn.model_validate({"orderId": 42, "oldMasterId": 7, "newMasterId": 8}).to_event()
        assert event.master_id == 7

    def test_order_closed_amounts(self):
        event = OrderClosedIn.model_validate({
            "orderId": 42, "masterId": 7, "total": 5000, "net": "4000",
        }).to_event()

        assert isinstance(event.payload, OrderClosedPayload)
        assert event.payload.total == 5000
        assert event.payload.net == "4000"

    def test_generic_unknown_type_kept_raw(self):
        event = SendNotificationIn.model_validate({"type": "order_teleported", "orderId": 42}).to_event()
        assert event.kind == "order_teleported"
        assert event.payload == {}

    def test_generic_known_type(self):
        event = SendNotificationIn.model_validate({
            "type": "order_closed", "orderId": 42, "masterId": 7, "data": {"result": 100},
        }).to_event()

        assert event.kind is EventKind.ORDER_CLOSED
        assert event.payload.total == 100
