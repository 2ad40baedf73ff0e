# notifier/core/errors.py
"""
Typed errors of the notification engine.

Each error carries an HTTP status code. The transport layer converts
``NotifierError`` subtypes to JSON error bodies without embedding business
logic in route handlers. Inside the engine only ``UnknownTemplate`` ends a
dispatch; recipient errors become skipped outcomes and delivery/history
errors are reported or logged per recipient.
"""
from __future__ import annotations


class NotifierError(Exception):
    """Base class for all notifier errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class UnknownTemplate(NotifierError):
    """No template is registered for the event kind (400)."""

    status_code = 400

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f'Template for type "{kind}" not found')


class RecipientError(NotifierError):
    """A recipient branch cannot be delivered to."""

    status_code = 404
    skip_reason: str = "unavailable"

    def __init__(self, detail: str, destination=None):
        self.destination = destination
        super().__init__(detail)


class RecipientNotFound(RecipientError):
    """No record exists for the recipient id."""

    skip_reason = "not_found"


class RecipientUnreachable(RecipientError):
    """The record exists but has no channel address configured."""

    status_code = 422
    skip_reason = "unreachable"


class DeliveryFailed(NotifierError):
    """Delivery to one destination failed after all attempts.

    Never raised across recipients: the channel client turns it into a failed
    ``DeliveryAttempt`` whose ``error`` is the detail.
    """

    status_code = 502

    def __init__(self, detail: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(detail)


class HistoryPersistenceError(NotifierError):
    """Writing or reading notification history failed."""

    status_code = 503

