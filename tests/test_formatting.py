# tests/test_formatting.py
"""Tests for display formatting helpers (Europe/Moscow display timezone)."""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from notifier.core.formatting import (
    PLACEHOLDER,
    format_amount,
    format_date,
    format_datetime,
    is_display_formatted,
    parse_date,
    text,
)


class TestText:
    def test_none_is_placeholder(self):
        assert text(None) == PLACEHOLDER

    def test_blank_string_is_placeholder(self):
        assert text("   ") == PLACEHOLDER

    def test_custom_default(self):
        assert text("", "БТ") == "БТ"

    def test_strips_value(self):
        assert text("  Авито  ") == "Авито"

    def test_bool(self):
        assert text(True) == "Да"
        assert text(False) == "Нет"

    def test_integral_float_has_no_fraction(self):
        assert text(1500.0) == "1500"

    def test_fractional_float_kept(self):
        assert text(1500.5) == "1500.5"

    def test_zero_is_not_blank(self):
        assert text(0) == "0"


class TestFormatAmount:
    def test_decimal_integral(self):
        assert format_amount(Decimal("2500.00")) == "2500"

    def test_int(self):
        assert format_amount(42) == "42"

    def test_nan_shown_verbatim(self):
        assert format_amount(float("nan")) == "nan"


class TestFormatDate:
    def test_blank_is_placeholder(self):
        assert format_date(None) == PLACEHOLDER
        assert format_date("") == PLACEHOLDER

    def test_display_date_passes_through(self):
        assert format_date("15.03.2026") == "15.03.2026"

    def test_display_datetime_passes_through(self):
        assert format_datetime("15.03.2026, 14:30") == "15.03.2026, 14:30"

    def test_iso_date(self):
        assert format_date("2026-03-15") == "15.03.2026"

    def test_iso_utc_datetime_converted_to_display_tz(self):
        assert format_datetime("2026-03-15T11:30:00Z") == "15.03.2026, 14:30"

    def test_iso_datetime_without_time_flag(self):
        assert format_date("2026-03-15T11:30:00.000Z") == "15.03.2026"

    def test_naive_datetime_taken_as_local(self):
        assert format_datetime(datetime(2026, 3, 15, 14, 30)) == "15.03.2026, 14:30"

    def test_aware_datetime(self):
        value = datetime(2026, 3, 15, 22, 0, tzinfo=timezone.utc)
        assert format_datetime(value) == "16.03.2026, 01:00"

    def test_date_object(self):
        assert format_date(date(2026, 1, 5)) == "05.01.2026"

    def test_unparsable_shown_verbatim(self):
        assert format_date("завтра утром") == "завтра утром"

    def test_never_renders_none(self):
        for value in (None, "", "null-ish", 0):
            assert "None" not in format_datetime(value)

    def test_out_of_range_after_shift_shown_verbatim(self):
        assert format_datetime("9999-12-31T23:00:00Z") == "9999-12-31T23:00:00Z"
        assert format_datetime("0001-01-01T00:00:00+05:00") == "0001-01-01T00:00:00+05:00"

    def test_out_of_range_datetime_object(self):
        value = datetime(9999, 12, 31, 23, 0, tzinfo=timezone.utc)
        assert format_date(value) == "9999-12-31T23:00:00+00:00"


class TestParseDate:
    def test_display_date(self):
        assert parse_date("15.03.2026") == date(2026, 3, 15)

    def test_iso_date(self):
        assert parse_date("2026-03-15") == date(2026, 3, 15)

    def test_utc_evening_is_next_local_day(self):
        assert parse_date("2026-03-15T22:30:00Z") == date(2026, 3, 16)

    def test_blank_and_garbage(self):
        assert parse_date(None) is None
        assert parse_date("скоро") is None

    def test_out_of_range_is_unknown(self):
        assert parse_date("9999-12-31T23:00:00Z") is None


def test_is_display_formatted():
    assert is_display_formatted("01.02.2026")
    assert is_display_formatted("01.02.2026, 09:05")
    assert not is_display_formatted("2026-02-01")
