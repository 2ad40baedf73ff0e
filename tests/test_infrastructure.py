# tests/test_infrastructure.py
"""Tests for infrastructure components"""
import json
import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from notifier.infra.db_resilience_async import is_transient_error, retry_on_transient_error, safe_db_conn


def _conn_cm(conn):
    @asynccontextmanager
    async def cm(*args, **kwargs):
        yield conn
    return cm


class TestDatabaseResilience:
    def test_connection_error_is_transient(self):
        assert is_transient_error(ConnectionError("connection refused")) is True

    def test_too_many_connections(self):
        assert is_transient_error(asyncpg.TooManyConnectionsError("too many")) is True

    def test_plain_message_patterns(self):
        assert is_transient_error(OSError("server closed the connection unexpectedly")) is True

    def test_query_error_not_transient(self):
        assert is_transient_error(asyncpg.UndefinedTableError("relation does not exist")) is False

    def test_unrelated_error_not_transient(self):
        assert is_transient_error(ValueError("some other error")) is False

    @pytest.mark.asyncio
    async def test_retry_decorator_succeeds_on_first_try(self):
        call_count = 0

        @retry_on_transient_error(max_retries=3)
        async def successful_operation():
            nonlocal call_count
            call_count += 1
            return "success"

        assert await successful_operation() == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_decorator_succeeds_after_transient_error(self):
        call_count = 0

        @retry_on_transient_error(max_retries=3, initial_delay=0)
        async def operation_with_transient_error():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise ConnectionError("connection reset by peer")
            return "success"

        assert await operation_with_transient_error() == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_retry_decorator_raises_non_transient_immediately(self):
        call_count = 0

        @retry_on_transient_error(max_retries=3)
        async def operation_with_non_transient_error():
            nonlocal call_count
            call_count += 1
            raise ValueError("not a transient error")

        with pytest.raises(ValueError):
            await operation_with_non_transient_error()

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_decorator_gives_up(self):
        @retry_on_transient_error(max_retries=2, initial_delay=0)
        async def always_down():
            raise ConnectionError("connection refused")

        with pytest.raises(ConnectionError):
            await always_down()


class TestSafeDbConn:
    @staticmethod
    def _cm(enter_result=None, enter_error=None):
        cm = MagicMock()
        cm.__aenter__ = AsyncMock(return_value=enter_result, side_effect=enter_error)
        cm.__aexit__ = AsyncMock(return_value=False)
        return cm

    @pytest.mark.asyncio
    async def test_retries_acquisition(self):
        conn = MagicMock()
        cms = [
            self._cm(enter_error=ConnectionError("connection refused")),
            self._cm(enter_result=conn),
        ]

        with patch("notifier.infra.db_async.db_conn", side_effect=cms), \
                patch("notifier.infra.db_resilience_async.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with safe_db_conn() as acquired:
                assert acquired is conn

        sleep.assert_awaited_once()
        cms[1].__aexit__.assert_awaited_once_with(None, None, None)

    @pytest.mark.asyncio
    async def test_body_errors_not_retried(self):
        cm = self._cm(enter_result=MagicMock())

        with patch("notifier.infra.db_async.db_conn", return_value=cm) as db_conn:
            with pytest.raises(ConnectionError):
                async with safe_db_conn():
                    raise ConnectionError("connection reset")

        assert db_conn.call_count == 1
        assert cm.__aexit__.await_args.args[0] is ConnectionError

    @pytest.mark.asyncio
    async def test_non_transient_acquisition_error(self):
        cm = self._cm(enter_error=RuntimeError("Connection pool not initialized"))

        with patch("notifier.infra.db_async.db_conn", return_value=cm):
            with pytest.raises(RuntimeError):
                async with safe_db_conn():
                    pass


class TestMetrics:
    def test_metrics_counter_increment(self):
        from notifier.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.inc_counter("test_counter", 1)
        collector.inc_counter("test_counter", 2)

        assert collector.get_metrics()["counters"]["test_counter"] == 3

    def test_metrics_histogram_observe(self):
        from notifier.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        for value in (0.1, 0.2, 0.5):
            collector.observe_histogram("test_histogram", value)

        stats = collector.get_metrics()["histograms"]["test_histogram"]
        assert stats["count"] == 3
        assert stats["min"] == 0.1
        assert stats["max"] == 0.5

    def test_metrics_with_labels(self):
        from notifier.infra.metrics import MetricsCollector

        collector = MetricsCollector()
        collector.inc_counter("notifications_delivered", 1, {"kind": "new_order"})
        collector.inc_counter("notifications_delivered", 2, {"kind": "order_closed"})

        counters = collector.get_metrics()["counters"]
        assert "notifications_delivered{kind=new_order}" in counters
        assert "notifications_delivered{kind=order_closed}" in counters

    def test_dispatch_timer_records_histogram(self):
        from notifier.infra.metrics import AppMetrics, get_metrics_collector

        with AppMetrics.track_dispatch_time("timer_check"):
            pass

        histograms = get_metrics_collector().get_metrics()["histograms"]
        assert any("timer_check" in key for key in histograms)

    def test_histogram_window_is_bounded(self):
        from notifier.infra.metrics import MetricsCollector

        collector = MetricsCollector(histogram_window=3)
        for value in (10.0, 1.0, 2.0, 3.0):
            collector.observe_histogram("dispatch_seconds", value)

        stats = collector.get_metrics()["histograms"]["dispatch_seconds"]
        assert stats["count"] == 3
        assert stats["max"] == 3.0


class TestLogging:
    def test_console_formatter_shows_context(self):
        from notifier.infra.logging_config import ConsoleFormatter

        record = logging.LogRecord("notifier", logging.WARNING, __file__, 1, "failed", None, None)
        record.order_id = 42
        record.event_kind = "order_closed"

        line = ConsoleFormatter().format(record)
        assert "[kind=order_closed order=42]" in line
        assert line.endswith("failed")

    def test_mask_address(self):
        from notifier.infra.logging_config import mask_address

        assert mask_address("700800900") == "7008***00"
        assert mask_address("12345") == "***"
        assert mask_address(None) == "***"

    def test_json_formatter_includes_context(self):
        from notifier.infra.logging_config import JSONFormatter

        record = logging.LogRecord("notifier", logging.INFO, __file__, 1, "sent", None, None)
        record.order_id = 42
        record.event_kind = "new_order"

        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "sent"
        assert data["order_id"] == 42
        assert data["event_kind"] == "new_order"

    def test_log_context_passes_extra(self):
        from notifier.infra.logging_config import LogContext

        logger = MagicMock()
        LogContext(logger, order_id=42, master_id=7).info("hello")

        _, kwargs = logger.log.call_args
        assert kwargs["extra"] == {"order_id": 42, "master_id": 7}


class TestConfig:
    def test_defaults(self):
        from notifier.config import Settings

        s = Settings(_env_file=None)
        assert s.run_mode == "all"
        assert s.display_timezone == "Europe/Moscow"
        assert s.pending_closure_statuses == ["Принял", "В пути", "В работе"]
        assert s.delivery_max_attempts == 3

    def test_run_mode_invalid_rejected(self):
        from notifier.config import Settings
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            Settings(run_mode="banana", _env_file=None)

    def test_address_field_restricted(self):
        from notifier.config import Settings
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            Settings(master_address_field="phone", _env_file=None)

    def test_production_requires_secrets(self):
        from notifier.config import Settings

        s = Settings(app_env="prod", _env_file=None)
        assert set(s.validate_required_for_production()) == {
            "database_url", "telegram_bot_token", "webhook_token", "admin_token",
        }

    def test_risky_config_warnings(self):
        from notifier.config import Settings, warn_on_risky_config

        s = Settings(modern_check_hour=25, reminder_interval_hours=0, _env_file=None)
        warnings = warn_on_risky_config(s)
        assert any("modern_check_hour" in w for w in warnings)
        assert any("reminder_interval_hours" in w for w in warnings)


class TestMigrations:
    def test_migration_files_shipped(self):
        from notifier.infra.migrations_async import list_migration_files

        names = [p.name for p in list_migration_files()]
        assert "001_notifications.sql" in names
        assert names == sorted(names)

    def test_record_tables_not_migrated(self):
        from notifier.infra.migrations_async import list_migration_files

        for path in list_migration_files():
            sql = path.read_text(encoding="utf-8").lower()
            for table in ("directors", "masters", "orders"):
                assert f"create table if not exists {table} " not in sql

    def test_record_store_columns_match_external_orders_table(self):
        from notifier.infra.pg_record_store_async import _ORDER_COLUMNS

        ddl = (Path(__file__).parent / "fixtures" / "record_tables.sql").read_text(encoding="utf-8")
        orders_ddl = re.search(r"CREATE TABLE IF NOT EXISTS orders \((.*?)\n\);", ddl, re.S).group(1)
        defined = {line.split()[0] for line in orders_ddl.strip().splitlines()}

        wanted = {c.strip() for c in _ORDER_COLUMNS.split(",")}
        assert wanted <= defined

    @pytest.mark.asyncio
    async def test_apply_skips_applied(self):
        from notifier.infra import migrations_async

        conn = MagicMock()
        conn.execute = AsyncMock()
        conn.fetch = AsyncMock(return_value=[{"version": "001_notifications.sql"}])

        with patch.object(migrations_async, "db_conn", _conn_cm(conn)):
            result = await migrations_async.apply_migrations()

        assert result["ok"] is True
        assert "001_notifications.sql" not in result["applied"]

    @pytest.mark.asyncio
    async def test_apply_new_file_under_lock(self):
        from notifier.infra import migrations_async

        conn = MagicMock()
        conn.execute = AsyncMock()
        conn.fetch = AsyncMock(return_value=[])

        with patch.object(migrations_async, "db_conn", _conn_cm(conn)):
            result = await migrations_async.apply_migrations()

        assert "001_notifications.sql" in result["applied"]
        statements = [c.args[0] for c in conn.execute.await_args_list]
        assert statements[0] == "SELECT pg_advisory_lock($1)"
        assert statements[-1] == "SELECT pg_advisory_unlock($1)"
        assert conn.execute.await_args_list[-2].args == (
            "INSERT INTO schema_migrations(version) VALUES ($1)", result["applied"][-1],
        )

    @pytest.mark.asyncio
    async def test_pending(self):
        from notifier.infra import migrations_async

        conn = MagicMock()
        conn.execute = AsyncMock()
        conn.fetch = AsyncMock(return_value=[])

        with patch.object(migrations_async, "db_conn", _conn_cm(conn)):
            assert "001_notifications.sql" in await migrations_async.pending_migrations()

    @pytest.mark.asyncio
    async def test_schema_version_match(self):
        from notifier.config import settings
        from notifier.infra import schema_validator

        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=True)
        conn.fetchrow = AsyncMock(return_value={"version": settings.expected_schema_version, "applied_at": None})

        with patch.object(schema_validator, "db_conn", _conn_cm(conn)):
            result = await schema_validator.validate_schema_version()

        assert result["ok"] is True

    @pytest.mark.asyncio
    async def test_schema_version_mismatch(self):
        from notifier.infra import schema_validator

        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=True)
        conn.fetchrow = AsyncMock(return_value={"version": "000_old.sql", "applied_at": None})

        with patch.object(schema_validator, "db_conn", _conn_cm(conn)):
            with pytest.raises(RuntimeError, match="Schema version mismatch"):
                await schema_validator.validate_schema_version()

    @pytest.mark.asyncio
    async def test_schema_missing(self):
        from notifier.infra import schema_validator

        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=False)

        with patch.object(schema_validator, "db_conn", _conn_cm(conn)):
            with pytest.raises(RuntimeError, match="not found"):
                await schema_validator.validate_schema_version()
