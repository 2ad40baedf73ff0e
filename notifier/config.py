# notifier/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    run_mode: Literal["all", "web", "scheduler"] = "all"
    log_level: str = "INFO"

    # Database
    expected_schema_version: str = "001_notifications.sql"  # Update on deploy when new migrations are added
    database_url: str | None = None
    pg_pool_min: int = 2
    pg_pool_max: int = 15

    # Security
    webhook_token: str | None = None  # Shared secret for order-lifecycle webhooks (X-Webhook-Token or body "token")
    admin_token: str | None = None  # Bearer token for history/stats/metrics/reminder triggers

    # Telegram
    telegram_bot_token: str | None = None  # Bot token from @BotFather
    telegram_api_url: str = "https://api.telegram.org"
    telegram_timeout_seconds: float = 25.0  # Total timeout of one Bot API request

    # Delivery retry policy
    delivery_max_attempts: int = 3
    delivery_base_delay: float = 1.0  # seconds, doubles on each retry
    delivery_max_delay: float = 30.0

    # Channel address field per recipient type.
    # Deployments differ on where the Telegram chat id lives: "tg_id" or "chat_id".
    director_address_field: Literal["tg_id", "chat_id"] = "tg_id"
    master_address_field: Literal["tg_id", "chat_id"] = "chat_id"

    # Deep links attached as inline buttons ("" disables the button)
    director_order_url: str = "https://new.lead-schem.ru/orders/{order_id}"
    master_order_url: str = "https://lead-schem.ru/orders/{order_id}"

    # Reminders
    reminders_enabled: bool = True
    first_reminder_hours: int = 3  # First close reminder N hours after the meeting
    reminder_interval_hours: int = 3  # Then every N hours until the order is closed
    modern_reminder_days: int = 3  # Modern without closing date: first reminder N days after last update
    modern_check_hour: int = 10  # Daily modern pass time-of-day (display timezone)
    modern_check_minute: int = 0
    display_timezone: str = "Europe/Moscow"
    pending_closure_statuses: list[str] = ["Принял", "В пути", "В работе"]
    modern_status: str = "Модерн"

    # Monitoring
    enable_metrics: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token)

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        required_fields = [
            ("database_url", self.database_url),
            ("telegram_bot_token", self.telegram_bot_token),
            ("webhook_token", self.webhook_token),
            ("admin_token", self.admin_token),
        ]

        return [name for name, value in required_fields if not value]


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.telegram_bot_token:
        warnings.append("telegram_bot_token is not set (every delivery will fail).")

    if not s.webhook_token:
        warnings.append("webhook_token is not set (notification webhooks accept any caller).")

    if not s.admin_token:
        warnings.append("admin_token is not set (history/stats/reminder endpoints are disabled).")

    if s.delivery_max_attempts < 1:
        warnings.append("delivery_max_attempts < 1: treated as a single attempt.")

    if s.reminder_interval_hours < 1:
        warnings.append("reminder_interval_hours < 1: close-order reminders will be sent on every hourly pass.")

    if not 0 <= s.modern_check_hour <= 23 or not 0 <= s.modern_check_minute <= 59:
        warnings.append("modern_check_hour/minute out of range: daily modern pass time is invalid.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")

settings = Settings()
validate_or_warn(settings)
