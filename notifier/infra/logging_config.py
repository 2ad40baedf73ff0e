# notifier/infra/logging_config.py
"""
Logging setup.

Production writes one JSON object per line; development gets a coloured
single-line format. Order/event context travels as ``extra`` fields, usually
through ``LogContext``, and both formatters print it.
"""
import logging
import sys
import json
from datetime import datetime, timezone

# extra field -> short label in console output
_CONTEXT_LABELS = {
    "event_kind": "kind",
    "order_id": "order",
    "master_id": "master",
    "request_id": "req",
}

_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "asyncpg": logging.WARNING,
    "aiohttp.access": logging.WARNING,
}


def _context_of(record: logging.LogRecord) -> dict:
    return {field: getattr(record, field) for field in _CONTEXT_LABELS if hasattr(record, field)}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
            **_context_of(record),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        context = " ".join(f"{_CONTEXT_LABELS[k]}={v}" for k, v in _context_of(record).items())
        context = f" [{context}]" if context else ""

        line = (
            f"{color}[{timestamp}] {record.levelname:8}{self.RESET} "
            f"{record.name}{context} - {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", use_json: bool = False) -> None:
    """Replace root handlers with a single stdout handler."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())
    root_logger.addHandler(handler)

    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    logging.info(f"Logging configured: level={level}, json={use_json}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Logger wrapper that attaches order/event context to every record.

    Usage:
        log = LogContext(logger, order_id=42, event_kind="new_order")
        log.info("Dispatch done")
    """

    def __init__(
            self,
            logger: logging.Logger,
            order_id: int | None = None,
            event_kind: str | None = None,
            master_id: int | None = None,
            request_id: str | None = None,
    ):
        self.logger = logger
        self.context = {
            k: v for k, v in {
                "order_id": order_id,
                "event_kind": event_kind,
                "master_id": master_id,
                "request_id": request_id,
            }.items() if v is not None
        }

    def _log(self, level: int, msg: str, *args, **kwargs):
        extra = kwargs.pop("extra", {})
        extra.update(self.context)
        self.logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)


def mask_address(address: str | None) -> str:
    """Mask a Telegram chat id for logging: 123456789 -> 1234***89"""
    if not address or len(address) <= 6:
        return "***"
    return f"{address[:4]}***{address[-2:]}"
