"""
Structured logging for DaggerGM.

Provides:
- JSON structured logging for production environments
- Human-readable colored logging for development
- Request context (request_id, user_id) propagation
- Redaction of keys, tokens and Stripe secrets
- A Timer context manager for LLM and store latency
"""

import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from daggergm.config import LoggingSettings, SecuritySettings

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

SENSITIVE_PATTERNS: list[re.Pattern] = [
    re.compile(r'api[_-]?key["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'secret["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'bearer\s+[\w.-]+', re.IGNORECASE),
    re.compile(r'sk[-_](?:test|live)[-_][\w]+', re.IGNORECASE),  # Stripe secret keys
    re.compile(r'rk[-_](?:test|live)[-_][\w]+', re.IGNORECASE),  # Stripe restricted keys
    re.compile(r'whsec_[\w]+', re.IGNORECASE),  # Stripe webhook secrets
    re.compile(r'sk-(?:proj-)?[\w-]{20,}'),  # OpenAI keys
    re.compile(r'eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+'),  # JWTs (Supabase service role key)
]

REDACTED = "[REDACTED]"

EXCLUDED_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "request_id", "user_id", "message", "taskName",
})


def redact_sensitive_data(message: str) -> str:
    """Replace secrets in a log message with [REDACTED]."""
    if not message:
        return message

    result = message
    for pattern in SENSITIVE_PATTERNS:
        result = pattern.sub(REDACTED, result)
    return result


def mask_id(value: Optional[str]) -> str:
    """Shorten a user or adventure id for log output."""
    if not value:
        return "-"
    return value[:8] + "..." if len(value) > 8 else value


class RequestContextFilter(logging.Filter):
    """Add request context to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.user_id = user_id_var.get() or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Filter sensitive data from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_sensitive_data(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class JSONFormatter(logging.Formatter):
    """
    Single-line JSON formatter for production.

    {"timestamp": ..., "level": "INFO", "logger": "daggergm.credits.ledger",
     "message": ..., "service": "daggergm-api", "request_id": ..., "user_id": ...,
     "extra": {...}}
    """

    def __init__(self, service_name: str = "daggergm-api"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "request_id": getattr(record, "request_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
        }

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_fields = {
            k: v for k, v in record.__dict__.items()
            if k not in EXCLUDED_RECORD_ATTRS and not k.startswith("_")
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """
    Colored formatter for development.

    Format: [timestamp] LEVEL    [req_id] [user_id] logger - message
    """

    COLORS: Dict[str, str] = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        req_display = mask_id(getattr(record, "request_id", None)).rstrip(".")
        user_display = mask_id(getattr(record, "user_id", None)).rstrip(".")
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        formatted = (
            f"{self.DIM}[{timestamp}]{self.RESET} "
            f"{color}{self.BOLD}{record.levelname:8}{reset} "
            f"{self.DIM}[{req_display:>8}] [{user_display:>8}]{self.RESET} "
            f"{record.name} - {record.getMessage()}"
        )

        extra_fields = {
            k: v for k, v in record.__dict__.items()
            if k not in EXCLUDED_RECORD_ATTRS and not k.startswith("_")
        }
        if extra_fields:
            formatted += f" {self.DIM}{extra_fields}{self.RESET}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(
    service_name: str = "daggergm-api",
    settings: Optional[LoggingSettings] = None,
    security: Optional[SecuritySettings] = None,
) -> logging.Logger:
    """
    Configure structured logging for the application.

    Call once at startup, before modules that log at import time are loaded.
    JSON output is used in production or when LOG_FORMAT_JSON is set.

    Returns:
        Configured root logger
    """
    settings = settings or LoggingSettings()
    security = security or SecuritySettings()
    level = getattr(logging, settings.log_level, logging.INFO)
    use_json = settings.log_format_json or security.is_production

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicate logs
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())

    if use_json:
        handler.setFormatter(JSONFormatter(service_name))
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": logging.getLevelName(level),
            "format": "json" if use_json else "development",
            "service": service_name,
        },
    )

    return root_logger


def set_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    """Set request context for log records emitted in the current task."""
    if request_id is not None:
        request_id_var.set(request_id)
    if user_id is not None:
        user_id_var.set(user_id)


def clear_request_context() -> None:
    """Clear request context after request completion."""
    request_id_var.set(None)
    user_id_var.set(None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


class Timer:
    """
    Context manager for timing operations.

    Usage:
        with Timer("scaffold_generation", logger) as timer:
            scaffold = await generator.generate_scaffold(config)
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.DEBUG,
    ):
        self.name = name
        self.logger = logger
        self.log_level = log_level
        self.start_time: Optional[float] = None
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        if self.logger:
            self.logger.log(
                self.log_level,
                f"{self.name} completed in {self.elapsed_ms:.2f}ms",
                extra={
                    "operation": self.name,
                    "duration_ms": round(self.elapsed_ms, 2),
                    "success": exc_type is None,
                },
            )
