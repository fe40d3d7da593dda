"""Structured logging configuration using structlog.

JSON output for production, colored console output for development.

Two processors are specific to orchestrator logs:
- merge_extra: call sites pass context as `extra={...}`; its keys are
  lifted into the event so renderers see flat fields.
- redact_secrets: upstream errors and settings dumps can carry API keys,
  so credential-looking values are replaced with [REDACTED_<TYPE>] markers.
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

from metered_retry.config import Settings

APP_NAME = "metered-retry"

SENSITIVE_KEYS = {"api_key", "apikey", "authorization", "password", "secret", "token", "access_token"}

SECRET_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("API_KEY", re.compile(r"AIza[0-9A-Za-z_\-]{20,}")),
    ("API_KEY", re.compile(r"\bsk-[0-9A-Za-z_\-]{16,}")),
    ("BEARER", re.compile(r"(?i)bearer\s+[0-9A-Za-z._\-]{8,}")),
]


def add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add application context to all log events."""
    event_dict["app"] = APP_NAME
    return event_dict


def merge_extra(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Lift `extra={...}` into top-level fields. Explicit fields win on conflict."""
    extra = event_dict.pop("extra", None)
    if isinstance(extra, dict):
        for key, value in extra.items():
            event_dict.setdefault(key, value)
    elif extra is not None:
        event_dict["extra"] = extra
    return event_dict


def _redact_text(text: str) -> str:
    for label, pattern in SECRET_PATTERNS:
        text = pattern.sub(f"[REDACTED_{label}]", text)
    return text


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in SENSITIVE_KEYS else _redact_value(v)
            for k, v in value.items()
        }
    if type(value) in (list, tuple):
        return type(value)(_redact_value(v) for v in value)
    return value


def redact_secrets(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask sensitive keys and credential-looking substrings in every field."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "[REDACTED]"
        else:
            event_dict[key] = _redact_value(event_dict[key])
    return event_dict


def configure_logging(log_level: str = "INFO", environment: str = "development") -> None:
    """Configure structlog for structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: "production" renders JSON, anything else the console
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    is_production = environment.lower() == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        merge_extra,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
    ]
    if is_production:
        shared_processors.append(structlog.processors.format_exc_info)
    shared_processors.append(redact_secrets)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if is_production else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors)
    )
    handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Redis and httpx are chatty at DEBUG
    for noisy in ("redis", "httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        log_level=log_level,
        environment=environment,
        renderer="json" if is_production else "console",
    )


def configure_logging_from_settings(settings: Settings) -> None:
    configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)
