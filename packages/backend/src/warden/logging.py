"""Structured logging setup.

Learn: structlog gives us event-style log lines ("auth.login_succeeded")
with key/value context instead of formatted strings. Request handlers bind
request_id into contextvars, so every line logged while serving a request
carries it without threading it through the services.

Credentials must never reach the logs: the redaction processor masks
passwords, raw tokens and reset codes before rendering.
"""

import logging
from typing import Any

import structlog

# Exact keys whose values are credentials
_REDACTED_KEYS = frozenset({
    "password",
    "current_password",
    "new_password",
    "token",
    "access_token",
    "refresh_token",
    "code",
    "secret",
    "authorization",
})


def _redact_credentials(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key in _REDACTED_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) > 8:
            event_dict[key] = value[:4] + "***"
        elif value is not None:
            event_dict[key] = "***"
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog once at process start (API server or CLI)."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_credentials,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
