from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

# Per-request correlation id, set by the HTTP middleware
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Substrings of event fields whose string values must never reach the log
_SECRET_FIELDS = ("password", "secret", "token", "authorization", "api_key")
_EMAIL_FIELDS = ("email",)
REDACTED = "[redacted]"

_TRUTHY = {"1", "true", "yes", "on"}


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Use the client's request id when given, otherwise mint one."""
    cid = correlation_id or uuid.uuid4().hex
    correlation_id_var.set(cid)
    return cid


def _add_correlation_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    cid = get_correlation_id()
    if cid:
        event_dict.setdefault("correlation_id", cid)
    return event_dict


def _mask_email(value: str) -> str:
    _, at, domain = value.rpartition("@")
    return f"***@{domain}" if at else REDACTED


def _redact_pii(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Blank out credentials and hide the local part of email addresses.

    JWTs, refresh tokens, passwords, bcrypt hashes and the Polka key are
    replaced whole. Only string values are touched, so flags such as
    ``key_present`` and numeric ids pass through.
    """
    for key, value in list(event_dict.items()):
        if not isinstance(value, str) or key == "event":
            continue
        field = key.lower()
        if any(name in field for name in _SECRET_FIELDS):
            event_dict[key] = REDACTED
        elif any(name in field for name in _EMAIL_FIELDS):
            event_dict[key] = _mask_email(value)
    return event_dict


def _level_number(level: str) -> int:
    number = getattr(logging, level.upper(), None)
    return number if isinstance(number, int) else logging.INFO


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Install the chirpy processor chain.

    JSON lines by default; ``json_output=False`` switches to structlog's
    coloured console renderer for local runs.
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_correlation_id,
        _redact_pii,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


configure_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_JSON", "true").lower() in _TRUTHY,
)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
