"""Structured logging for the Pali server.

structlog, JSON lines by default. Every entry emitted while a request is in
flight carries that request's ``request_id`` (see app/middleware.py).

Secrets and digests are never passed as log fields. ``redact_secrets`` is
the backstop: it masks anything that looks like a Pali key or a stored
digest, in any field, before rendering.

Environment:
  LOG_LEVEL  — DEBUG / INFO / WARNING / ERROR / CRITICAL (default INFO)
  DEBUG      — "true" forces DEBUG when LOG_LEVEL is unset
  JSON_LOGS  — "false" switches to the coloured console renderer
"""

import logging
import os
import re
import sys
import time
from contextvars import ContextVar
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_SENSITIVE_FIELDS = frozenset({"api_key", "secret", "secret_hash", "key_hash", "pepper"})
_SECRET_RE = re.compile(r"\b[a-z]+_[0-9a-f]{64}\b")
_DIGEST_RE = re.compile(r"\b[0-9a-f]{64}\b")
_REDACTED = "[REDACTED]"


def add_request_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["timestamp"] = time.time()
    return event_dict


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return _DIGEST_RE.sub(_REDACTED, _SECRET_RE.sub(_REDACTED, value))
    return value


def redact_secrets(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask key material in field names we know about and in free text."""
    for key, value in event_dict.items():
        if key in _SENSITIVE_FIELDS:
            event_dict[key] = _REDACTED
        else:
            event_dict[key] = _scrub(value)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the process.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines if True, coloured console output if False.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def configure_from_env() -> None:
    """Apply LOG_LEVEL / DEBUG / JSON_LOGS from the environment."""
    debug = os.getenv("DEBUG", "false").lower() == "true"
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO")
    json_output = os.getenv("JSON_LOGS", "true").lower() == "true"
    configure_logging(log_level=log_level, json_output=json_output)


def get_logger(name: str = "pali") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def clear_request_id() -> None:
    request_id_var.set(None)


# Defaults until app.main reconfigures from the environment.
configure_logging()
