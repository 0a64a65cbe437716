"""
Structured JSON logging for the Ascent access layer.

Every event carries the emitting service, the request ID and, once a
credential has been verified, the user ID. Credential-bearing fields are
masked before rendering.
"""

import logging
import re
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

# Event keys whose values are credentials or key material.
REDACTED_KEYS = frozenset({
    "authorization",
    "token",
    "init_data",
    "initdata",
    "hash",
    "bot_token",
    "secret",
    "public_key_material",
})
REDACTED = "[redacted]"

# Client-supplied request IDs outside this shape are replaced.
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Derive ``service`` from ``<service>.<component>`` logger names."""
    service, dot, _ = event_dict.get("logger", "").partition(".")
    if dot:
        event_dict["service"] = service
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key, var in (("request_id", request_id_var), ("user_id", user_id_var)):
        value = var.get()
        if value:
            event_dict[key] = value
    return event_dict


def redact_credentials(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask credential-bearing fields so raw secrets never reach the log sink."""
    for key, value in event_dict.items():
        if value is not None and key.lower() in REDACTED_KEYS:
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structlog on top of stdlib logging for ``service_name``."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            redact_credentials,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger(service_name).setLevel(level)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request ID to the current context, generating one if needed."""
    if not request_id or not _REQUEST_ID_PATTERN.match(request_id):
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_user_context(user_id: Optional[str] = None):
    if user_id:
        user_id_var.set(user_id)


def clear_context():
    request_id_var.set(None)
    user_id_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
