"""Structured logging for the ledger services and the credits API."""

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from ghostwriter.settings import settings

# Event fields that carry a customer email address
EMAIL_FIELDS = ("email", "user_email", "owner_email")


def mask_email(email: str) -> str:
    """Keep the first character and the domain, e.g. ``a***@x.com``."""
    local, _, domain = email.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"


def redact_emails(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor masking email fields."""
    for field in EMAIL_FIELDS:
        value = event_dict.get(field)
        if isinstance(value, str):
            event_dict[field] = mask_email(value)
    return event_dict


def build_processors(log_format: str, redact: bool) -> list[Any]:
    """Processor chain for the given output format.

    Args:
        log_format: ``json`` for log shipping, anything else for the console
        redact: Mask customer emails before rendering
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    if redact:
        processors.append(redact_emails)

    if log_format == "json":
        processors += [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]
    return processors


def setup_logging() -> None:
    """Configure structured logging.

    Emails are masked in production logs.
    """
    level = settings.log_level.upper()

    structlog.configure(
        processors=build_processors(settings.log_format, redact=settings.env == "production"),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # uvicorn and alembic log through stdlib
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )


@contextmanager
def request_context(request_id: str | None = None, **values: Any) -> Iterator[str]:
    """Bind a request id to every log line emitted inside the block.

    Args:
        request_id: Caller-supplied id; a new one is generated when empty
        **values: Extra fields to bind (path, method, ...)

    Yields:
        The bound request id
    """
    request_id = request_id or uuid.uuid4().hex
    with structlog.contextvars.bound_contextvars(request_id=request_id, **values):
        yield request_id


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
