"""Structured logging configuration using structlog.

Console output in development, one JSON object per line in production. Each
entry carries the request_id bound by the middleware and, once the caller is
resolved, the principal id and role, so a bid or an award can be traced back
to whoever made it.

Amounts are Decimals and ids are UUIDs throughout the services; both are
rendered as plain strings, so a JSON log line shows ``"amount": "60"`` rather
than a repr.

Usage:
    from tender_clearinghouse.logging_config import setup_logging, get_logger
    setup_logging(log_level="DEBUG", json_logs=False)
    logger = get_logger(__name__)
    logger.info("tender.created", tender_id=tender.id, budget=tender.budget)
"""

from __future__ import annotations

import logging
import sys
import uuid
from decimal import Decimal
from typing import Any

import structlog

SERVICE_NAME = "tender-clearinghouse"

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "httpx", "httpcore")


def _render_domain_values(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    for key, value in event_dict.items():
        if isinstance(value, (Decimal, uuid.UUID)):
            event_dict[key] = str(value)
    return event_dict


def _add_service(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Route structlog and the standard library through one handler.

    Args:
        log_level: Standard Python log level string (DEBUG, INFO, WARNING, etc.)
        json_logs: JSON lines for log shipping; otherwise colored console output.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _render_domain_values,
    ]

    if json_logs:
        shared_processors += [_add_service, structlog.processors.dict_tracebacks]
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_principal(principal_id: str, role: str) -> None:
    """Attach the authenticated principal to every log entry of this request."""
    structlog.contextvars.bind_contextvars(principal_id=principal_id, role=role)
