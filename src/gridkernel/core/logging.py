"""
grid-kernel logging - structured logging via structlog.

Manifesto:
    A correlation id is only useful if it shows up in the logs. Every event
    logged through this configuration carries the ambient grid context
    (``correlation_id``, ``causation_id``, ``operation_id``) and the node
    identity (``node_id``) without callers passing them explicitly.

Architecture:
    ::

        configure_logging(level="INFO", json_format=True, service="orders-api")
            │
            ▼
        structlog processor chain:
          1. TimeStamper (UTC ISO-8601)
          2. merge_contextvars
          3. add_log_level / add_logger_name
          4. add_grid_context        ← ambient GridContext / operation / node
          5. add_service_metadata
          6. JSONRenderer (or ConsoleRenderer for dev)

Examples:
    >>> from gridkernel.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True, service="orders-api")
    >>> logger = get_logger(__name__)
    >>> logger.info("order_accepted", order_id="o-1")

Tags:
    logging, structlog, observability, correlation, grid-kernel
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from gridkernel.core.settings import get_settings

_SERVICE_NAME = "grid-kernel"

# Track if logging has been configured
_configured = False


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str | None = None,
    force: bool = False,
) -> None:
    """Configure structured logging for the node.

    Subsequent calls are no-ops unless ``force=True``.

    Args:
        level: Log level (defaults to ``GRID_LOG_LEVEL``)
        json_format: True for JSON, False for console, None to use ``GRID_LOG_FORMAT``
        service: Service name to include in logs (defaults to ``GRID_NODE_ID``)
        force: Reconfigure even if already configured
    """
    global _SERVICE_NAME, _configured

    if _configured and not force:
        return

    from gridkernel.context.logging import add_grid_context

    settings = get_settings()
    log_level = (level or settings.log_level).upper()
    if json_format is None:
        json_format = settings.log_format == "json"
    _SERVICE_NAME = service or settings.node_id

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_grid_context,
        _add_service_metadata,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )
    logging.getLogger("gridkernel").setLevel(getattr(logging, log_level))

    _configured = True


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


__all__ = ["configure_logging", "get_logger", "is_configured"]
