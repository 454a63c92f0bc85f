"""
Structlog processor that stamps every event with the ambient contexts.

Registered by :func:`gridkernel.core.logging.configure_logging`; runs for
every log call. Explicit keys on the event always win.
"""

from __future__ import annotations

from typing import Any

from gridkernel.context.carrier import grid_carrier
from gridkernel.context.node import peek_node_context
from gridkernel.context.operation import current_operation


def add_grid_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add correlation, causation, operation and node ids to *event_dict*."""
    grid = grid_carrier.current()
    if grid.is_initialized:
        event_dict.setdefault("correlation_id", grid.correlation_id)
        if grid.causation_id is not None:
            event_dict.setdefault("causation_id", grid.causation_id)

    operation = current_operation()
    if operation is not None:
        event_dict.setdefault("operation_id", operation.operation_id)

    node = peek_node_context()
    if node is not None:
        event_dict.setdefault("node_id", node.node_id)

    return event_dict


__all__ = ["add_grid_context"]
