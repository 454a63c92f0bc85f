"""Three-tier context model: grid (per request), node (per process), operation (per unit of work)."""

from gridkernel.context.carrier import ContextCarrier, grid_carrier
from gridkernel.context.grid import GridContext
from gridkernel.context.mappers import HttpContextMapper, JobContextMapper, MessagingContextMapper
from gridkernel.context.node import (
    NodeContext,
    current_node_context,
    initialize_node_context,
    peek_node_context,
    reset_node_context,
)
from gridkernel.context.operation import (
    OperationContext,
    OperationTracker,
    Outcome,
    current_operation,
)
from gridkernel.context.propagation import (
    GridHeaderNames,
    bind_job_metadata,
    bind_message_properties,
    deserialize,
    serialize,
    to_headers,
)

__all__ = [
    "ContextCarrier",
    "grid_carrier",
    "GridContext",
    "HttpContextMapper",
    "JobContextMapper",
    "MessagingContextMapper",
    "NodeContext",
    "current_node_context",
    "initialize_node_context",
    "peek_node_context",
    "reset_node_context",
    "OperationContext",
    "OperationTracker",
    "Outcome",
    "current_operation",
    "GridHeaderNames",
    "bind_job_metadata",
    "bind_message_properties",
    "deserialize",
    "serialize",
    "to_headers",
]
