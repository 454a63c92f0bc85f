"""
Outbound propagation of grid context: headers, job metadata, message
properties and a JSON envelope for handing context to other processes.

The JSON envelope drops metadata keys that look sensitive (``secret``,
``password``, ``token``, ``key``, ``credential``) unless the caller opts in.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from gridkernel.context.grid import GridContext
from gridkernel.context.node import NodeContext
from gridkernel.core.logging import get_logger
from gridkernel.core.settings import get_settings
from gridkernel.core.timestamps import to_iso8601

logger = get_logger(__name__)

_SENSITIVE_MARKERS = ("secret", "password", "token", "key", "credential")


class GridHeaderNames:
    """Header / property names used on the wire."""

    CORRELATION_ID = "X-Correlation-Id"
    CAUSATION_ID = "X-Causation-Id"
    TENANT_ID = "X-Tenant-Id"
    PROJECT_ID = "X-Project-Id"
    STUDIO_ID = "X-Studio-Id"
    NODE_ID = "X-Node-Id"
    ENVIRONMENT = "X-Environment"
    TRACE_PARENT = "traceparent"
    BAGGAGE = "baggage"
    BAGGAGE_PREFIX = "X-Baggage-"


# ── Binders ──────────────────────────────────────────────────────────────


def _bind_common(
    context: GridContext, node: NodeContext, target: MutableMapping[str, str]
) -> MutableMapping[str, str]:
    target[GridHeaderNames.CORRELATION_ID] = context.correlation_id
    target[GridHeaderNames.NODE_ID] = node.node_id
    # Downstream work is caused by the operation this context represents.
    if context.leaf_id is not None:
        target[GridHeaderNames.CAUSATION_ID] = context.leaf_id
    if context.tenant_id is not None:
        target[GridHeaderNames.TENANT_ID] = context.tenant_id
    if context.project_id is not None:
        target[GridHeaderNames.PROJECT_ID] = context.project_id
    for key, value in context.metadata.items():
        target[f"{GridHeaderNames.BAGGAGE_PREFIX}{key}"] = value
    return target


def to_headers(context: GridContext, node: NodeContext) -> dict[str, str]:
    """Headers for an outbound HTTP request or response."""
    return dict(_bind_common(context, node, {}))


def bind_message_properties(
    context: GridContext, node: NodeContext, properties: MutableMapping[str, str]
) -> None:
    """Write grid context into outbound message properties."""
    _bind_common(context, node, properties)
    properties[GridHeaderNames.STUDIO_ID] = node.studio_id
    properties[GridHeaderNames.ENVIRONMENT] = node.environment


def bind_job_metadata(
    context: GridContext, node: NodeContext, metadata: MutableMapping[str, str]
) -> None:
    """Write grid context into the metadata of an enqueued job."""
    bind_message_properties(context, node, metadata)
    metadata["CreatedAtUtc"] = to_iso8601(context.created_at)


# ── JSON envelope ────────────────────────────────────────────────────────


class GridContextEnvelope(BaseModel):
    """Wire shape of a serialized :class:`GridContext` (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    correlation_id: str = Field(min_length=1)
    leaf_id: str | None = None
    causation_chain: list[str] = Field(default_factory=list)
    tenant_id: str | None = None
    project_id: str | None = None
    created_at_utc: datetime | None = None
    baggage: dict[str, str] = Field(default_factory=dict)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


def serialize(context: GridContext, *, include_full_metadata: bool = False) -> str:
    """Serialize *context* to a compact JSON string."""
    baggage = {
        key: value
        for key, value in context.metadata.items()
        if include_full_metadata or not _is_sensitive(key)
    }
    envelope = GridContextEnvelope(
        correlation_id=context.correlation_id,
        leaf_id=context.leaf_id,
        causation_chain=list(context.causation_chain),
        tenant_id=context.tenant_id,
        project_id=context.project_id,
        created_at_utc=context.created_at,
        baggage=baggage,
    )
    return envelope.model_dump_json(by_alias=True)


def deserialize(text: str, *, max_depth: int | None = None) -> GridContext | None:
    """Parse an envelope produced by :func:`serialize`; ``None`` if invalid.

    A causation chain longer than *max_depth* (default
    ``GRID_MAX_CAUSATION_DEPTH``) is rejected like any other invalid input.
    """
    if not text or not text.strip():
        return None
    try:
        envelope = GridContextEnvelope.model_validate_json(text)
    except ValidationError:
        return None

    limit = max_depth if max_depth is not None else get_settings().max_causation_depth
    if len(envelope.causation_chain) > limit:
        logger.warning(
            "grid_context_rejected",
            reason="causation_chain_too_deep",
            depth=len(envelope.causation_chain),
            max_depth=limit,
        )
        return None

    kwargs = {}
    if envelope.created_at_utc is not None:
        kwargs["created_at"] = envelope.created_at_utc
    return GridContext(
        correlation_id=envelope.correlation_id,
        leaf_id=envelope.leaf_id,
        causation_chain=tuple(envelope.causation_chain),
        metadata=envelope.baggage,
        tenant_id=envelope.tenant_id,
        project_id=envelope.project_id,
        **kwargs,
    )


__all__ = [
    "GridHeaderNames",
    "GridContextEnvelope",
    "to_headers",
    "bind_message_properties",
    "bind_job_metadata",
    "serialize",
    "deserialize",
]
