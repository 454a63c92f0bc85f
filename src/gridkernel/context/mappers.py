"""
Context mappers: inbound boundary events → root GridContext.

Each mapper either adopts the correlation id carried by the event or mints
one, and copies propagated metadata. Mappers are pure: they return a new
:class:`GridContext` and never touch the ambient carrier.

    ┌────────────────────┬──────────────────────────────────────────────┐
    │ Mapper             │ Correlation id source (first match)          │
    ├────────────────────┼──────────────────────────────────────────────┤
    │ HttpContextMapper  │ X-Correlation-Id → traceparent trace id → new │
    │ JobContextMapper   │ job id (ad-hoc) / new (scheduled)            │
    │ MessagingContext.. │ CorrelationId → correlation-id →             │
    │                    │ X-Correlation-Id → new                       │
    └────────────────────┴──────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from urllib.parse import unquote

from gridkernel.context.grid import GridContext
from gridkernel.context.propagation import GridHeaderNames
from gridkernel.core.protocols import Clock, IdGenerator
from gridkernel.core.timestamps import SystemClock, UlidGenerator, to_iso8601


class _Mapper:
    def __init__(self, id_generator: IdGenerator | None = None, clock: Clock | None = None):
        self.id_generator = id_generator or UlidGenerator()
        self.clock = clock or SystemClock()

    def _root(
        self,
        *,
        correlation_id: str | None,
        causation_id: str | None = None,
        tenant_id: str | None = None,
        project_id: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> GridContext:
        return GridContext.create_root(
            self.id_generator,
            correlation_id=correlation_id,
            causation_id=causation_id,
            tenant_id=tenant_id,
            project_id=project_id,
            metadata=metadata,
            clock=self.clock,
        )


def _non_blank(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class HttpContextMapper(_Mapper):
    """Map inbound HTTP request headers to a root context.

    Header lookup is case-insensitive. Accepts any ``Mapping[str, str]``
    (a plain dict, Starlette ``Headers``, ...).
    """

    def map(self, headers: Mapping[str, str]) -> GridContext:
        lowered = {key.lower(): value for key, value in headers.items()}

        def header(name: str) -> str | None:
            return _non_blank(lowered.get(name.lower()))

        return self._root(
            correlation_id=header(GridHeaderNames.CORRELATION_ID)
            or self._trace_id(header(GridHeaderNames.TRACE_PARENT)),
            causation_id=header(GridHeaderNames.CAUSATION_ID),
            tenant_id=header(GridHeaderNames.TENANT_ID),
            project_id=header(GridHeaderNames.PROJECT_ID),
            metadata=self._baggage(headers, header(GridHeaderNames.BAGGAGE)),
        )

    @staticmethod
    def _trace_id(traceparent: str | None) -> str | None:
        # version-traceid-spanid-flags
        if traceparent is None:
            return None
        parts = traceparent.split("-")
        if len(parts) >= 2 and parts[1]:
            return parts[1]
        return None

    @staticmethod
    def _baggage(headers: Mapping[str, str], baggage_header: str | None) -> dict[str, str]:
        baggage: dict[str, str] = {}

        # W3C baggage: key1=value1;prop,key2=value2
        if baggage_header:
            for item in baggage_header.split(","):
                pair = item.split(";", 1)[0].strip()
                key, sep, value = pair.partition("=")
                key, value = key.strip(), value.strip()
                if not sep or not key or not value:
                    continue
                baggage[key] = unquote(value)

        prefix = GridHeaderNames.BAGGAGE_PREFIX.lower()
        for name, value in headers.items():
            if name.lower().startswith(prefix) and _non_blank(value):
                baggage[name[len(prefix):]] = value.strip()

        return baggage


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class JobContextMapper(_Mapper):
    """Map background job invocations to a root context."""

    def map(
        self,
        job_id: str,
        job_type: str,
        parameters: Mapping[str, str] | None = None,
    ) -> GridContext:
        """Ad-hoc job: the job id is the correlation id for all its work."""
        if not job_id or not job_type:
            raise ValueError("job_id and job_type are required")

        metadata = {"job-type": job_type, "job-id": job_id}
        for key, value in (parameters or {}).items():
            metadata[f"job-param-{key}"] = value

        return self._root(correlation_id=job_id, metadata=metadata)

    def map_scheduled(self, job_name: str, execution_time: datetime) -> GridContext:
        """Scheduled run: every execution gets its own correlation id."""
        if not job_name:
            raise ValueError("job_name is required")

        return self._root(
            correlation_id=None,
            metadata={
                "job-type": "scheduled",
                "job-name": job_name,
                "scheduled-time": to_iso8601(execution_time),
            },
        )


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------

_MESSAGE_KEYS: dict[str, tuple[str, ...]] = {
    "correlation": ("CorrelationId", "correlation-id", GridHeaderNames.CORRELATION_ID),
    "causation": ("CausationId", "causation-id", GridHeaderNames.CAUSATION_ID),
    "tenant": ("TenantId", "tenant-id", GridHeaderNames.TENANT_ID),
    "project": ("ProjectId", "project-id", GridHeaderNames.PROJECT_ID),
}

_MESSAGE_BAGGAGE_PREFIX = "baggage-"


class MessagingContextMapper(_Mapper):
    """Map message properties (queue/bus metadata) to a root context."""

    def map(self, properties: Mapping[str, str]) -> GridContext:
        def first(kind: str) -> str | None:
            for key in _MESSAGE_KEYS[kind]:
                value = _non_blank(properties.get(key))
                if value is not None:
                    return value
            return None

        baggage = {
            key[len(_MESSAGE_BAGGAGE_PREFIX):]: value
            for key, value in properties.items()
            if key.lower().startswith(_MESSAGE_BAGGAGE_PREFIX)
        }

        return self._root(
            correlation_id=first("correlation"),
            causation_id=first("causation"),
            tenant_id=first("tenant"),
            project_id=first("project"),
            metadata=baggage,
        )


__all__ = ["HttpContextMapper", "JobContextMapper", "MessagingContextMapper"]
