"""
grid-kernel: runtime foundation for grid nodes.

Gives every independently deployed process ("node") the same three
cross-cutting concerns:

- correlation/causation tracking across concurrent execution paths
  (:mod:`gridkernel.context`);
- ordered, reversible lifecycle orchestration (:mod:`gridkernel.lifecycle`);
- health and readiness aggregation (:mod:`gridkernel.core.health`).
"""

__version__ = "0.1.0"

from gridkernel.context import (  # noqa: E402
    ContextCarrier,
    GridContext,
    NodeContext,
    OperationContext,
    OperationTracker,
    grid_carrier,
)
from gridkernel.core import (  # noqa: E402
    CompositeHealthCheck,
    CompositeSecretsSource,
    GridKernelError,
    HealthStatus,
    get_settings,
)
from gridkernel.lifecycle import (  # noqa: E402
    LifecyclePhase,
    NodeLifecycleHost,
    NodeLifecycleManager,
)

__all__ = [
    "__version__",
    "ContextCarrier",
    "GridContext",
    "NodeContext",
    "OperationContext",
    "OperationTracker",
    "grid_carrier",
    "CompositeHealthCheck",
    "CompositeSecretsSource",
    "GridKernelError",
    "HealthStatus",
    "get_settings",
    "LifecyclePhase",
    "NodeLifecycleHost",
    "NodeLifecycleManager",
]
