"""grid-kernel core primitives.

Architecture::

    errors.py      GridKernelError hierarchy + ErrorCategory
    protocols.py   Clock, IdGenerator, SecretsSource, HealthCheck
    timestamps.py  ULID generation, UTC helpers, SystemClock
    reducers.py    reduce_by_priority (shared by secrets and health)
    secrets.py     Secret backends + CompositeSecretsSource
    health.py      HealthStatus, results, CompositeHealthCheck
    settings.py    KernelSettings (GRID_* env vars)
    logging.py     structlog configuration
"""

from gridkernel.core.errors import (
    ChainTooDeepError,
    ContextNotInitializedError,
    ErrorCategory,
    GridKernelError,
    KernelInvariantError,
    MissingSecretError,
    RegistrationClosedError,
)
from gridkernel.core.health import (
    AggregateHealth,
    CompositeHealthCheck,
    FunctionHealthCheck,
    HealthCheckResult,
    HealthStatus,
)
from gridkernel.core.logging import configure_logging, get_logger
from gridkernel.core.protocols import Clock, HealthCheck, IdGenerator, SecretsSource
from gridkernel.core.reducers import reduce_by_priority
from gridkernel.core.secrets import (
    CompositeSecretsSource,
    DictSecretBackend,
    EnvSecretBackend,
    FileSecretBackend,
    SecretValue,
)
from gridkernel.core.settings import KernelSettings, clear_settings_cache, get_settings
from gridkernel.core.timestamps import SystemClock, UlidGenerator, generate_ulid, utc_now

__all__ = [
    "ChainTooDeepError",
    "ContextNotInitializedError",
    "ErrorCategory",
    "GridKernelError",
    "KernelInvariantError",
    "MissingSecretError",
    "RegistrationClosedError",
    "AggregateHealth",
    "CompositeHealthCheck",
    "FunctionHealthCheck",
    "HealthCheckResult",
    "HealthStatus",
    "configure_logging",
    "get_logger",
    "Clock",
    "HealthCheck",
    "IdGenerator",
    "SecretsSource",
    "reduce_by_priority",
    "CompositeSecretsSource",
    "DictSecretBackend",
    "EnvSecretBackend",
    "FileSecretBackend",
    "SecretValue",
    "KernelSettings",
    "clear_settings_cache",
    "get_settings",
    "SystemClock",
    "UlidGenerator",
    "generate_ulid",
    "utc_now",
]
