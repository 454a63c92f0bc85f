"""Node lifecycle: ordered startup/shutdown hooks, rollback and the probe host."""

from gridkernel.lifecycle.hooks import ActionLog, HookFailure, HookPhase, HookRegistration
from gridkernel.lifecycle.host import NodeLifecycleHost, create_health_router
from gridkernel.lifecycle.manager import (
    VALID_TRANSITIONS,
    LifecyclePhase,
    LifecycleResult,
    NodeLifecycleManager,
    PhaseTransition,
)

__all__ = [
    "ActionLog",
    "HookFailure",
    "HookPhase",
    "HookRegistration",
    "NodeLifecycleHost",
    "create_health_router",
    "VALID_TRANSITIONS",
    "LifecyclePhase",
    "LifecycleResult",
    "NodeLifecycleManager",
    "PhaseTransition",
]
