"""
Shared pytest fixtures and configuration for grid-kernel tests.

This module provides:
- Deterministic clock and id generator fakes
- Settings cache and node-context cleanup for test isolation

Usage:
    Fixtures are auto-discovered by pytest; request them by argument name.

    def test_something(clock, ids):
        ...
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Ensure gridkernel package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gridkernel.context.node import reset_node_context
from gridkernel.core.settings import clear_settings_cache


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Deterministic collaborators
# =============================================================================


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        self.ticks = 0

    def now(self) -> datetime:
        return self.current

    def monotonic_ticks(self) -> int:
        return self.ticks

    def advance(self, ms: float) -> None:
        self.current += timedelta(milliseconds=ms)
        self.ticks += int(ms * 1_000_000)


class SequentialIds:
    """IdGenerator yielding ``<prefix>-0001``, ``<prefix>-0002``, ..."""

    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self.count = 0

    def new_opaque_id(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count:04d}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_kernel_state(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Reset cached settings and the node singleton around every test."""
    for var in ("GRID_MAX_CAUSATION_DEPTH", "GRID_NODE_ID", "GRID_HEALTH_CHECK_TIMEOUT_S"):
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    reset_node_context()
    yield
    clear_settings_cache()
    reset_node_context()
