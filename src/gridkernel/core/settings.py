"""
Centralized settings for grid-kernel.

Manifesto:
    One validated, cached settings object supplies the defaults every kernel
    component falls back to when the host does not pass an explicit value:
    node identity, the causation depth limit, the per-check health timeout
    and logging options.

All fields can be set via ``GRID_*`` environment variables (e.g.
``GRID_MAX_CAUSATION_DEPTH=32``) or a ``.env`` file.

Tags:
    grid-kernel, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KernelSettings(BaseSettings):
    """grid-kernel configuration.

    Fields
    ──────
    node_id                : Logical node name (e.g. ``"orders-api"``)
    studio_id              : Studio the node belongs to
    environment            : Deployment environment
    version                : Node version reported in NodeContext
    max_causation_depth    : Longest causation chain derive_child allows and deserialize accepts
    health_check_timeout_s : Per-check timeout used by CompositeHealthCheck
    log_level / log_format : structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="GRID_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Identity ─────────────────────────────────────────────────
    node_id: str = Field(default="grid-node")
    studio_id: str = Field(default="default")
    environment: str = Field(default="development")
    version: str = Field(default="0.0.0")

    # ── Context ──────────────────────────────────────────────────
    max_causation_depth: int = Field(default=64, ge=1)

    # ── Health ───────────────────────────────────────────────────
    health_check_timeout_s: float = Field(default=5.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, KernelSettings] = {}


def get_settings(*, _force_reload: bool = False) -> KernelSettings:
    """Load, validate, and cache a :class:`KernelSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = KernelSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    _settings_cache.clear()


__all__ = ["KernelSettings", "get_settings", "clear_settings_cache"]
