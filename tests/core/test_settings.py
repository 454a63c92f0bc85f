"""Tests for KernelSettings and the cached loader."""

import pytest
from pydantic import ValidationError

from gridkernel.core.settings import KernelSettings, clear_settings_cache, get_settings


class TestKernelSettings:
    def test_defaults(self):
        settings = KernelSettings(_env_file=None)
        assert settings.max_causation_depth == 64
        assert settings.health_check_timeout_s == 5.0
        assert settings.log_format == "console"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("GRID_NODE_ID", "orders-api")
        monkeypatch.setenv("GRID_MAX_CAUSATION_DEPTH", "8")
        settings = KernelSettings(_env_file=None)
        assert settings.node_id == "orders-api"
        assert settings.max_causation_depth == 8

    def test_depth_must_be_positive(self):
        with pytest.raises(ValidationError):
            KernelSettings(_env_file=None, max_causation_depth=0)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            KernelSettings(_env_file=None, health_check_timeout_s=0)


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_force_reload(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("GRID_NODE_ID", "reloaded")
        second = get_settings(_force_reload=True)
        assert second is not first
        assert second.node_id == "reloaded"

    def test_clear_cache(self, monkeypatch):
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first
