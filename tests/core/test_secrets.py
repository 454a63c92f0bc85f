"""Tests for secret backends and CompositeSecretsSource."""

import pytest

from gridkernel.core.errors import MissingSecretError
from gridkernel.core.protocols import SecretsSource
from gridkernel.core.secrets import (
    CompositeSecretsSource,
    DictSecretBackend,
    EnvSecretBackend,
    FileSecretBackend,
    SecretValue,
)


class CountingSource:
    """Records every probe."""

    def __init__(self, name: str, secrets: dict[str, str]):
        self.name = name
        self.secrets = secrets
        self.calls: list[str] = []

    def try_get_secret(self, key: str) -> tuple[bool, str | None]:
        self.calls.append(key)
        if key in self.secrets:
            return True, self.secrets[key]
        return False, None


class TestSecretValue:
    def test_redacted(self):
        sv = SecretValue("hunter2")
        assert str(sv) == "[REDACTED]"
        assert "hunter2" not in repr(sv)
        assert sv.get_secret() == "hunter2"

    def test_equality_and_truthiness(self):
        assert SecretValue("a") == SecretValue("a")
        assert SecretValue("a") != SecretValue("b")
        assert not SecretValue("")


class TestEnvSecretBackend:
    def test_direct_name(self, monkeypatch):
        monkeypatch.setenv("API_TOKEN", "direct")
        assert EnvSecretBackend().get("api_token") == "direct"

    def test_prefixed_name(self, monkeypatch):
        monkeypatch.delenv("API_TOKEN", raising=False)
        monkeypatch.setenv("GRID_SECRET_API_TOKEN", "prefixed")
        assert EnvSecretBackend().get("api_token") == "prefixed"

    def test_suffixed_name(self, monkeypatch):
        monkeypatch.delenv("API_TOKEN", raising=False)
        monkeypatch.delenv("GRID_SECRET_API_TOKEN", raising=False)
        monkeypatch.setenv("API_TOKEN_SECRET", "suffixed")
        assert EnvSecretBackend().get("api_token") == "suffixed"

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("GRIDKERNEL_TEST_NOPE", raising=False)
        assert EnvSecretBackend().try_get_secret("gridkernel_test_nope") == (False, None)


class TestFileSecretBackend:
    def test_reads_and_strips(self, tmp_path):
        (tmp_path / "db_password").write_text("s3cret\n")
        assert FileSecretBackend(tmp_path).try_get_secret("db_password") == (True, "s3cret")

    def test_missing_file(self, tmp_path):
        assert FileSecretBackend(tmp_path).get("nope") is None

    def test_path_traversal_rejected(self, tmp_path):
        outside = tmp_path / "outside"
        outside.write_text("leak")
        inner = tmp_path / "secrets"
        inner.mkdir()
        assert FileSecretBackend(inner).get("../outside") is None


class TestCompositeSecretsSource:
    def test_satisfies_protocol(self):
        assert isinstance(CompositeSecretsSource(), SecretsSource)

    def test_first_match_wins_and_later_sources_not_probed(self):
        first = CountingSource("first", {"k": "one"})
        second = CountingSource("second", {"k": "two"})
        composite = CompositeSecretsSource([first, second])

        assert composite.try_get_secret("k") == (True, "one")
        assert second.calls == []

    def test_falls_through_to_later_source(self):
        first = CountingSource("first", {})
        second = CountingSource("second", {"k": "two"})
        composite = CompositeSecretsSource([first, second])

        assert composite.try_get_secret("k") == (True, "two")
        assert first.calls == ["k"]

    def test_empty_composite_finds_nothing(self):
        assert CompositeSecretsSource().try_get_secret("k") == (False, None)

    def test_resolve_raises_with_tried_sources(self):
        composite = CompositeSecretsSource([DictSecretBackend(), CountingSource("vault", {})])
        with pytest.raises(MissingSecretError) as exc_info:
            composite.resolve("missing")
        assert exc_info.value.tried_sources == ["DictSecretBackend", "vault"]

    def test_resolve_default(self):
        assert CompositeSecretsSource().resolve("missing", default=None) is None
        assert CompositeSecretsSource().resolve("missing", default="x") == "x"

    def test_resolve_secret_value(self):
        composite = CompositeSecretsSource([DictSecretBackend({"k": "v"})])
        assert composite.resolve_secret_value("k").get_secret() == "v"

    def test_no_caching(self):
        backend = DictSecretBackend({"k": "old"})
        composite = CompositeSecretsSource([backend])
        assert composite.resolve("k") == "old"
        backend.set("k", "new")
        assert composite.resolve("k") == "new"

    def test_add_source_priority(self):
        composite = CompositeSecretsSource([DictSecretBackend({"k": "low"})])
        composite.add_source(DictSecretBackend({"k": "high"}), priority=0)
        assert composite.resolve("k") == "high"
        assert composite.contains("k")
        assert not composite.contains("other")
