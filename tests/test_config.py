"""Tests for settings loaded from the environment."""

import pytest

from npmstats.config import DEFAULT_BACKEND_URL, Settings
from npmstats.exceptions import ConfigurationError

ENV_VARS = [
    "GITHUB_TOKEN",
    "KV_REST_API_URL",
    "KV_REST_API_TOKEN",
    "NPMSTATS_HISTORY_NAMESPACE",
    "NPMSTATS_BACKEND_URL",
    "NPM_REGISTRY_URL",
    "NPM_DOWNLOADS_URL",
    "GITHUB_API_URL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings.from_env()

    assert settings.github_token is None
    assert not settings.history_configured
    assert settings.history_namespace == "npm-stats"
    assert settings.backend_url == DEFAULT_BACKEND_URL


def test_full_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_abc")
    monkeypatch.setenv("KV_REST_API_URL", "https://kv.example.test")
    monkeypatch.setenv("KV_REST_API_TOKEN", "secret")
    monkeypatch.setenv("NPMSTATS_HISTORY_NAMESPACE", "staging")

    settings = Settings.from_env()

    assert settings.github_token == "ghp_abc"
    assert settings.history_configured
    assert settings.history_namespace == "staging"


@pytest.mark.parametrize("present", ["KV_REST_API_URL", "KV_REST_API_TOKEN"])
def test_half_configured_store_is_rejected(monkeypatch: pytest.MonkeyPatch, present: str) -> None:
    monkeypatch.setenv(present, "https://kv.example.test")

    with pytest.raises(ConfigurationError):
        Settings.from_env()


def test_malformed_url_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_API_URL", "api.github.com")

    with pytest.raises(ConfigurationError) as exc_info:
        Settings.from_env()

    assert "github_api_url" in exc_info.value.message


def test_empty_namespace_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NPMSTATS_HISTORY_NAMESPACE", "")

    with pytest.raises(ConfigurationError):
        Settings.from_env()
