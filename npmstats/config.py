"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass

from npmstats.exceptions import ConfigurationError

DEFAULT_NPM_REGISTRY_URL = "https://registry.npmjs.org"
DEFAULT_NPM_DOWNLOADS_URL = "https://api.npmjs.org"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_BACKEND_URL = "http://localhost:8000"
DEFAULT_HISTORY_NAMESPACE = "npm-stats"


@dataclass
class Settings:
    """Service configuration."""

    github_token: str | None = None
    kv_rest_url: str | None = None
    kv_rest_token: str | None = None
    history_namespace: str = DEFAULT_HISTORY_NAMESPACE
    backend_url: str = DEFAULT_BACKEND_URL
    npm_registry_url: str = DEFAULT_NPM_REGISTRY_URL
    npm_downloads_url: str = DEFAULT_NPM_DOWNLOADS_URL
    github_api_url: str = DEFAULT_GITHUB_API_URL

    @property
    def history_configured(self) -> bool:
        """Whether both key-value REST credentials are present."""
        return bool(self.kv_rest_url and self.kv_rest_token)

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create settings from environment variables.

        Environment variables:
            GITHUB_TOKEN: GitHub API token (optional, raises the rate limit)
            KV_REST_API_URL: Upstash-compatible REST endpoint (optional)
            KV_REST_API_TOKEN: Token for the REST endpoint (optional)
            NPMSTATS_HISTORY_NAMESPACE: Key prefix for history snapshots
            NPMSTATS_BACKEND_URL: Base URL the dashboard session talks to
            NPM_REGISTRY_URL, NPM_DOWNLOADS_URL, GITHUB_API_URL: Upstream overrides

        Raises:
            ConfigurationError: If only one of the key-value settings is set or
                a URL is malformed
        """
        kv_url = os.environ.get("KV_REST_API_URL") or None
        kv_token = os.environ.get("KV_REST_API_TOKEN") or None

        if bool(kv_url) != bool(kv_token):
            raise ConfigurationError(
                "KV_REST_API_URL and KV_REST_API_TOKEN must be set together"
            )

        settings = cls(
            github_token=os.environ.get("GITHUB_TOKEN") or None,
            kv_rest_url=kv_url,
            kv_rest_token=kv_token,
            history_namespace=os.environ.get(
                "NPMSTATS_HISTORY_NAMESPACE", DEFAULT_HISTORY_NAMESPACE
            ),
            backend_url=os.environ.get("NPMSTATS_BACKEND_URL", DEFAULT_BACKEND_URL),
            npm_registry_url=os.environ.get("NPM_REGISTRY_URL", DEFAULT_NPM_REGISTRY_URL),
            npm_downloads_url=os.environ.get("NPM_DOWNLOADS_URL", DEFAULT_NPM_DOWNLOADS_URL),
            github_api_url=os.environ.get("GITHUB_API_URL", DEFAULT_GITHUB_API_URL),
        )

        for name in ("kv_rest_url", "backend_url", "npm_registry_url",
                     "npm_downloads_url", "github_api_url"):
            value = getattr(settings, name)
            if value and not value.startswith(("http://", "https://")):
                raise ConfigurationError(f"Invalid URL for {name}: {value}")

        if not settings.history_namespace:
            raise ConfigurationError("NPMSTATS_HISTORY_NAMESPACE must not be empty")

        return settings
