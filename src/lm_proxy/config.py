"""Proxy configuration - where we forward to and where usage goes."""

import os
from dataclasses import dataclass

DEFAULT_UPSTREAM_URL = "https://api.openai.com/v1"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000


@dataclass(frozen=True)
class Config:
    """Resolved once at startup, read-only afterwards."""

    upstream_url: str = DEFAULT_UPSTREAM_URL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    metrics_url: str | None = None

    def __post_init__(self):
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Invalid port: {self.port}")

    @property
    def listen_addr(self) -> str:
        return f"{self.host}:{self.port}"

    def upstream_url_for_path(self, path: str) -> str:
        """Returns the full URL for a given API path (e.g. "/chat/completions")."""
        return f"{self.upstream_url.rstrip('/')}{path}"

    @classmethod
    def from_env(cls) -> "Config":
        """Build a config from UPSTREAM_URL, HOST, PORT and METRICS_URL."""
        return cls(
            upstream_url=os.environ.get("UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
            host=os.environ.get("HOST", DEFAULT_HOST),
            port=int(os.environ.get("PORT", DEFAULT_PORT)),
            metrics_url=os.environ.get("METRICS_URL") or None,
        )
