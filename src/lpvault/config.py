"""Client configuration."""

from __future__ import annotations

from dataclasses import dataclass

from lpvault import __version__

DEFAULT_BASE_URL = "https://lastpass.com"


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """Settings shared by every request a client sends.

    Attributes:
        base_url: Service root, without trailing slash
        timeout: Default per-request timeout in seconds (None disables it)
        user_agent: Value of the User-Agent header
        plugin_version: Client version reported to the blob endpoint
        client_method: Client kind reported in login and mutation forms
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: float | None = 30.0
    user_agent: str = f"lpvault/{__version__}"
    plugin_version: str = "3.0.23"
    client_method: str = "cli"

    def __post_init__(self) -> None:
        """Validate settings."""
        if not self.base_url.startswith(("https://", "http://")):
            raise ValueError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    def url(self, path: str) -> str:
        """Return the absolute URL of an endpoint path."""
        return f"{self.base_url}/{path.lstrip('/')}"
