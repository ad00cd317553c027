"""Tests for ClientSettings."""

import pytest

from lpvault import __version__
from lpvault.config import DEFAULT_BASE_URL, ClientSettings


class TestClientSettings:
    """Tests for ClientSettings."""

    def test_defaults(self) -> None:
        """Test default values."""
        settings = ClientSettings()
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.timeout == 30.0
        assert settings.user_agent == f"lpvault/{__version__}"
        assert settings.plugin_version == "3.0.23"
        assert settings.client_method == "cli"

    def test_trailing_slash_removed(self) -> None:
        """Test base URL normalisation."""
        settings = ClientSettings(base_url="https://eu.lastpass.com/")
        assert settings.url("/login.php") == "https://eu.lastpass.com/login.php"

    def test_invalid_base_url(self) -> None:
        """Test that non-HTTP base URLs are rejected."""
        with pytest.raises(ValueError, match="http"):
            ClientSettings(base_url="lastpass.com")

    def test_invalid_timeout(self) -> None:
        """Test that non-positive timeouts are rejected."""
        with pytest.raises(ValueError, match="timeout"):
            ClientSettings(timeout=0)

    def test_no_timeout(self) -> None:
        """Test that timeouts can be disabled."""
        assert ClientSettings(timeout=None).timeout is None
