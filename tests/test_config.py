"""
Tests for harness settings.
"""

import pytest
from pydantic import ValidationError

from harness.core.config import Settings, get_settings


class TestSettings:
    """Tests for environment loading and validation."""

    def test_defaults(self, monkeypatch):
        for name in ("BACKEND_URL", "TEST_TIMEOUT", "COMPOSE_PROJECT", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.backend_url == "http://localhost:5055"
        assert settings.frontend_url == "http://localhost:5056"
        assert settings.test_timeout == 600_000
        assert settings.test_timeout_seconds == 600.0
        assert settings.health_interval_ms == 3_000
        assert settings.resolved_network_name == "figure-collector-integration_integration-network"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BACKEND_URL", "http://backend:5000/")
        monkeypatch.setenv("TEST_TIMEOUT", "30000")
        monkeypatch.setenv("COVERAGE_ENABLED", "true")

        settings = Settings(_env_file=None)

        assert settings.backend_url == "http://backend:5000"
        assert settings.test_timeout_seconds == 30.0
        assert settings.coverage_enabled is True

    def test_explicit_network_name(self):
        settings = Settings(_env_file=None, network_name="custom-net")
        assert settings.resolved_network_name == "custom-net"

    def test_log_level_normalized(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_format="xml")

    def test_timeout_lower_bound(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, test_timeout=10)

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
