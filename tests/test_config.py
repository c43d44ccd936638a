"""
Test suite for runtime settings.

Run with: pytest tests/test_config.py -v
"""
from __future__ import annotations

from src.reel_flow.config import RuntimeSettings


class TestRuntimeSettings:
    """Test loading settings from the environment."""

    def test_defaults(self):
        settings = RuntimeSettings.from_env({})

        assert settings.analytics_base_url == "http://localhost:5000"
        assert settings.batch_delay == 2.0
        assert settings.max_batch_size == 10
        assert settings.max_retries == 3
        assert settings.request_timeout == 10.0
        assert settings.beacon_timeout == 2.0

    def test_environment_overrides(self):
        settings = RuntimeSettings.from_env({
            "REEL_ANALYTICS_URL": "https://collector.example.com",
            "REEL_BATCH_DELAY": "0.5",
            "REEL_MAX_BATCH_SIZE": "25",
            "REEL_MAX_RETRIES": " 1 ",
        })

        assert settings.analytics_base_url == "https://collector.example.com"
        assert settings.batch_delay == 0.5
        assert settings.max_batch_size == 25
        assert settings.max_retries == 1

    def test_blank_values_ignored(self):
        settings = RuntimeSettings.from_env({"REEL_MAX_RETRIES": "  "})

        assert settings.max_retries == 3

    def test_invalid_values_fall_back_to_defaults(self):
        """Test that a bad variable is logged and defaults are used."""
        settings = RuntimeSettings.from_env({"REEL_MAX_BATCH_SIZE": "0", "REEL_BATCH_DELAY": "soon"})

        assert settings.max_batch_size == 10
        assert settings.batch_delay == 2.0

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("REEL_BEACON_TIMEOUT", "4")

        assert RuntimeSettings.from_env().beacon_timeout == 4.0
