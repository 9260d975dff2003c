"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tinyhci.config import Settings, get_settings, print_settings_json


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        settings = Settings(_env_file=None)

        assert settings.github_owner == "tinygo-org"
        assert settings.github_repo == "tinygo"
        expected = Path.home() / ".cache" / "tinyhci" / "toolchains"
        assert settings.toolchains_dir == expected
        assert settings.settle_seconds == 4.0
        assert settings.run_on_push is True
        assert settings.build_retention_seconds == 0
        assert settings.port == 8000
        assert settings.log_level == "INFO"
        assert settings.github_configured is False

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "TINYHCI_GITHUB_APP_ID": "12",
                "TINYHCI_GITHUB_INSTALL_ID": "34",
                "TINYHCI_GITHUB_KEY_FILE": "/etc/tinyhci/key.pem",
                "TINYHCI_SETTLE_SECONDS": "1.5",
                "TINYHCI_RUN_ON_PUSH": "false",
            },
        ):
            settings = Settings(_env_file=None)
            assert settings.github_app_id == 12
            assert settings.github_key_file == Path("/etc/tinyhci/key.pem")
            assert settings.settle_seconds == 1.5
            assert settings.run_on_push is False
            assert settings.github_configured is True

    def test_invalid_values_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, flash_timeout=0)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")

    def test_public_dump_redacts_secrets(self) -> None:
        settings = Settings(_env_file=None, webhook_secret="hunter2")
        data = settings.public_dump()
        assert data["webhook_secret"] == "***"
        assert data["buildhook_token"] == ""
        assert data["toolchains_dir"] == str(settings.toolchains_dir)


class TestGetSettings:
    """Test get_settings function."""

    def test_returns_settings(self) -> None:
        assert isinstance(get_settings(), Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_valid_json(self) -> None:
        settings = Settings(_env_file=None, webhook_secret="hunter2")
        data = json.loads(print_settings_json(settings))
        assert data["github_repo"] == "tinygo"
        assert "hunter2" not in json.dumps(data)
