"""Configuration settings for tinyhci.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
All settings are read once at process startup.
"""

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Fields never rendered by print_settings_json or the /config endpoint
SECRET_FIELDS = frozenset({"webhook_secret", "buildhook_token"})


def _default_toolchains_dir() -> Path:
    """Return the default toolchain install directory."""
    return Path.home() / ".cache" / "tinyhci" / "toolchains"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the TINYHCI_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="TINYHCI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Source control identity
    github_owner: str = Field(
        default="tinygo-org",
        description="Organization or user owning the repository under test",
    )
    github_repo: str = Field(
        default="tinygo",
        description="Repository whose commits are tested",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API",
    )

    # Credentials
    webhook_secret: str = Field(
        default="",
        description="Shared secret used to sign GitHub webhook deliveries",
    )
    github_app_id: int | None = Field(
        default=None,
        description="GitHub App ID used to report check runs",
    )
    github_install_id: int | None = Field(
        default=None,
        description="GitHub App installation ID",
    )
    github_key_file: Path | None = Field(
        default=None,
        description="Path to the GitHub App private key (PEM)",
    )
    buildhook_token: str = Field(
        default="",
        description="Optional token required in X-Buildhook-Token on /buildhook",
    )

    # Artifacts
    default_artifact_url: str = Field(
        default="",
        description="Artifact URL used when a build notification carries none; "
        "may contain a {sha} placeholder",
    )
    artifact_api_url: str = Field(
        default="https://circleci.com/api/v1.1/project/github/tinygo-org/tinygo"
        "/{build_num}/artifacts",
        description="CI artifacts listing URL; {build_num} is substituted",
    )
    artifact_suffix: str = Field(
        default=".linux-amd64.tar.gz",
        description="Suffix identifying the toolchain archive among CI artifacts",
    )
    toolchains_dir: Path = Field(
        default_factory=_default_toolchains_dir,
        description="Root directory where toolchain archives are extracted",
    )

    # Boards
    boards_file: Path | None = Field(
        default=None,
        description="YAML board registry (built-in boards are used if not set)",
    )
    settle_seconds: float = Field(
        default=4.0,
        ge=0,
        description="Delay after flashing before test output is read",
    )
    run_on_push: bool = Field(
        default=True,
        description="Request a run for every registered board on push",
    )

    # Timeouts (in seconds)
    artifact_timeout: float = Field(
        default=900,
        gt=0,
        description="Timeout for downloading and installing a toolchain",
    )
    flash_timeout: float = Field(
        default=120,
        gt=0,
        description="Timeout for a single flash operation",
    )
    test_timeout: float = Field(
        default=60,
        gt=0,
        description="Timeout for a single test operation",
    )

    # Lifecycle
    build_retention_seconds: int = Field(
        default=0,
        ge=0,
        description="Evict finished builds older than this (0 = keep forever)",
    )

    # Reporting
    suite_check_name: str = Field(
        default="tinyhci",
        description="Name of the aggregate check run mirroring suite status",
    )

    # Server
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="HTTP port")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def github_configured(self) -> bool:
        """Whether GitHub App credentials are complete."""
        return (
            self.github_app_id is not None
            and self.github_install_id is not None
            and self.github_key_file is not None
        )

    def public_dump(self) -> dict[str, Any]:
        """Return settings as JSON-compatible data with secrets redacted."""
        data = self.model_dump(mode="json")
        for name in SECRET_FIELDS:
            if data.get(name):
                data[name] = "***"
        return data


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings, secrets redacted.
    """
    if settings is None:
        settings = get_settings()
    return json.dumps(settings.public_dump(), indent=2)


__all__ = ["SECRET_FIELDS", "Settings", "get_settings", "print_settings_json"]
