"""Toolchain artifact module.

This module handles:
- Resolving the toolchain archive URL for a CI build
- Downloading and extracting the toolchain for a commit
"""

from tinyhci.artifacts.builder import (
    ArtifactBuilder,
    ArtifactError,
    ArtifactResult,
    DownloadError,
    ExtractionError,
    ToolchainInstaller,
    toolchain_dir,
    toolchain_env,
)
from tinyhci.artifacts.resolve import (
    ArtifactResolveError,
    default_artifact_url,
    resolve_artifact_url,
)

__all__ = [
    "ArtifactBuilder",
    "ArtifactError",
    "ArtifactResolveError",
    "ArtifactResult",
    "DownloadError",
    "ExtractionError",
    "ToolchainInstaller",
    "default_artifact_url",
    "resolve_artifact_url",
    "toolchain_dir",
    "toolchain_env",
]
