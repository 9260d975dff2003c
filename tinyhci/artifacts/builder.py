"""Toolchain artifact installation.

This module handles:
- Streaming a toolchain archive from its artifact URL
- Safe extraction into a per-commit toolchain directory
- Reuse of a toolchain already installed for the same commit and URL
- Environment setup so flash commands use the installed toolchain

Installed layout::

    <toolchains_dir>/<sha>/tinygo/bin/tinygo
    <toolchains_dir>/<sha>/.installed      (contains the source URL)
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tarfile
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024

# Directory name of the toolchain inside the archive
TOOLCHAIN_ROOT_NAME = "tinygo"

INSTALLED_MARKER = ".installed"


class ArtifactError(Exception):
    """Base error for artifact installation."""

    def __init__(self, message: str, code: str = "artifact_error") -> None:
        super().__init__(message)
        self.code = code


class DownloadError(ArtifactError):
    """Raised when an artifact download fails."""

    def __init__(self, message: str, code: str = "download_error") -> None:
        super().__init__(message, code=code)


class ExtractionError(ArtifactError):
    """Raised when archive extraction fails."""

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        super().__init__(message, code=code)


@dataclass
class ArtifactResult:
    """Result of installing a toolchain artifact.

    Attributes:
        success: Whether the toolchain is installed and usable.
        log: Human-readable log of what happened.
        toolchain_dir: Install directory on success.
        cached: Whether an existing install was reused.
    """

    success: bool
    log: str
    toolchain_dir: Path | None = None
    cached: bool = False


class ArtifactBuilder(Protocol):
    """Produces a runnable toolchain for a commit."""

    async def build(self, sha: str, binary_url: str) -> ArtifactResult:
        """Install the toolchain for sha from binary_url."""
        ...


def toolchain_dir(toolchains_dir: Path, sha: str) -> Path:
    """Return the install directory for a commit's toolchain."""
    return toolchains_dir / sha


def toolchain_env(
    toolchains_dir: Path,
    sha: str,
    base_env: dict[str, str] | None = None,
) -> dict[str, str]:
    """Return an environment that puts the commit's toolchain first on PATH.

    Args:
        toolchains_dir: Root toolchain directory.
        sha: Commit identifier.
        base_env: Environment to extend (defaults to os.environ).

    Returns:
        New environment mapping.
    """
    env = dict(os.environ if base_env is None else base_env)
    root = toolchain_dir(toolchains_dir, sha) / TOOLCHAIN_ROOT_NAME
    env["PATH"] = os.pathsep.join(
        p for p in (str(root / "bin"), env.get("PATH", "")) if p
    )
    env["TINYGOROOT"] = str(root)
    return env


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> int:
    """Stream a file to disk.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to write.

    Returns:
        Number of bytes written.

    Raises:
        DownloadError: If the download fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)

    try:
        with client.stream(
            "GET", url, timeout=timeout, follow_redirects=True
        ) as response:
            response.raise_for_status()
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            total_bytes = 0
            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    total_bytes += len(chunk)
    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error downloading {url}: "
            f"{e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(f"Timeout downloading {url}", code="timeout") from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error downloading {url}: {e}", code="network_error"
        ) from e

    logger.info("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return total_bytes


def extract_archive(archive_path: Path, dest_dir: Path) -> None:
    """Extract a gzip/xz/plain tar archive into dest_dir.

    Raises:
        ExtractionError: If the archive is empty, unsafe or unreadable.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(archive_path, "r:*") as tar:
            members = tar.getmembers()
            if not members:
                raise ExtractionError(
                    f"Archive {archive_path.name} is empty", code="empty_archive"
                )
            for member in members:
                member_path = Path(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise ExtractionError(
                        f"Refusing to extract {member.name}: path traversal detected",
                        code="path_traversal",
                    )
            tar.extractall(dest_dir, filter="data")
    except tarfile.TarError as e:
        raise ExtractionError(
            f"Failed to extract {archive_path.name}: {e}", code="tar_error"
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path.name}: {e}", code="os_error"
        ) from e


class ToolchainInstaller:
    """ArtifactBuilder that downloads and extracts a toolchain archive."""

    def __init__(
        self,
        toolchains_dir: Path,
        client_factory: Callable[[], httpx.Client] = httpx.Client,
        download_timeout: float = DOWNLOAD_TIMEOUT,
    ) -> None:
        self.toolchains_dir = toolchains_dir
        self._client_factory = client_factory
        self._download_timeout = download_timeout

    def is_installed(self, sha: str, binary_url: str) -> bool:
        """Whether the toolchain for sha was already installed from binary_url."""
        marker = toolchain_dir(self.toolchains_dir, sha) / INSTALLED_MARKER
        try:
            return marker.read_text(encoding="utf-8").strip() == binary_url
        except OSError:
            return False

    def install(self, sha: str, binary_url: str) -> ArtifactResult:
        """Download and extract the toolchain synchronously.

        Errors are captured into the returned ArtifactResult rather than
        raised, so the log can be reported verbatim.
        """
        dest = toolchain_dir(self.toolchains_dir, sha)
        if self.is_installed(sha, binary_url):
            logger.info("Toolchain for %s already installed at %s", sha[:12], dest)
            return ArtifactResult(
                success=True,
                log=f"Reusing toolchain installed from {binary_url}",
                toolchain_dir=dest,
                cached=True,
            )

        log: list[str] = [f"Installing toolchain for {sha} from {binary_url}"]
        self.toolchains_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f".{sha[:12]}_", dir=self.toolchains_dir)
        )
        try:
            archive = staging / "toolchain.tar"
            with self._client_factory() as client:
                size = download_file(
                    client, binary_url, archive, timeout=self._download_timeout
                )
            log.append(f"Downloaded {size} bytes")

            extracted = staging / "root"
            extract_archive(archive, extracted)
            if not (extracted / TOOLCHAIN_ROOT_NAME).is_dir():
                raise ExtractionError(
                    f"Archive does not contain a '{TOOLCHAIN_ROOT_NAME}/' directory",
                    code="bad_layout",
                )

            if dest.exists():
                shutil.rmtree(dest)
            extracted.rename(dest)
            (dest / INSTALLED_MARKER).write_text(binary_url + "\n", encoding="utf-8")
            log.append(f"Installed to {dest}")
            logger.info("Installed toolchain for %s at %s", sha[:12], dest)
            return ArtifactResult(success=True, log="\n".join(log), toolchain_dir=dest)

        except ArtifactError as e:
            logger.error("Toolchain install for %s failed: %s", sha[:12], e)
            log.append(f"ERROR [{e.code}]: {e}")
            return ArtifactResult(success=False, log="\n".join(log))
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    async def build(self, sha: str, binary_url: str) -> ArtifactResult:
        """Install the toolchain without blocking the event loop."""
        return await asyncio.to_thread(self.install, sha, binary_url)


__all__ = [
    "ArtifactBuilder",
    "ArtifactError",
    "ArtifactResult",
    "DownloadError",
    "ExtractionError",
    "ToolchainInstaller",
    "download_file",
    "extract_archive",
    "toolchain_dir",
    "toolchain_env",
]
