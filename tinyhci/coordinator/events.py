"""Events consumed by the coordinator.

Ingress maps provider-specific payloads onto these three shapes; the
coordinator never sees provider schemas.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class CommitDiscovered:
    """A new commit is known."""

    sha: str


@dataclass(frozen=True)
class RunRequested:
    """A target must be (re)tested on a commit."""

    sha: str
    target: str


@dataclass(frozen=True)
class ArtifactReady:
    """The toolchain artifact for a commit has been built."""

    sha: str
    url: str


Event = CommitDiscovered | RunRequested | ArtifactReady

__all__ = ["ArtifactReady", "CommitDiscovered", "Event", "RunRequested"]
