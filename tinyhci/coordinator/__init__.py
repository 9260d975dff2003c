"""Build lifecycle coordination module.

This module handles:
- The in-memory Build/Run model and the lock-guarded build index
- Reduction of ingress events into builds
- The single worker that serializes flash/test cycles on the boards
"""

from tinyhci.coordinator.events import (
    ArtifactReady,
    CommitDiscovered,
    Event,
    RunRequested,
)
from tinyhci.coordinator.index import BuildIndex, BuildNotFoundError
from tinyhci.coordinator.models import Build, InvalidTransitionError, Run
from tinyhci.coordinator.service import Coordinator, create_coordinator

__all__ = [
    "ArtifactReady",
    "Build",
    "BuildIndex",
    "BuildNotFoundError",
    "CommitDiscovered",
    "Coordinator",
    "Event",
    "InvalidTransitionError",
    "Run",
    "RunRequested",
    "create_coordinator",
]
