"""Check reporting module.

This module handles:
- GitHub App authentication (app JWT and installation tokens)
- Creating and updating check suites and check runs
"""

from tinyhci.checks.auth import GitHubAppAuth, GitHubAuthError, load_private_key
from tinyhci.checks.client import (
    CheckReporter,
    CheckReportError,
    GitHubChecksClient,
    LoggingReporter,
)

__all__ = [
    "CheckReportError",
    "CheckReporter",
    "GitHubAppAuth",
    "GitHubAuthError",
    "GitHubChecksClient",
    "LoggingReporter",
    "load_private_key",
]
