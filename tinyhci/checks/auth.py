"""GitHub App authentication.

Check runs can only be written by a GitHub App. The app signs a short
lived RS256 JWT with its private key and exchanges it for an
installation access token, which is cached until shortly before expiry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import httpx
from jose import JOSEError, jwt

logger = logging.getLogger(__name__)

# GitHub rejects app JWTs valid for more than 10 minutes
APP_JWT_LIFETIME = 540

# Backdate iat to tolerate clock drift
APP_JWT_BACKDATE = 60

# Refresh installation tokens this long before they expire
TOKEN_REFRESH_MARGIN = 60

GITHUB_ACCEPT = "application/vnd.github+json"


class GitHubAuthError(Exception):
    """Raised when GitHub App authentication fails."""

    def __init__(self, message: str, code: str = "github_auth_error") -> None:
        super().__init__(message)
        self.code = code


def load_private_key(path: Path) -> str:
    """Read a PEM private key.

    Raises:
        GitHubAuthError: If the key file cannot be read.
    """
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise GitHubAuthError(f"Cannot read GitHub App key {path}: {e}") from e


def make_app_jwt(app_id: int, private_key: str, now: float | None = None) -> str:
    """Create the JWT that authenticates as the GitHub App itself.

    Args:
        app_id: GitHub App ID.
        private_key: PEM-encoded RSA private key.
        now: Current UNIX time (defaults to time.time()).

    Returns:
        Encoded JWT.

    Raises:
        GitHubAuthError: If signing fails.
    """
    issued = int(time.time() if now is None else now)
    claims = {
        "iat": issued - APP_JWT_BACKDATE,
        "exp": issued + APP_JWT_LIFETIME,
        "iss": str(app_id),
    }
    try:
        return jwt.encode(claims, private_key, algorithm="RS256")
    except JOSEError as e:
        raise GitHubAuthError(f"Failed to sign GitHub App JWT: {e}") from e


class GitHubAppAuth:
    """Provides installation access tokens for a GitHub App installation."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        app_id: int,
        install_id: int,
        private_key: str,
        api_url: str = "https://api.github.com",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self.app_id = app_id
        self.install_id = install_id
        self._private_key = private_key
        self.api_url = api_url.rstrip("/")
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def token(self) -> str:
        """Return a valid installation token, refreshing it when needed.

        Raises:
            GitHubAuthError: If GitHub refuses the exchange.
        """
        async with self._lock:
            now = self._clock()
            fresh_until = self._expires_at - TOKEN_REFRESH_MARGIN
            if self._token is not None and now < fresh_until:
                return self._token

            app_jwt = make_app_jwt(self.app_id, self._private_key, now=now)
            url = f"{self.api_url}/app/installations/{self.install_id}/access_tokens"
            try:
                response = await self._client.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {app_jwt}",
                        "Accept": GITHUB_ACCEPT,
                    },
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise GitHubAuthError(
                    f"Installation token request failed: {e.response.status_code}",
                    code="token_rejected",
                ) from e
            except httpx.RequestError as e:
                raise GitHubAuthError(
                    f"Network error requesting installation token: {e}",
                    code="network_error",
                ) from e
            except ValueError as e:
                raise GitHubAuthError(
                    f"Invalid installation token response: {e}",
                    code="invalid_response",
                ) from e

            token = data.get("token") if isinstance(data, dict) else None
            if not isinstance(token, str):
                raise GitHubAuthError("Installation token missing from response")

            self._token = token
            self._expires_at = _parse_expiry(data.get("expires_at"), now)
            logger.debug("Refreshed installation token for %d", self.install_id)
            return token


def _parse_expiry(value: object, now: float) -> float:
    """Parse GitHub's ISO 8601 expires_at, defaulting to one hour from now."""
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
        except ValueError:
            logger.warning("Unparseable token expiry: %s", value)
    return now + 3600


__all__ = [
    "GitHubAppAuth",
    "GitHubAuthError",
    "load_private_key",
    "make_app_jwt",
]
