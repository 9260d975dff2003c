"""GitHub webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac


def compute_signature(secret: str, body: bytes, algorithm: str = "sha256") -> str:
    """Return the X-Hub-Signature style header value for body."""
    digest = hmac.new(secret.encode(), body, getattr(hashlib, algorithm)).hexdigest()
    return f"{algorithm}={digest}"


def _matches(expected: str, received: str) -> bool:
    # Header values may carry any latin-1 byte; compare_digest needs ASCII str
    return hmac.compare_digest(expected.encode(), received.encode("latin-1", "replace"))


def verify_signature(
    secret: str,
    body: bytes,
    signature_256: str | None,
    signature_sha1: str | None = None,
) -> bool:
    """Check a webhook delivery against the shared secret.

    X-Hub-Signature-256 is preferred; the legacy SHA1 header is only
    consulted when the SHA256 header is absent. An empty secret never
    verifies.

    Args:
        secret: Shared webhook secret.
        body: Raw request body.
        signature_256: Value of X-Hub-Signature-256.
        signature_sha1: Value of X-Hub-Signature.

    Returns:
        True if the signature matches.
    """
    if not secret:
        return False
    if signature_256:
        expected = compute_signature(secret, body, "sha256")
        return _matches(expected, signature_256)
    if signature_sha1:
        expected = compute_signature(secret, body, "sha1")
        return _matches(expected, signature_sha1)
    return False


__all__ = ["compute_signature", "verify_signature"]
