"""Security helpers for webhook validation."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


class SignatureVerificationError(RuntimeError):
    """Raised when a delivery cannot be proven to come from GitHub."""


def build_github_signature(secret: str, payload: bytes) -> str:
    """Return the GitHub-style HMAC signature for the given payload."""

    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_github_signature(secret: str | None, payload: bytes, raw_signature: str | None) -> bool:
    """Verify a GitHub webhook signature using a constant-time comparison.

    An unset or empty secret never verifies, whatever signature is supplied.
    """

    if not secret or not raw_signature:
        return False
    if not raw_signature.startswith(SIGNATURE_PREFIX):
        return False

    expected_signature = build_github_signature(secret, payload)
    return hmac.compare_digest(expected_signature.encode("utf-8"), raw_signature.encode("utf-8"))


def verify_delivery(secret: str | None, payload: bytes, raw_signature: str | None) -> None:
    """Raise :class:`SignatureVerificationError` unless the delivery is authentic."""

    if not secret:
        raise SignatureVerificationError("Webhook secret is not configured.")
    if not raw_signature:
        raise SignatureVerificationError("Missing X-Hub-Signature-256 header.")
    if not verify_github_signature(secret, payload, raw_signature):
        raise SignatureVerificationError("Signature does not match payload.")
