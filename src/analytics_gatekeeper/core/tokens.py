"""
Token Codec for Analytics Gatekeeper.

Generates opaque API secrets and computes the fingerprint used to store
and look them up. The plaintext secret is never persisted.

Fingerprints are unsalted SHA-256 hex digests.
"""

from __future__ import annotations

import hashlib
import secrets

TOKEN_PREFIX = "analytics_"
TOKEN_BYTES = 32  # 256 bits


def generate() -> str:
    """
    Generate a new opaque API secret.

    Format: analytics_<64 hex chars>

    Returns:
        Plaintext secret (show it to the caller once, never store it)
    """
    return TOKEN_PREFIX + secrets.token_bytes(TOKEN_BYTES).hex()


def fingerprint(secret: str) -> str:
    """
    Compute the storage/lookup fingerprint of a secret.

    Args:
        secret: Plaintext secret

    Returns:
        Hex-encoded SHA-256 digest
    """
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()
