"""Unit tests for the token codec."""

import hashlib

from analytics_gatekeeper.core import tokens


class TestGenerate:
    """Tests for secret generation."""

    def test_secret_has_prefix_and_hex_body(self) -> None:
        """Secret is the prefix plus 64 lowercase hex chars."""
        secret = tokens.generate()

        assert secret.startswith("analytics_")
        body = secret[len("analytics_") :]
        assert len(body) == 64
        assert all(c in "0123456789abcdef" for c in body)

    def test_secrets_are_unique(self) -> None:
        """Each call produces a fresh secret."""
        secrets = {tokens.generate() for _ in range(200)}
        assert len(secrets) == 200


class TestFingerprint:
    """Tests for fingerprint computation."""

    def test_fingerprint_is_sha256_hex(self) -> None:
        """Fingerprint is the plain SHA-256 hex digest."""
        secret = "analytics_" + "ab" * 32
        expected = hashlib.sha256(secret.encode("utf-8")).hexdigest()

        assert tokens.fingerprint(secret) == expected
        assert len(tokens.fingerprint(secret)) == 64

    def test_fingerprint_is_deterministic(self) -> None:
        """Same secret, same fingerprint."""
        secret = tokens.generate()
        assert tokens.fingerprint(secret) == tokens.fingerprint(secret)

    def test_fingerprint_does_not_contain_secret(self) -> None:
        """The stored form never embeds the plaintext."""
        secret = tokens.generate()
        assert secret not in tokens.fingerprint(secret)
        assert tokens.fingerprint(secret) != secret
