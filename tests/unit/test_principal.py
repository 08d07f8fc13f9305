"""Unit tests for principal models."""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from analytics_gatekeeper.core.principal import Capability, IssuedCredential, Principal

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def make_principal(**overrides: object) -> Principal:
    fields: dict[str, object] = {
        "id": "p1",
        "fingerprint": "f" * 64,
        "name": "svc",
        "grants": (Capability.READ_INSIGHTS,),
        "created_at": NOW,
    }
    fields.update(overrides)
    return Principal(**fields)


class TestCapability:
    """Tests for the capability enumeration."""

    def test_values(self) -> None:
        """Capability wire values are fixed."""
        assert {c.value for c in Capability} == {
            "read:insights",
            "read:health",
            "manage:tokens",
            "admin:all",
        }

    def test_unknown_value_rejected(self) -> None:
        """Strings outside the enumeration are not capabilities."""
        with pytest.raises(ValueError):
            Capability("write:everything")


class TestPrincipal:
    """Tests for Principal."""

    def test_non_expiring_principal_is_usable(self) -> None:
        """No expiry and active means usable."""
        principal = make_principal()

        assert principal.is_expired(NOW + timedelta(days=10_000)) is False
        assert principal.is_usable(NOW) is True

    def test_expired_at_exact_instant(self) -> None:
        """The expiry instant itself counts as expired."""
        principal = make_principal(expires_at=NOW + timedelta(hours=1))

        assert principal.is_usable(NOW + timedelta(minutes=59)) is True
        assert principal.is_expired(NOW + timedelta(hours=1)) is True
        assert principal.is_usable(NOW + timedelta(hours=1)) is False

    def test_revoked_principal_not_usable(self) -> None:
        """Inactive principals are never usable."""
        principal = make_principal(active=False)
        assert principal.is_usable(NOW) is False

    def test_empty_name_rejected(self) -> None:
        """Name must be non-empty."""
        with pytest.raises(ValidationError):
            make_principal(name="")

    def test_empty_grants_rejected(self) -> None:
        """At least one grant is required."""
        with pytest.raises(ValidationError):
            make_principal(grants=())

    def test_principal_is_frozen(self) -> None:
        """Principals are immutable."""
        principal = make_principal()
        with pytest.raises(ValidationError):
            principal.active = False  # type: ignore[misc]

    def test_public_view_omits_fingerprint(self) -> None:
        """The client-facing view never carries the fingerprint."""
        principal = make_principal(grants=(Capability.READ_HEALTH, Capability.READ_INSIGHTS))

        view = principal.public_view()

        assert "fingerprint" not in view
        assert view["permissions"] == ["read:health", "read:insights"]
        assert view["is_active"] is True
        assert view["last_used"] is None
        assert view["expires_at"] is None
        assert view["created_at"] == NOW.isoformat()


class TestIssuedCredential:
    """Tests for IssuedCredential."""

    def test_secret_hidden_from_repr(self) -> None:
        """The plaintext secret never shows up in repr."""
        issued = IssuedCredential(secret="analytics_supersecret", principal=make_principal())
        assert "analytics_supersecret" not in repr(issued)
