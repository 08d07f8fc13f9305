"""
Principal Models for Analytics Gatekeeper.

A Principal is a persisted API credential resolved from a presented secret.
It carries the capabilities granted at issuance and the lifecycle fields
that decide whether it may still be used.

Zero-trust: usability is recomputed on every resolution, never cached.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class Capability(str, Enum):
    """Fixed enumeration of grantable capabilities."""

    READ_INSIGHTS = "read:insights"
    READ_HEALTH = "read:health"
    MANAGE_TOKENS = "manage:tokens"
    ADMIN_ALL = "admin:all"  # Universal override


def utc_now() -> datetime:
    """Current tz-aware UTC instant."""
    return datetime.now(UTC)


class Principal(BaseModel):
    """
    Persisted API credential.

    The fingerprint is the only form of the secret that is ever stored.
    """

    model_config = {"frozen": True}

    id: str = Field(..., description="Stable identifier assigned by the store")
    fingerprint: str = Field(..., description="SHA-256 hex digest of the secret")
    name: str = Field(..., min_length=1, description="Human label")
    grants: tuple[Capability, ...] = Field(..., min_length=1, description="Granted capabilities")
    created_at: datetime = Field(default_factory=utc_now)
    last_used: datetime | None = Field(
        default=None,
        description="Best-effort usage timestamp, never used for authorization",
    )
    expires_at: datetime | None = Field(default=None, description="None means non-expiring")
    active: bool = Field(default=True, description="False once revoked")

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the expiry instant has been reached."""
        if self.expires_at is None:
            return False
        return (now or utc_now()) >= self.expires_at

    def is_usable(self, now: datetime | None = None) -> bool:
        """Principal is usable if active and not expired."""
        return self.active and not self.is_expired(now)

    @property
    def grant_values(self) -> list[str]:
        """Grants as plain strings, in issuance order."""
        return [g.value for g in self.grants]

    def public_view(self) -> dict[str, object]:
        """Metadata safe to return to clients (no fingerprint)."""
        return {
            "id": self.id,
            "name": self.name,
            "permissions": self.grant_values,
            "created_at": self.created_at.isoformat(),
            "last_used": self.last_used.isoformat() if self.last_used else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_active": self.active,
        }


class IssuedCredential(BaseModel):
    """
    Result of issuing a credential.

    The only object that ever holds the plaintext secret. Show it once.
    """

    model_config = {"frozen": True}

    secret: str = Field(..., repr=False)
    principal: Principal
