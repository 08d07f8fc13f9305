"""
Credential Service for Analytics Gatekeeper.

Issues, resolves, revokes and lists API credentials on top of a
CredentialStore. Input is validated completely before anything is
persisted; the plaintext secret leaves this module exactly once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from analytics_gatekeeper.core import expiration, tokens
from analytics_gatekeeper.core.principal import (
    Capability,
    IssuedCredential,
    Principal,
    utc_now,
)
from analytics_gatekeeper.engines import permissions
from analytics_gatekeeper.engines.credential_store import CredentialDraft, CredentialStore

logger = logging.getLogger(__name__)


class MalformedRequestError(ValueError):
    """Issuance input is missing or empty."""


class CredentialService:
    """
    Credential lifecycle on top of a store.

    Usage:
        service = CredentialService(InMemoryCredentialStore())

        issued = service.issue("svc", ["read:insights"], ttl="30d")
        print(issued.secret)  # shown once

        principal = service.resolve(issued.secret)
        service.revoke(principal.id)
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize credential service.

        Args:
            store: Credential store backend
            clock: Source of the current instant (injectable for tests)
        """
        self._store = store
        self._clock = clock

    @property
    def store(self) -> CredentialStore:
        """Underlying credential store."""
        return self._store

    def now(self) -> datetime:
        """Current instant according to the service clock."""
        return self._clock()

    def issue(
        self,
        name: str,
        grants: Iterable[str | Capability],
        ttl: str | None = None,
    ) -> IssuedCredential:
        """
        Issue a new credential.

        Args:
            name: Human label
            grants: Capability strings
            ttl: Optional TTL spec ("30d", "1y", "12h"); None never expires

        Returns:
            IssuedCredential holding the one-time-visible secret

        Raises:
            MalformedRequestError: Empty name or empty grant list
            UnknownCapabilityError: A grant is outside the enumeration
            ExpirationParseError: The TTL cannot be parsed
            CredentialStoreError: The store rejected the insert
        """
        name = (name or "").strip()
        if not name:
            raise MalformedRequestError("Token name is required")

        grant_list = list(grants)
        if not grant_list:
            raise MalformedRequestError("At least one permission is required")

        validated = permissions.validate(grant_list)

        now = self._clock()
        expires_at = expiration.resolve(ttl, now)

        secret = tokens.generate()
        draft = CredentialDraft(
            fingerprint=tokens.fingerprint(secret),
            name=name,
            grants=validated,
            created_at=now,
            expires_at=expires_at,
        )
        principal_id = self._store.insert(draft)

        principal = Principal(
            id=principal_id,
            fingerprint=draft.fingerprint,
            name=name,
            grants=validated,
            created_at=now,
            expires_at=expires_at,
        )
        logger.info(
            "Issued credential %s (%s) grants=%s expires_at=%s",
            principal_id,
            name,
            principal.grant_values,
            expires_at.isoformat() if expires_at else "never",
        )
        return IssuedCredential(secret=secret, principal=principal)

    def resolve(self, secret: str) -> Principal | None:
        """
        Resolve a presented secret to a usable principal.

        Not found, revoked and expired all return None.

        Raises:
            CredentialStoreError: The store lookup failed
        """
        if not secret:
            return None

        principal = self._store.lookup(tokens.fingerprint(secret))
        if principal is None or not principal.is_usable(self._clock()):
            return None
        return principal

    def revoke(self, principal_id: str) -> bool:
        """
        Revoke a credential. Terminal: there is no un-revoke.

        Returns:
            True if the credential exists
        """
        if not principal_id:
            raise MalformedRequestError("Token ID is required")

        revoked = self._store.mark_revoked(principal_id)
        if revoked:
            logger.info("Revoked credential %s", principal_id)
        return revoked

    def list_credentials(self) -> list[Principal]:
        """All credentials, newest first."""
        return self._store.list_all()
