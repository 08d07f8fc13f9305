"""
Credential Storage Backends for Analytics Gatekeeper.

Persists API credential rows keyed by fingerprint.
Supports both in-memory (single-instance) and Redis (distributed) backends.

The core only needs a narrow contract: insert-returning-id,
lookup-by-fingerprint, mark-revoked-by-id, update-last-used-by-id and
list-ordered-by-created-at-desc.

Grants are persisted as a versioned tagged set. Rows holding unknown
versions or unknown capability strings are quarantined on read, never
passed through.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from analytics_gatekeeper.core.principal import Capability, Principal

logger = logging.getLogger(__name__)

GRANTS_VERSION = 1


class CredentialStoreError(RuntimeError):
    """Persistence backend failed or is unreachable."""


class CorruptCredentialError(CredentialStoreError):
    """A persisted row could not be decoded and was quarantined."""


@dataclass(frozen=True)
class CredentialDraft:
    """Fields supplied at insert time. The store assigns the id."""

    fingerprint: str
    name: str
    grants: tuple[Capability, ...]
    created_at: datetime
    expires_at: datetime | None = None


def encode_grants(grants: Iterable[Capability]) -> str:
    """Serialize grants as a versioned tagged set."""
    return json.dumps({"v": GRANTS_VERSION, "grants": [Capability(g).value for g in grants]})


def decode_grants(blob: str) -> tuple[Capability, ...]:
    """
    Deserialize and strictly validate a grants blob.

    Bare JSON lists (pre-versioning rows) are read as version 1.

    Raises:
        CorruptCredentialError: On malformed JSON, unknown version,
            unknown capability or an empty grant set
    """
    try:
        payload = json.loads(blob)
    except (TypeError, ValueError) as e:
        raise CorruptCredentialError(f"grants blob is not valid JSON: {e}") from None

    if isinstance(payload, list):
        payload = {"v": GRANTS_VERSION, "grants": payload}

    if not isinstance(payload, dict) or payload.get("v") != GRANTS_VERSION:
        raise CorruptCredentialError("unsupported grants version")

    values = payload.get("grants")
    if not isinstance(values, list) or not values:
        raise CorruptCredentialError("grants must be a non-empty list")

    grants: list[Capability] = []
    for value in values:
        try:
            grants.append(Capability(value))
        except ValueError:
            raise CorruptCredentialError(f"unrecognized capability: {value!r}") from None
    return tuple(grants)


def _format_instant(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def _parse_instant(value: str) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def draft_to_row(principal_id: str, draft: CredentialDraft) -> dict[str, str]:
    """Flatten a draft into a string-valued row (Redis hash friendly)."""
    return {
        "id": principal_id,
        "fingerprint": draft.fingerprint,
        "name": draft.name,
        "grants": encode_grants(draft.grants),
        "created_at": _format_instant(draft.created_at),
        "last_used": "",
        "expires_at": _format_instant(draft.expires_at),
        "active": "1",
    }


def row_to_principal(row: Mapping[str, str]) -> Principal:
    """
    Build a Principal from a stored row.

    Raises:
        CorruptCredentialError: If the row cannot be decoded
    """
    grants = decode_grants(row.get("grants", ""))
    try:
        return Principal(
            id=row["id"],
            fingerprint=row["fingerprint"],
            name=row["name"],
            grants=grants,
            created_at=_parse_instant(row["created_at"]),
            last_used=_parse_instant(row.get("last_used", "")),
            expires_at=_parse_instant(row.get("expires_at", "")),
            active=row.get("active") == "1",
        )
    except (KeyError, ValueError) as e:
        raise CorruptCredentialError(f"malformed credential row: {e}") from None


@runtime_checkable
class CredentialStore(Protocol):
    """
    Protocol for credential storage backends.

    All operations must be thread-safe. Backend failures raise
    CredentialStoreError.
    """

    def insert(self, draft: CredentialDraft) -> str:
        """
        Persist a new credential.

        Args:
            draft: Credential fields

        Returns:
            Assigned principal ID

        Raises:
            CredentialStoreError: If the fingerprint already exists
        """
        ...

    def lookup(self, fingerprint: str) -> Principal | None:
        """
        Find a credential by fingerprint.

        Returns the row regardless of active/expiry state; callers filter.

        Args:
            fingerprint: Fingerprint of the presented secret

        Returns:
            Principal if found, None otherwise
        """
        ...

    def mark_revoked(self, principal_id: str) -> bool:
        """
        Set active=False. There is no operation that sets it back.

        Returns:
            True if the row exists
        """
        ...

    def touch_last_used(self, principal_id: str, at: datetime) -> bool:
        """
        Record a usage timestamp.

        Returns:
            True if the row exists
        """
        ...

    def list_all(self) -> list[Principal]:
        """All credentials, newest first."""
        ...


class InMemoryCredentialStore:
    """
    In-memory credential store.

    Thread-safe implementation for single-instance deployments and tests.
    Rows are kept in serialized form so decoding matches the Redis backend.
    """

    def __init__(self) -> None:
        """Initialize empty store."""
        self._rows: dict[str, dict[str, str]] = {}
        self._by_fingerprint: dict[str, str] = {}
        self._lock = threading.RLock()

    def insert(self, draft: CredentialDraft) -> str:
        """Persist a new credential."""
        with self._lock:
            if draft.fingerprint in self._by_fingerprint:
                raise CredentialStoreError("fingerprint already exists")

            principal_id = uuid.uuid4().hex
            self._rows[principal_id] = draft_to_row(principal_id, draft)
            self._by_fingerprint[draft.fingerprint] = principal_id
            return principal_id

    def lookup(self, fingerprint: str) -> Principal | None:
        """Find a credential by fingerprint."""
        with self._lock:
            principal_id = self._by_fingerprint.get(fingerprint)
            if principal_id is None:
                return None
            row = dict(self._rows[principal_id])

        return row_to_principal(row)

    def mark_revoked(self, principal_id: str) -> bool:
        """Set active=False."""
        with self._lock:
            row = self._rows.get(principal_id)
            if row is None:
                return False
            row["active"] = "0"
            return True

    def touch_last_used(self, principal_id: str, at: datetime) -> bool:
        """Record a usage timestamp."""
        with self._lock:
            row = self._rows.get(principal_id)
            if row is None:
                return False
            row["last_used"] = _format_instant(at)
            return True

    def list_all(self) -> list[Principal]:
        """All credentials, newest first. Corrupt rows are skipped."""
        with self._lock:
            rows = [dict(r) for r in self._rows.values()]

        principals = _decode_rows(rows)
        principals.sort(key=lambda p: p.created_at, reverse=True)
        return principals

    @property
    def size(self) -> int:
        """Number of stored credentials."""
        with self._lock:
            return len(self._rows)


class RedisCredentialStore:
    """
    Redis-backed credential store.

    Layout:
        <prefix>token:<id>           hash with the credential row
        <prefix>fingerprint:<fp>     principal id (SET NX for uniqueness)
        <prefix>created              sorted set of ids scored by created_at

    Usage:
        import redis
        client = redis.Redis.from_url("redis://localhost:6379/0")
        store = RedisCredentialStore(client)
    """

    def __init__(
        self,
        redis_client: Any,  # redis.Redis
        key_prefix: str = "gatekeeper:credentials:",
    ) -> None:
        """
        Initialize Redis store.

        Args:
            redis_client: Redis client instance
            key_prefix: Redis key prefix
        """
        self._redis = redis_client
        self._key_prefix = key_prefix

    def _token_key(self, principal_id: str) -> str:
        return f"{self._key_prefix}token:{principal_id}"

    def _fingerprint_key(self, fingerprint: str) -> str:
        return f"{self._key_prefix}fingerprint:{fingerprint}"

    @property
    def _created_key(self) -> str:
        return f"{self._key_prefix}created"

    def insert(self, draft: CredentialDraft) -> str:
        """Persist a new credential."""
        principal_id = uuid.uuid4().hex
        fingerprint_key = self._fingerprint_key(draft.fingerprint)
        try:
            claimed = self._redis.set(fingerprint_key, principal_id, nx=True)
        except Exception as e:
            raise CredentialStoreError(f"redis insert failed: {e}") from e
        if not claimed:
            raise CredentialStoreError("fingerprint already exists")

        try:
            pipe = self._redis.pipeline()
            pipe.hset(self._token_key(principal_id), mapping=draft_to_row(principal_id, draft))
            pipe.zadd(self._created_key, {principal_id: draft.created_at.timestamp()})
            pipe.execute()
        except Exception as e:
            self._release_claim(fingerprint_key)
            raise CredentialStoreError(f"redis insert failed: {e}") from e
        return principal_id

    def _release_claim(self, fingerprint_key: str) -> None:
        # A fingerprint key must never point at an id with no row
        try:
            self._redis.delete(fingerprint_key)
        except Exception:
            logger.exception("Failed to release fingerprint claim %s", fingerprint_key)

    def lookup(self, fingerprint: str) -> Principal | None:
        """Find a credential by fingerprint."""
        try:
            principal_id = self._redis.get(self._fingerprint_key(fingerprint))
            if principal_id is None:
                return None
            row = self._redis.hgetall(self._token_key(_text(principal_id)))
        except Exception as e:
            raise CredentialStoreError(f"redis lookup failed: {e}") from e

        if not row:
            return None
        return row_to_principal(_text_mapping(row))

    def _update_field(self, principal_id: str, field_name: str, value: str) -> bool:
        key = self._token_key(principal_id)
        try:
            if not self._redis.exists(key):
                return False
            self._redis.hset(key, field_name, value)
        except Exception as e:
            raise CredentialStoreError(f"redis update failed: {e}") from e
        return True

    def mark_revoked(self, principal_id: str) -> bool:
        """Set active=False."""
        return self._update_field(principal_id, "active", "0")

    def touch_last_used(self, principal_id: str, at: datetime) -> bool:
        """Record a usage timestamp."""
        return self._update_field(principal_id, "last_used", _format_instant(at))

    def list_all(self) -> list[Principal]:
        """All credentials, newest first. Corrupt rows are skipped."""
        try:
            ids = self._redis.zrevrange(self._created_key, 0, -1)
            rows = [self._redis.hgetall(self._token_key(_text(i))) for i in ids]
        except Exception as e:
            raise CredentialStoreError(f"redis list failed: {e}") from e

        return _decode_rows(_text_mapping(r) for r in rows if r)


def _decode_rows(rows: Iterable[Mapping[str, str]]) -> list[Principal]:
    """Decode rows, quarantining the ones that fail."""
    principals: list[Principal] = []
    for row in rows:
        try:
            principals.append(row_to_principal(row))
        except CorruptCredentialError as e:
            logger.warning("Quarantined credential row %s: %s", row.get("id", "?"), e)
    return principals


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


def _text_mapping(row: Mapping[Any, Any]) -> dict[str, str]:
    # redis-py returns bytes unless decode_responses=True
    return {_text(k): _text(v) for k, v in row.items()}


def open_store(redis_url: str | None) -> CredentialStore:
    """
    Build the configured credential store.

    Args:
        redis_url: Redis URL, or None for a process-local in-memory store

    Returns:
        CredentialStore
    """
    if not redis_url:
        logger.warning("No credential store configured - using in-memory store (not persistent)")
        return InMemoryCredentialStore()

    import redis

    return RedisCredentialStore(redis.Redis.from_url(redis_url))
