"""Unit tests for credential store implementations."""

import json
import logging
import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from analytics_gatekeeper.core.principal import Capability
from analytics_gatekeeper.engines.credential_store import (
    CorruptCredentialError,
    CredentialDraft,
    CredentialStore,
    CredentialStoreError,
    InMemoryCredentialStore,
    RedisCredentialStore,
    decode_grants,
    draft_to_row,
    encode_grants,
    open_store,
)

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def make_draft(fingerprint: str = "fp1", created_at: datetime = NOW, **overrides: object) -> CredentialDraft:
    fields: dict[str, object] = {
        "fingerprint": fingerprint,
        "name": "svc",
        "grants": (Capability.READ_INSIGHTS,),
        "created_at": created_at,
    }
    fields.update(overrides)
    return CredentialDraft(**fields)


class TestGrantsCodec:
    """Tests for the grants blob format."""

    def test_encode_is_versioned(self) -> None:
        """Encoded blob carries a version tag."""
        blob = encode_grants([Capability.READ_HEALTH, Capability.ADMIN_ALL])
        assert json.loads(blob) == {"v": 1, "grants": ["read:health", "admin:all"]}

    def test_bare_list_read_as_v1(self) -> None:
        """Pre-versioning rows still decode."""
        assert decode_grants('["read:insights"]') == (Capability.READ_INSIGHTS,)

    @pytest.mark.parametrize(
        "blob",
        [
            "not json",
            '{"v": 2, "grants": ["read:insights"]}',
            '{"v": 1, "grants": []}',
            '{"v": 1, "grants": ["read:insights", "write:all"]}',
            '"read:insights"',
            "",
        ],
    )
    def test_corrupt_blobs_rejected(self, blob: str) -> None:
        """Anything but a known version with known capabilities is corrupt."""
        with pytest.raises(CorruptCredentialError):
            decode_grants(blob)


class TestInMemoryCredentialStore:
    """Tests for InMemoryCredentialStore."""

    @pytest.fixture
    def store(self) -> InMemoryCredentialStore:
        return InMemoryCredentialStore()

    def test_satisfies_protocol(self, store: InMemoryCredentialStore) -> None:
        """Store implements the CredentialStore protocol."""
        assert isinstance(store, CredentialStore)

    def test_insert_and_lookup(self, store: InMemoryCredentialStore) -> None:
        """Inserted rows are found by fingerprint."""
        principal_id = store.insert(make_draft(expires_at=NOW + timedelta(days=1)))

        principal = store.lookup("fp1")
        assert principal is not None
        assert principal.id == principal_id
        assert principal.name == "svc"
        assert principal.grants == (Capability.READ_INSIGHTS,)
        assert principal.created_at == NOW
        assert principal.expires_at == NOW + timedelta(days=1)
        assert principal.last_used is None
        assert principal.active is True

    def test_lookup_unknown_returns_none(self, store: InMemoryCredentialStore) -> None:
        """Unknown fingerprints return None."""
        assert store.lookup("nope") is None

    def test_duplicate_fingerprint_rejected(self, store: InMemoryCredentialStore) -> None:
        """Fingerprints are unique."""
        store.insert(make_draft())
        with pytest.raises(CredentialStoreError):
            store.insert(make_draft())
        assert store.size == 1

    def test_mark_revoked(self, store: InMemoryCredentialStore) -> None:
        """Revoked rows are still returned, but inactive."""
        principal_id = store.insert(make_draft())

        assert store.mark_revoked(principal_id) is True
        principal = store.lookup("fp1")
        assert principal is not None
        assert principal.active is False

    def test_mark_revoked_unknown(self, store: InMemoryCredentialStore) -> None:
        """Revoking an unknown id reports not found."""
        assert store.mark_revoked("missing") is False

    def test_touch_last_used(self, store: InMemoryCredentialStore) -> None:
        """last_used is recorded."""
        principal_id = store.insert(make_draft())
        at = NOW + timedelta(minutes=5)

        assert store.touch_last_used(principal_id, at) is True
        principal = store.lookup("fp1")
        assert principal is not None
        assert principal.last_used == at

    def test_touch_unknown(self, store: InMemoryCredentialStore) -> None:
        """Touching an unknown id reports not found."""
        assert store.touch_last_used("missing", NOW) is False

    def test_list_all_newest_first(self, store: InMemoryCredentialStore) -> None:
        """Listing is ordered by created_at descending."""
        old = store.insert(make_draft("a", NOW))
        new = store.insert(make_draft("b", NOW + timedelta(hours=2)))
        mid = store.insert(make_draft("c", NOW + timedelta(hours=1)))

        assert [p.id for p in store.list_all()] == [new, mid, old]

    def test_corrupt_row_quarantined(
        self,
        store: InMemoryCredentialStore,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Corrupt rows fail lookup and are skipped by listing."""
        good = store.insert(make_draft("good"))
        bad = store.insert(make_draft("bad"))
        store._rows[bad]["grants"] = '{"v": 1, "grants": ["write:all"]}'

        with pytest.raises(CorruptCredentialError):
            store.lookup("bad")

        with caplog.at_level(logging.WARNING):
            listed = store.list_all()

        assert [p.id for p in listed] == [good]
        assert any("Quarantined" in r.message for r in caplog.records)

    def test_concurrent_inserts(self, store: InMemoryCredentialStore) -> None:
        """Concurrent inserts are all persisted."""

        def insert_many(offset: int) -> None:
            for i in range(50):
                store.insert(make_draft(f"fp-{offset}-{i}"))

        threads = [threading.Thread(target=insert_many, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.size == 200


class TestRedisCredentialStore:
    """Tests for RedisCredentialStore against a mocked client."""

    @pytest.fixture
    def client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def store(self, client: MagicMock) -> RedisCredentialStore:
        return RedisCredentialStore(client, key_prefix="t:")

    def test_insert_claims_fingerprint_and_writes_row(
        self,
        store: RedisCredentialStore,
        client: MagicMock,
    ) -> None:
        """Insert claims the fingerprint key then writes the hash and index."""
        client.set.return_value = True
        pipe = client.pipeline.return_value

        principal_id = store.insert(make_draft())

        client.set.assert_called_once_with("t:fingerprint:fp1", principal_id, nx=True)
        pipe.hset.assert_called_once()
        key = pipe.hset.call_args.args[0]
        mapping = pipe.hset.call_args.kwargs["mapping"]
        assert key == f"t:token:{principal_id}"
        assert mapping["active"] == "1"
        assert mapping["fingerprint"] == "fp1"
        pipe.zadd.assert_called_once_with("t:created", {principal_id: NOW.timestamp()})
        pipe.execute.assert_called_once()

    def test_insert_duplicate_fingerprint(self, store: RedisCredentialStore, client: MagicMock) -> None:
        """An existing fingerprint key rejects the insert."""
        client.set.return_value = None

        with pytest.raises(CredentialStoreError, match="already exists"):
            store.insert(make_draft())
        client.pipeline.assert_not_called()
        client.delete.assert_not_called()

    def test_failed_row_write_releases_fingerprint(
        self,
        store: RedisCredentialStore,
        client: MagicMock,
    ) -> None:
        """A failed row write removes the fingerprint claim."""
        client.set.return_value = True
        client.pipeline.return_value.execute.side_effect = ConnectionError("connection reset")

        with pytest.raises(CredentialStoreError, match="connection reset"):
            store.insert(make_draft())

        client.delete.assert_called_once_with("t:fingerprint:fp1")

    def test_failed_release_still_reports_insert_error(
        self,
        store: RedisCredentialStore,
        client: MagicMock,
    ) -> None:
        """The original failure is raised even if the cleanup also fails."""
        client.set.return_value = True
        client.pipeline.return_value.execute.side_effect = ConnectionError("connection reset")
        client.delete.side_effect = ConnectionError("still down")

        with pytest.raises(CredentialStoreError, match="connection reset"):
            store.insert(make_draft())

    def test_lookup_decodes_bytes(self, store: RedisCredentialStore, client: MagicMock) -> None:
        """Byte responses are decoded into a principal."""
        row = draft_to_row("abc", make_draft())
        client.get.return_value = b"abc"
        client.hgetall.return_value = {k.encode(): v.encode() for k, v in row.items()}

        principal = store.lookup("fp1")

        client.hgetall.assert_called_once_with("t:token:abc")
        assert principal is not None
        assert principal.id == "abc"
        assert principal.grants == (Capability.READ_INSIGHTS,)

    def test_lookup_missing(self, store: RedisCredentialStore, client: MagicMock) -> None:
        """Unknown fingerprints return None."""
        client.get.return_value = None
        assert store.lookup("fp1") is None

    def test_lookup_backend_failure(self, store: RedisCredentialStore, client: MagicMock) -> None:
        """Client errors surface as CredentialStoreError."""
        client.get.side_effect = ConnectionError("connection refused")

        with pytest.raises(CredentialStoreError, match="connection refused"):
            store.lookup("fp1")

    def test_mark_revoked(self, store: RedisCredentialStore, client: MagicMock) -> None:
        """Revocation sets active=0 on existing rows only."""
        client.exists.return_value = 1
        assert store.mark_revoked("abc") is True
        client.hset.assert_called_once_with("t:token:abc", "active", "0")

        client.exists.return_value = 0
        assert store.mark_revoked("missing") is False

    def test_touch_last_used(self, store: RedisCredentialStore, client: MagicMock) -> None:
        """last_used is written as ISO-8601."""
        client.exists.return_value = 1

        assert store.touch_last_used("abc", NOW) is True
        client.hset.assert_called_once_with("t:token:abc", "last_used", NOW.isoformat())

    def test_list_all_skips_corrupt_rows(self, store: RedisCredentialStore, client: MagicMock) -> None:
        """Listing follows the created index and quarantines bad rows."""
        good = draft_to_row("good", make_draft("a"))
        bad = dict(draft_to_row("bad", make_draft("b")), grants="garbage")
        client.zrevrange.return_value = [b"good", b"bad", b"gone"]
        client.hgetall.side_effect = [good, bad, {}]

        listed = store.list_all()

        client.zrevrange.assert_called_once_with("t:created", 0, -1)
        assert [p.id for p in listed] == ["good"]


class TestOpenStore:
    """Tests for store construction."""

    def test_no_url_gives_in_memory(self) -> None:
        """No URL falls back to the in-memory store."""
        assert isinstance(open_store(None), InMemoryCredentialStore)
        assert isinstance(open_store(""), InMemoryCredentialStore)
