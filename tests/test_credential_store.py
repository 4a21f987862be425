"""Tests for the memory and file credential stores."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from timekeeper.credential_store import FileCredentialStore, MemoryCredentialStore
from timekeeper.models import Credential

EXPIRES = datetime(2026, 3, 3, 12, 0, tzinfo=timezone.utc)
CACHED = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _credential(issued_for: str = "fp-1") -> Credential:
    return Credential("tok", "cmp-1", EXPIRES, issued_for, cached_at=CACHED)


def test_memory_store_roundtrip_and_clear():
    store = MemoryCredentialStore()
    assert store.load("fp-1") is None

    store.save(_credential())
    assert store.load("fp-1") == _credential()

    store.clear()
    assert store.load("fp-1") is None


def test_memory_store_discards_other_principal():
    store = MemoryCredentialStore(_credential("fp-1"))

    assert store.load("fp-2") is None
    assert store.load("fp-1") is None


def test_file_store_record_format(tmp_path):
    path = tmp_path / ".token-cache.json"
    FileCredentialStore(path).save(_credential())

    data = json.loads(path.read_text())

    assert data == {
        "token": "tok",
        "scopeId": "cmp-1",
        "expiresAt": "2026-03-03T12:00:00+00:00",
        "principalFingerprint": "fp-1",
        "cachedAt": "2026-03-02T12:00:00+00:00",
    }
    assert FileCredentialStore(path).load("fp-1") == _credential()


def test_file_store_principal_mismatch_removes_file(tmp_path):
    path = tmp_path / "cache.json"
    store = FileCredentialStore(path)
    store.save(_credential("fp-1"))

    assert store.load("fp-other") is None
    assert not path.exists()


def test_file_store_missing_or_corrupt(tmp_path):
    path = tmp_path / "cache.json"
    store = FileCredentialStore(path)
    assert store.load("fp-1") is None

    path.write_text("{not json")
    assert store.load("fp-1") is None

    path.write_text(json.dumps({"token": "t"}))
    assert store.load("fp-1") is None


def test_file_store_naive_timestamps_read_as_utc(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({
        "token": "tok",
        "scopeId": "cmp-1",
        "expiresAt": "2026-03-03T12:00:00",
        "principalFingerprint": "fp-1",
        "cachedAt": "2026-03-02T12:00:00Z",
    }))

    credential = FileCredentialStore(path).load("fp-1")

    assert credential == _credential()
    assert credential.is_valid("fp-1", CACHED, timedelta(minutes=5))


def test_file_store_non_string_expiry_is_unreadable(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({
        "token": "tok", "scopeId": "cmp-1", "expiresAt": 1772539200, "principalFingerprint": "fp-1",
    }))

    assert FileCredentialStore(path).load("fp-1") is None


def test_file_store_clear(tmp_path):
    path = tmp_path / "cache.json"
    store = FileCredentialStore(path)
    store.save(_credential())

    store.clear()
    store.clear()

    assert not path.exists()


def test_credential_validity_window():
    credential = _credential()
    skew = timedelta(minutes=5)

    assert credential.is_valid("fp-1", EXPIRES - timedelta(minutes=6), skew)
    assert not credential.is_valid("fp-1", EXPIRES - timedelta(minutes=4), skew)
    assert not credential.is_valid("fp-2", CACHED, skew)
