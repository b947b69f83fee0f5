from __future__ import annotations

import json
import os
import time
from datetime import date, datetime, timezone

import pytest

from everon.adapters.store import JsonRegistrationStore
from everon.services.registration import RegistrationService, Snapshot, StoreConflict, StoreUnavailable

from conftest import SECRET, FixedClock, record_for

LEGACY = {
    "registrations": [
        {"reg_hash": record_for("ABC123").code_hash, "telegram_chat_id": None, "telegram_bound_at": None},
        {"reg_hash": record_for("XYZ789").code_hash, "telegram_chat_id": 555, "telegram_bound_at": "2023-05-01T10:00:00.000Z", "note": "vip"},
        {"garbage": True},
    ],
    "owner": "ops",
}


@pytest.fixture
def path(tmp_path):
    p = tmp_path / "registration.json"
    p.write_text(json.dumps(LEGACY), encoding="utf-8")
    return p


def _doc(path):
    return json.loads(path.read_text(encoding="utf-8"))


def test_reads_legacy_document(path):
    snapshot = JsonRegistrationStore(path).load()
    assert snapshot.revision == 0
    assert len(snapshot.records) == 2
    first, second = snapshot.records
    assert first.bound_channel_id is None and first.status == "active"
    assert second.bound_channel_id == "555"
    assert second.bound_at == datetime(2023, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert second.extra == {"note": "vip"}


def test_bind_writes_legacy_keys_and_preserves_the_rest(path):
    clock = FixedClock(datetime(2024, 6, 1, 12, 0, 0, 123000, tzinfo=timezone.utc))
    service = RegistrationService(store=JsonRegistrationStore(path), secret=SECRET, clock=clock)
    service.bind("42", "abc123")

    doc = _doc(path)
    assert doc["revision"] == 1
    assert doc["owner"] == "ops"
    bound, untouched, garbage = doc["registrations"]
    assert bound["telegram_chat_id"] == 42
    assert bound["telegram_bound_at"] == "2024-06-01T12:00:00.123Z"
    assert untouched == LEGACY["registrations"][1]
    assert garbage == {"garbage": True}


def test_missing_file_is_an_empty_store(tmp_path):
    store = JsonRegistrationStore(tmp_path / "nested" / "registration.json")
    assert store.load() == Snapshot(records=(), revision=0)
    service = RegistrationService(store=store, secret=SECRET)
    service.provision("ABC123", valid_from=date(2024, 1, 1))
    doc = _doc(store.path)
    assert doc["registrations"][0]["reg_hash"] == record_for("ABC123").code_hash
    assert doc["registrations"][0]["valid_from"] == "2024-01-01"


def test_stale_revision_is_a_conflict(path):
    store = JsonRegistrationStore(path)
    snapshot = store.load()
    store.save(snapshot)
    with pytest.raises(StoreConflict) as excinfo:
        store.save(snapshot)
    assert excinfo.value.expected == 0
    assert excinfo.value.actual == 1


def test_corrupt_document_is_unavailable(tmp_path):
    p = tmp_path / "registration.json"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreUnavailable):
        JsonRegistrationStore(p).load()


def test_held_lock_times_out_and_stale_lock_is_broken(path):
    lock = path.with_name(path.name + ".lock")
    lock.write_text("1234")
    store = JsonRegistrationStore(path, lock_timeout=0.05, stale_lock_after=30.0)
    with pytest.raises(StoreUnavailable):
        store.save(store.load())

    old = time.time() - 120
    os.utime(lock, (old, old))
    store.save(store.load())
    assert not lock.exists()
    assert _doc(path)["revision"] == 1


@pytest.mark.parametrize("chat_id, stored", [("42", 42), ("-100200", -100200), ("007", "007"), ("-0", "-0")])
def test_rebind_survives_the_document_round_trip(path, chat_id, stored):
    clock = FixedClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))
    service = RegistrationService(store=JsonRegistrationStore(path), secret=SECRET, clock=clock)
    assert service.bind(chat_id, "abc123").created is True
    assert _doc(path)["registrations"][0]["telegram_chat_id"] == stored

    again = service.bind(chat_id, "abc123")
    assert again.created is False
    assert again.record.bound_channel_id == chat_id
    assert _doc(path)["revision"] == 1


@pytest.mark.parametrize("revision", ["abc", [1], {"n": 1}, True])
def test_unreadable_revision_is_unavailable(tmp_path, revision):
    p = tmp_path / "registration.json"
    p.write_text(json.dumps({"revision": revision, "registrations": []}), encoding="utf-8")
    store = JsonRegistrationStore(p)
    with pytest.raises(StoreUnavailable):
        store.load()
    with pytest.raises(StoreUnavailable):
        store.save(Snapshot(records=(), revision=0))


def test_fresh_lock_is_left_alone(path):
    lock = path.with_name(path.name + ".lock")
    lock.write_text("1234")
    JsonRegistrationStore(path, stale_lock_after=30.0)._break_stale_lock()
    assert lock.read_text() == "1234"


def test_lock_retaken_while_breaking_is_handed_back(path, monkeypatch):
    lock = path.with_name(path.name + ".lock")
    lock.write_text("1234")
    old = time.time() - 120
    os.utime(lock, (old, old))
    real_rename = os.rename

    def rename_after_another_waiter(src, dst):
        # another waiter broke the stale lock and took a fresh one first
        lock.write_text("fresh")
        real_rename(src, dst)

    monkeypatch.setattr(os, "rename", rename_after_another_waiter)
    JsonRegistrationStore(path, stale_lock_after=30.0)._break_stale_lock()
    assert lock.read_text() == "fresh"
    assert sorted(p.name for p in path.parent.iterdir()) == ["registration.json", "registration.json.lock"]


def test_release_keeps_a_lock_owned_by_someone_else(path):
    lock = path.with_name(path.name + ".lock")
    store = JsonRegistrationStore(path)
    store._acquire_file_lock()
    assert lock.exists()
    lock.write_text("another writer")
    store._release_file_lock()
    assert lock.read_text() == "another writer"
