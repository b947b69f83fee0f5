# src/everon/adapters/store/json_file.py
"""
JSON document store for registration records.

The document keeps the layout written by earlier bot deployments::

    {"revision": 3, "registrations": [{"reg_hash": "...", "telegram_chat_id": 42, ...}]}

``revision`` is added by this store and drives compare-and-swap; documents
without it start at 0.  Record keys the store does not know are carried
through untouched, and so are entries it cannot parse.
"""
from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping

from everon.services.registration.errors import StoreConflict, StoreUnavailable
from everon.services.registration.models import RecordStatus, RegistrationRecord, Snapshot

_log = logging.getLogger("everon.store.json")

_HASH_KEYS = ("reg_hash", "code_hash")
_CHANNEL_KEYS = ("telegram_chat_id", "bound_channel_id")
_BOUND_AT_KEYS = ("telegram_bound_at", "bound_at")
_KNOWN = set(_HASH_KEYS + _CHANNEL_KEYS + _BOUND_AT_KEYS + ("status", "valid_from", "valid_until"))
_NUMERIC_ID = re.compile(r"-?\d+")


def _first(data: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _parse_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    return date.fromisoformat(str(value)[:10])


def _parse_time(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _format_time(moment: datetime) -> str:
    instant = moment.astimezone(timezone.utc)
    return instant.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _channel_out(channel_id: str | None) -> Any:
    # Telegram chat ids were historically stored as JSON numbers.
    # Only canonical integers: "007" or "-0" would not read back the same.
    if channel_id is not None and _NUMERIC_ID.fullmatch(channel_id) and str(int(channel_id)) == channel_id:
        return int(channel_id)
    return channel_id


def _revision(data: Mapping[str, Any]) -> int:
    value = data.get("revision") or 0
    if isinstance(value, bool):
        raise StoreUnavailable(f"store revision is not a number: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise StoreUnavailable(f"store revision is not a number: {value!r}") from exc


def record_from_mapping(data: Mapping[str, Any]) -> RegistrationRecord:
    code_hash = _first(data, _HASH_KEYS)
    if not isinstance(code_hash, str):
        raise ValueError("registration entry has no reg_hash")
    channel = _first(data, _CHANNEL_KEYS)
    return RegistrationRecord(
        code_hash=code_hash,
        status=str(data.get("status") or RecordStatus.ACTIVE.value),
        valid_from=_parse_date(data.get("valid_from")),
        valid_until=_parse_date(data.get("valid_until")),
        bound_channel_id=str(channel) if channel is not None else None,
        bound_at=_parse_time(_first(data, _BOUND_AT_KEYS)),
        extra={k: v for k, v in data.items() if k not in _KNOWN},
    )


def record_to_mapping(record: RegistrationRecord) -> Dict[str, Any]:
    out: Dict[str, Any] = {"reg_hash": record.code_hash}
    out.update(record.extra)
    out["status"] = record.status
    out["valid_from"] = record.valid_from.isoformat() if record.valid_from else None
    out["valid_until"] = record.valid_until.isoformat() if record.valid_until else None
    out["telegram_chat_id"] = _channel_out(record.bound_channel_id)
    out["telegram_bound_at"] = _format_time(record.bound_at) if record.bound_at else None
    return out


def _unchanged(entry: Mapping[str, Any], record: RegistrationRecord) -> bool:
    try:
        return record_from_mapping(entry) == record
    except ValueError:
        return False


class JsonRegistrationStore:
    """File-backed :class:`~everon.ports.RegistrationStore`.

    Writers serialise on a sibling ``.lock`` file (created exclusively) so that
    separate processes handling updates for the same document cannot interleave
    their read-compare-write; the document is replaced atomically.
    """

    def __init__(self, path: str | Path, *, lock_timeout: float = 5.0, stale_lock_after: float = 30.0) -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._lock_timeout = lock_timeout
        self._stale_lock_after = stale_lock_after
        self._thread_lock = threading.Lock()
        self._lock_token: str | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------ io
    def _read_document(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {"revision": 0, "registrations": []}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreUnavailable(f"cannot read {self._path.name}: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("registrations", []), list):
            raise StoreUnavailable(f"{self._path.name} is not a registrations document")
        data.setdefault("registrations", [])
        return data

    def _write_document(self, data: Dict[str, Any]) -> None:
        tmp_path = self._path.with_name(f".{self._path.name}.part")
        try:
            tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            raise StoreUnavailable(f"cannot write {self._path.name}: {exc}") from exc

    def _acquire_file_lock(self) -> None:
        deadline = time.monotonic() + self._lock_timeout
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailable(f"cannot create {self._path.parent}: {exc}") from exc
        while True:
            try:
                fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                self._break_stale_lock()
                if time.monotonic() >= deadline:
                    raise StoreUnavailable("registration store is locked by another writer")
                time.sleep(0.01)
                continue
            except OSError as exc:
                raise StoreUnavailable(f"cannot lock {self._path.name}: {exc}") from exc
            self._lock_token = f"{os.getpid()}:{uuid.uuid4().hex}"
            with os.fdopen(fd, "w") as handle:
                handle.write(self._lock_token)
            return

    @staticmethod
    def _lock_owner(path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            return None

    def _break_stale_lock(self) -> None:
        """Remove a lock left behind by a dead writer.

        The lock is first renamed to a private name, which only one waiter can
        do; if what was claimed is no longer the stale lock (another waiter
        broke it and took a fresh one meanwhile) it is linked back in place.
        """
        try:
            age = time.time() - self._lock_path.stat().st_mtime
        except FileNotFoundError:
            return
        if age <= self._stale_lock_after:
            return
        owner = self._lock_owner(self._lock_path)
        claimed = self._lock_path.with_name(f"{self._lock_path.name}.{uuid.uuid4().hex}")
        try:
            os.rename(self._lock_path, claimed)
        except FileNotFoundError:
            return
        except OSError as exc:
            _log.warning("cannot break store lock %s: %s", self._lock_path, exc)
            return
        try:
            if self._lock_owner(claimed) == owner:
                _log.warning("removed stale store lock %s (age %.0fs)", self._lock_path, age)
                return
            try:
                os.link(claimed, self._lock_path)
            except FileExistsError:
                pass
            except OSError as exc:
                _log.warning("cannot restore store lock %s: %s", self._lock_path, exc)
        finally:
            claimed.unlink(missing_ok=True)

    def _release_file_lock(self) -> None:
        # a lock broken as stale may already belong to someone else
        if self._lock_owner(self._lock_path) == self._lock_token:
            self._lock_path.unlink(missing_ok=True)
        self._lock_token = None

    # ------------------------------------------------------------------ api
    def load(self) -> Snapshot:
        data = self._read_document()
        records: List[RegistrationRecord] = []
        for entry in data["registrations"]:
            if not isinstance(entry, Mapping):
                continue
            try:
                records.append(record_from_mapping(entry))
            except ValueError as exc:
                _log.warning("skipping unreadable registration entry: %s", exc)
        return Snapshot(records=tuple(records), revision=_revision(data))

    def save(self, snapshot: Snapshot) -> Snapshot:
        with self._thread_lock:
            self._acquire_file_lock()
            try:
                data = self._read_document()
                current = _revision(data)
                if current != snapshot.revision:
                    raise StoreConflict(snapshot.revision, current)
                pending = {record.code_hash: record for record in snapshot.records}
                entries: List[Any] = []
                for entry in data["registrations"]:
                    code_hash = _first(entry, _HASH_KEYS) if isinstance(entry, Mapping) else None
                    record = pending.pop(code_hash, None) if isinstance(code_hash, str) else None
                    if record is None or _unchanged(entry, record):
                        entries.append(entry)
                    else:
                        entries.append(record_to_mapping(record))
                entries.extend(record_to_mapping(record) for record in pending.values())
                data["registrations"] = entries
                data["revision"] = current + 1
                self._write_document(data)
            finally:
                self._release_file_lock()
        return Snapshot(records=tuple(snapshot.records), revision=current + 1)
