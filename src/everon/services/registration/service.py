"""Registration pipeline: code -> record -> eligibility -> binding -> link token."""
from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from everon.services.logging import short_hash
from everon.services.settings import ConfigError, Settings

from .binding import bind_record, unbind_record
from .codes import hash_code, normalize_code
from .eligibility import check_eligibility, is_eligible
from .errors import AlreadyProvisioned, NotBound, NotFound, StoreConflict, StoreUnavailable
from .link_token import LinkToken, issue_link_token
from .models import (
    BindResult,
    EventKind,
    InboundEvent,
    RecordStatus,
    RegistrationRecord,
    ReissueResult,
    Snapshot,
    UnbindResult,
)

if TYPE_CHECKING:  # pragma: no cover
    from everon.ports import RegistrationStore

__all__ = ["RegistrationService", "Outcome"]

_log = logging.getLogger("everon.registration")

T = TypeVar("T")
Outcome = Union[BindResult, UnbindResult, ReissueResult]
Step = Callable[[Snapshot], Tuple[Optional[Snapshot], T]]


class _KeyedLocks:
    """Per-key mutexes that are dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, List[Any]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)


class RegistrationService:
    """Binds chats to registration records and issues link tokens.

    Every state change is a read-modify-write of the whole store snapshot.  It
    runs under a per-record lock inside this process and is committed with a
    compare-and-swap against the store, retried on conflict, so concurrent
    claims on one record from several processes still see each other.
    """

    def __init__(
        self,
        *,
        store: RegistrationStore,
        secret: str,
        clock: Callable[[], datetime] | None = None,
        timezone_name: str = "UTC",
        code_min_length: int = 6,
        code_max_length: int = 64,
        max_attempts: int = 5,
    ) -> None:
        if not secret:
            raise ConfigError("registration secret must not be empty")
        self._store = store
        self._secret = secret
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))
        try:
            self._tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"unknown timezone {timezone_name!r}") from exc
        self._code_min_length = code_min_length
        self._code_max_length = code_max_length
        self._max_attempts = max(1, max_attempts)
        self._locks = _KeyedLocks()

    @classmethod
    def from_settings(cls, settings: Settings, store: RegistrationStore, **kwargs: Any) -> "RegistrationService":
        return cls(
            store=store,
            secret=settings.require_secret(),
            timezone_name=settings.timezone,
            code_min_length=settings.code_min_length,
            code_max_length=settings.code_max_length,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _now(self) -> datetime:
        return self._clock()

    def _today(self) -> date:
        return self._now().astimezone(self._tz).date()

    def code_hash(self, raw: str) -> str:
        code = normalize_code(raw, min_length=self._code_min_length, max_length=self._code_max_length)
        return hash_code(code, self._secret)

    def issue_token(self, channel_id: str) -> LinkToken:
        return issue_link_token(channel_id, self._secret, issued_at=int(self._now().timestamp()))

    def _commit(self, step: Step[T]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            snapshot = self._store.load()
            updated, result = step(snapshot)
            if updated is None:
                return result
            try:
                self._store.save(updated)
            except StoreConflict as exc:
                _log.info("store conflict, attempt %d/%d: %s", attempt, self._max_attempts, exc)
                continue
            return result
        raise StoreUnavailable("registration store is busy, try again")

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def match(self, raw: str) -> RegistrationRecord:
        code_hash = self.code_hash(raw)
        record = self._store.load().find(code_hash)
        if record is None:
            raise NotFound("registration code is not recognised")
        return record

    def records_for(self, channel_id: str) -> List[RegistrationRecord]:
        return self._store.load().held_by(str(channel_id))

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------
    def bind(self, channel_id: str, raw_text: str) -> BindResult:
        channel_id = str(channel_id)
        code_hash = self.code_hash(raw_text)

        def step(snapshot: Snapshot) -> Tuple[Optional[Snapshot], Tuple[RegistrationRecord, bool]]:
            record = snapshot.find(code_hash)
            if record is None:
                raise NotFound("registration code is not recognised")
            check_eligibility(record, self._today())
            updated, created = bind_record(record, channel_id, now=self._now())
            if not created:
                return None, (updated, created)
            return snapshot.with_records([updated]), (updated, created)

        with self._locks.hold(code_hash):
            record, created = self._commit(step)
        _log.info(
            "chat %s %s record %s",
            channel_id,
            "bound" if created else "re-confirmed",
            short_hash(code_hash),
        )
        return BindResult(record=record, token=self.issue_token(channel_id), created=created)

    def unbind(self, channel_id: str, raw_text: str = "") -> UnbindResult:
        """Release one record (when a code is given) or every record the chat holds."""

        channel_id = str(channel_id)
        if raw_text and raw_text.strip():
            code_hash = self.code_hash(raw_text)

            def step_one(snapshot: Snapshot) -> Tuple[Optional[Snapshot], List[RegistrationRecord]]:
                record = snapshot.find(code_hash)
                if record is None:
                    raise NotFound("registration code is not recognised")
                released = unbind_record(record, channel_id)
                return snapshot.with_records([released]), [released]

            with self._locks.hold(code_hash):
                records = self._commit(step_one)
        else:

            def step_all(snapshot: Snapshot) -> Tuple[Optional[Snapshot], List[RegistrationRecord]]:
                held = snapshot.held_by(channel_id)
                if not held:
                    raise NotBound("this chat is not linked to any registration")
                released = [unbind_record(record, channel_id) for record in held]
                return snapshot.with_records(released), released

            hashes = sorted(record.code_hash for record in self.records_for(channel_id))
            with ExitStack() as stack:
                for code_hash in hashes:
                    stack.enter_context(self._locks.hold(code_hash))
                records = self._commit(step_all)
        _log.info(
            "chat %s released %s",
            channel_id,
            ",".join(short_hash(record.code_hash) for record in records),
        )
        return UnbindResult(records=tuple(records))

    def reissue(self, channel_id: str) -> ReissueResult:
        channel_id = str(channel_id)
        held = self.records_for(channel_id)
        if not held:
            raise NotBound("this chat is not linked to any registration")
        today = self._today()
        if not any(is_eligible(record, today) for record in held):
            check_eligibility(held[0], today)
        _log.info("chat %s re-issued link token", channel_id)
        return ReissueResult(token=self.issue_token(channel_id), records=tuple(held))

    def provision(
        self,
        raw_code: str,
        *,
        status: str = RecordStatus.ACTIVE.value,
        valid_from: Optional[date] = None,
        valid_until: Optional[date] = None,
    ) -> RegistrationRecord:
        """Add an unbound record for ``raw_code``; the code itself is never stored."""

        if valid_from and valid_until and valid_until < valid_from:
            raise ValueError("valid_until is before valid_from")
        code_hash = self.code_hash(raw_code)
        record = RegistrationRecord(
            code_hash=code_hash, status=str(status), valid_from=valid_from, valid_until=valid_until
        )

        def step(snapshot: Snapshot) -> Tuple[Optional[Snapshot], RegistrationRecord]:
            if snapshot.find(code_hash) is not None:
                raise AlreadyProvisioned("a record for this code already exists")
            return Snapshot(records=tuple(snapshot.records) + (record,), revision=snapshot.revision), record

        with self._locks.hold(code_hash):
            created = self._commit(step)
        _log.info("provisioned record %s status=%s", short_hash(code_hash), created.status)
        return created

    def handle(self, event: InboundEvent) -> Outcome:
        kind = EventKind(event.kind)
        if kind is EventKind.BIND_ATTEMPT:
            return self.bind(event.channel_id, event.raw_text)
        if kind is EventKind.UNBIND:
            return self.unbind(event.channel_id, event.raw_text)
        return self.reissue(event.channel_id)
