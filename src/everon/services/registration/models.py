"""Dataclasses describing registration records and binding requests."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .link_token import LinkToken

__all__ = [
    "RecordStatus",
    "EventKind",
    "IneligibleReason",
    "RegistrationRecord",
    "Snapshot",
    "InboundEvent",
    "BindResult",
    "UnbindResult",
    "ReissueResult",
]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


class RecordStatus(_StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class EventKind(_StrEnum):
    BIND_ATTEMPT = "bind_attempt"
    UNBIND = "unbind"
    REISSUE_TOKEN = "reissue_token"


class IneligibleReason(_StrEnum):
    NOT_ACTIVE = "not_active"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"


@dataclass(slots=True, frozen=True)
class RegistrationRecord:
    """A provisioned record that one channel may claim.

    ``status`` is kept as the raw provisioning string so unknown values survive
    a rewrite; it compares equal to :class:`RecordStatus` members.
    """

    code_hash: str
    status: str = RecordStatus.ACTIVE.value
    valid_from: date | None = None
    valid_until: date | None = None
    bound_channel_id: str | None = None
    bound_at: datetime | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_bound(self) -> bool:
        return self.bound_channel_id is not None

    def bound_to(self, channel_id: str, *, at: datetime) -> "RegistrationRecord":
        return replace(self, bound_channel_id=channel_id, bound_at=at)

    def released(self) -> "RegistrationRecord":
        return replace(self, bound_channel_id=None, bound_at=None)


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Whole-document view of the store at one ``revision``."""

    records: Sequence[RegistrationRecord] = ()
    revision: int = 0

    def find(self, code_hash: str) -> RegistrationRecord | None:
        for record in self.records:
            if record.code_hash == code_hash:
                return record
        return None

    def held_by(self, channel_id: str) -> list[RegistrationRecord]:
        return [record for record in self.records if record.bound_channel_id == channel_id]

    def with_records(self, updated: Iterable[RegistrationRecord]) -> "Snapshot":
        """Return a snapshot where records sharing a ``code_hash`` are swapped in."""

        by_hash = {record.code_hash: record for record in updated}
        records = tuple(by_hash.get(record.code_hash, record) for record in self.records)
        return Snapshot(records=records, revision=self.revision)


@dataclass(slots=True, frozen=True)
class InboundEvent:
    kind: EventKind
    channel_id: str
    raw_text: str = ""


@dataclass(slots=True, frozen=True)
class BindResult:
    record: RegistrationRecord
    token: "LinkToken"
    created: bool  # False when the channel already held the record


@dataclass(slots=True, frozen=True)
class UnbindResult:
    records: Sequence[RegistrationRecord]


@dataclass(slots=True, frozen=True)
class ReissueResult:
    token: "LinkToken"
    records: Sequence[RegistrationRecord]
