from __future__ import annotations

import threading
from typing import Iterable

from everon.services.registration.errors import StoreConflict
from everon.services.registration.models import RegistrationRecord, Snapshot


class MemoryRegistrationStore:
    """In-process store; ``loads``/``saves`` count calls for tests."""

    def __init__(self, records: Iterable[RegistrationRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._snapshot = Snapshot(records=tuple(records), revision=0)
        self.loads = 0
        self.saves = 0

    @property
    def records(self) -> tuple[RegistrationRecord, ...]:
        return tuple(self._snapshot.records)

    def load(self) -> Snapshot:
        with self._lock:
            self.loads += 1
            return self._snapshot

    def save(self, snapshot: Snapshot) -> Snapshot:
        with self._lock:
            current = self._snapshot.revision
            if snapshot.revision != current:
                raise StoreConflict(snapshot.revision, current)
            self._snapshot = Snapshot(records=tuple(snapshot.records), revision=current + 1)
            self.saves += 1
            return self._snapshot
