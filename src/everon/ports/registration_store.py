from __future__ import annotations

from typing import Protocol

from everon.services.registration.models import Snapshot


class RegistrationStore(Protocol):
    """Whole-document store of registration records.

    ``save`` is a compare-and-swap: it raises
    :class:`~everon.services.registration.errors.StoreConflict` when the stored
    revision differs from ``snapshot.revision`` and otherwise returns the
    snapshot at its new revision.  I/O failures surface as
    :class:`~everon.services.registration.errors.StoreUnavailable`.
    """

    def load(self) -> Snapshot: ...

    def save(self, snapshot: Snapshot) -> Snapshot: ...
