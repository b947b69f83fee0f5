"""Binding transitions between a record and a channel.

A record is either ``Unbound`` or ``BoundTo(channel)``.  The functions here are
pure: they validate the transition and return the record to persist, or raise
without touching anything.  Committing the result is the caller's job.
"""
from __future__ import annotations

from datetime import datetime

from .errors import AlreadyLinkedElsewhere, NotBound, NotOwner
from .models import RegistrationRecord

__all__ = ["bind_record", "unbind_record"]


def bind_record(
    record: RegistrationRecord, channel_id: str, *, now: datetime
) -> tuple[RegistrationRecord, bool]:
    """Bind ``record`` to ``channel_id``.

    Returns ``(record, created)``.  ``created`` is False for a re-bind from the
    channel that already holds the record; that case is a re-confirm and the
    record comes back unchanged.
    """

    holder = record.bound_channel_id
    if holder is None:
        return record.bound_to(channel_id, at=now), True
    if holder == channel_id:
        return record, False
    raise AlreadyLinkedElsewhere("registration code is already linked to another chat")


def unbind_record(record: RegistrationRecord, channel_id: str) -> RegistrationRecord:
    holder = record.bound_channel_id
    if holder is None:
        raise NotBound("registration is not linked to any chat")
    if holder != channel_id:
        raise NotOwner("registration is linked to another chat")
    return record.released()
