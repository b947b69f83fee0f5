from __future__ import annotations

from datetime import datetime, timezone

import pytest

from everon.services.registration import AlreadyLinkedElsewhere, NotBound, NotOwner, RegistrationRecord
from everon.services.registration.binding import bind_record, unbind_record

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def test_bind_unbound_record():
    record, created = bind_record(RegistrationRecord(code_hash="h"), "42", now=NOW)
    assert created is True
    assert record.bound_channel_id == "42"
    assert record.bound_at == NOW


def test_rebind_from_holder_returns_record_unchanged():
    bound = RegistrationRecord(code_hash="h", bound_channel_id="42", bound_at=NOW)
    record, created = bind_record(bound, "42", now=datetime(2025, 1, 1, tzinfo=timezone.utc))
    assert created is False
    assert record is bound


def test_bind_by_other_channel_is_rejected():
    bound = RegistrationRecord(code_hash="h", bound_channel_id="42", bound_at=NOW)
    with pytest.raises(AlreadyLinkedElsewhere):
        bind_record(bound, "99", now=NOW)


def test_unbind_rules():
    bound = RegistrationRecord(code_hash="h", bound_channel_id="42", bound_at=NOW)
    released = unbind_record(bound, "42")
    assert released.bound_channel_id is None and released.bound_at is None
    with pytest.raises(NotOwner):
        unbind_record(bound, "99")
    with pytest.raises(NotBound):
        unbind_record(released, "42")
