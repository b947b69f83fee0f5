from __future__ import annotations

from datetime import date

from .errors import Ineligible
from .models import IneligibleReason, RecordStatus, RegistrationRecord

__all__ = ["check_eligibility", "is_eligible"]


def check_eligibility(record: RegistrationRecord, today: date) -> None:
    """Raise :class:`Ineligible` unless ``record`` may be bound on ``today``.

    Status is checked before the date window; both bounds are inclusive.
    """

    if record.status != RecordStatus.ACTIVE:
        raise Ineligible(IneligibleReason.NOT_ACTIVE.value)
    if record.valid_from is not None and today < record.valid_from:
        raise Ineligible(IneligibleReason.NOT_STARTED.value)
    if record.valid_until is not None and today > record.valid_until:
        raise Ineligible(IneligibleReason.EXPIRED.value)


def is_eligible(record: RegistrationRecord, today: date) -> bool:
    try:
        check_eligibility(record, today)
    except Ineligible:
        return False
    return True
