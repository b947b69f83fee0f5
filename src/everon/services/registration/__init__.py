"""Registration binding core: code matching, eligibility, binding and link tokens."""
from .codes import hash_code, normalize_code
from .errors import (
    AlreadyProvisioned,
    AlreadyLinkedElsewhere,
    Ineligible,
    InvalidFormat,
    NotBound,
    NotFound,
    NotOwner,
    RegistrationError,
    StoreConflict,
    StoreUnavailable,
)
from .link_token import LinkToken, LinkTokenInvalid, issue_link_token, verify_link_token
from .models import (
    BindResult,
    EventKind,
    InboundEvent,
    IneligibleReason,
    RecordStatus,
    RegistrationRecord,
    ReissueResult,
    Snapshot,
    UnbindResult,
)
from .service import RegistrationService

__all__ = [
    "AlreadyProvisioned",
    "hash_code",
    "normalize_code",
    "AlreadyLinkedElsewhere",
    "Ineligible",
    "InvalidFormat",
    "NotBound",
    "NotFound",
    "NotOwner",
    "RegistrationError",
    "StoreConflict",
    "StoreUnavailable",
    "LinkToken",
    "LinkTokenInvalid",
    "issue_link_token",
    "verify_link_token",
    "BindResult",
    "EventKind",
    "InboundEvent",
    "IneligibleReason",
    "RecordStatus",
    "RegistrationRecord",
    "ReissueResult",
    "Snapshot",
    "UnbindResult",
    "RegistrationService",
]
