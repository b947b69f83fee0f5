"""Error taxonomy for registration binding flows."""

from __future__ import annotations

from typing import Any

__all__ = [
    "RegistrationError",
    "InvalidFormat",
    "NotFound",
    "Ineligible",
    "AlreadyLinkedElsewhere",
    "NotOwner",
    "NotBound",
    "StoreUnavailable",
    "StoreConflict",
    "AlreadyProvisioned",
]


class RegistrationError(RuntimeError):
    """Base error for a rejected registration request.

    Every subclass carries a stable ``code`` so callers can pick a user-facing
    message without parsing text.  Only :class:`StoreUnavailable` is
    ``retryable``; the others are deterministic for the same input.
    """

    code = "registration_error"
    retryable = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code.replace("_", " "))

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self), "retryable": self.retryable}


class InvalidFormat(RegistrationError):
    """Raised when raw input does not have the registration code shape."""

    code = "invalid_format"


class NotFound(RegistrationError):
    """Raised when no record matches the submitted code."""

    code = "not_found"


class Ineligible(RegistrationError):
    """Raised when the matched record is outside its lifecycle window."""

    code = "ineligible"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"record is not eligible: {reason}")

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        data["reason"] = self.reason
        return data


class AlreadyLinkedElsewhere(RegistrationError):
    """Raised when the record is bound to a different channel."""

    code = "already_linked_elsewhere"


class NotOwner(RegistrationError):
    """Raised when an unbind comes from a channel that does not hold the record."""

    code = "not_owner"


class NotBound(RegistrationError):
    """Raised when an unbind or re-issue targets a channel with no binding."""

    code = "not_bound"


class StoreUnavailable(RegistrationError):
    """Raised for I/O failures on the registration store."""

    code = "store_unavailable"
    retryable = True


class StoreConflict(RuntimeError):
    """Raised by a store when a snapshot was saved by someone else first."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"store revision moved from {expected} to {actual}")
        self.expected = expected
        self.actual = actual


class AlreadyProvisioned(RegistrationError):
    """Raised when provisioning a code whose record already exists."""

    code = "already_provisioned"
