"""Registration code canonicalisation and hashing.

Codes are provisioned as bare upper-case alphanumerics.  Users may type them
in any case, with spaces or with hyphens between groups (``abc-123``); those
are the only variations accepted and all of them reduce to the single
canonical form before hashing.
"""
from __future__ import annotations

import hashlib
import re

from everon.config import const

from .errors import InvalidFormat

__all__ = ["normalize_code", "hash_code", "looks_like_code"]

_CANONICAL = re.compile(r"[A-Z0-9]+")
_WHITESPACE = re.compile(r"\s+")


def _strip_separators(text: str) -> str:
    text = _WHITESPACE.sub("", text)
    for sep in const.CODE_SEPARATORS:
        text = text.replace(sep, "")
    return text


def normalize_code(
    raw: str | None,
    *,
    min_length: int = const.CODE_MIN_LENGTH,
    max_length: int = const.CODE_MAX_LENGTH,
) -> str:
    """Return the canonical form of ``raw`` or raise :class:`InvalidFormat`."""

    if raw is None:
        raise InvalidFormat("registration code is empty")
    candidate = _strip_separators(raw.strip())
    if not candidate:
        raise InvalidFormat("registration code is empty")
    # non-ASCII letters may upper-case into ASCII ones ("ß" -> "SS")
    if not candidate.isascii():
        raise InvalidFormat("registration code may only contain letters and digits")
    candidate = candidate.upper()
    if len(candidate) < min_length:
        raise InvalidFormat(f"registration code is shorter than {min_length} characters")
    if len(candidate) > max_length:
        raise InvalidFormat(f"registration code is longer than {max_length} characters")
    if not _CANONICAL.fullmatch(candidate):
        raise InvalidFormat("registration code may only contain letters and digits")
    return candidate


def looks_like_code(raw: str | None, *, max_length: int = const.CODE_MAX_LENGTH) -> bool:
    """Cheap pre-check used by chat dispatch to tell codes from chatter."""

    if not raw:
        return False
    text = raw.strip()
    # several words are chatter, even when they would squeeze into a code
    if _WHITESPACE.search(text):
        return False
    candidate = _strip_separators(text)
    if not candidate.isascii():
        return False
    candidate = candidate.upper()
    return bool(candidate) and len(candidate) <= max_length and bool(_CANONICAL.fullmatch(candidate))


def hash_code(code: str, secret: str) -> str:
    """Digest stored as ``code_hash`` at provisioning time.

    ``code`` must already be canonical; the digest is ``sha256(code + secret)``
    in lower-case hex, matching records provisioned by earlier deployments.
    """

    return hashlib.sha256((code + secret).encode("utf-8")).hexdigest()
