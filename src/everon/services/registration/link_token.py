"""Signed link tokens handed to the EverOn device.

A token proves that the bot issued ``channel_id`` at ``issued_at``.  The wire
form is compact JSON ``{"v", "cid", "ts", "sig"}`` encoded with standard
base64; ``sig`` is the hex HMAC-SHA256 of ``"<cid>.<ts>"`` keyed by the shared
secret.  The issuer keeps no state: freshness is enforced by whoever verifies.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote, unquote, urlencode

from everon.config import const

__all__ = [
    "LinkToken",
    "LinkTokenInvalid",
    "sign_link",
    "issue_link_token",
    "decode_link_token",
    "verify_link_token",
]


class LinkTokenInvalid(ValueError):
    """Raised when a link token fails verification."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"invalid link token: {reason}")
        self.reason = reason


def sign_link(channel_id: str, issued_at: int, secret: str) -> str:
    message = f"{channel_id}.{issued_at}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


@dataclass(slots=True, frozen=True)
class LinkToken:
    version: int
    channel_id: str
    issued_at: int
    signature: str

    def as_payload(self) -> dict[str, Any]:
        return {"v": self.version, "cid": self.channel_id, "ts": self.issued_at, "sig": self.signature}

    def encode(self) -> str:
        body = json.dumps(self.as_payload(), separators=(",", ":"))
        return base64.b64encode(body.encode("utf-8")).decode("ascii")

    def deep_link(self, scheme: str = const.DEEP_LINK_SCHEME) -> str:
        return f"{scheme}?payload={quote(self.encode(), safe='')}"

    def qr_url(
        self,
        *,
        base_url: str = const.QR_BASE_URL,
        size: str = const.QR_SIZE,
        scheme: str = const.DEEP_LINK_SCHEME,
    ) -> str:
        query = urlencode({"size": size, "data": self.deep_link(scheme)}, quote_via=quote, safe="")
        return f"{base_url}?{query}"


def issue_link_token(channel_id: str | int, secret: str, *, issued_at: int | None = None) -> LinkToken:
    """Sign a fresh token for ``channel_id``; every call yields a new ``issued_at``."""

    if not secret:
        raise ValueError("link token secret must not be empty")
    cid = str(channel_id)
    ts = int(time.time()) if issued_at is None else int(issued_at)
    return LinkToken(
        version=const.LINK_TOKEN_VERSION,
        channel_id=cid,
        issued_at=ts,
        signature=sign_link(cid, ts, secret),
    )


def decode_link_token(encoded: str) -> LinkToken:
    """Parse the wire form without checking the signature."""

    text = (encoded or "").strip()
    if "%" in text:
        text = unquote(text)
    if not text:
        raise LinkTokenInvalid("malformed")
    padding = "=" * ((4 - len(text) % 4) % 4)
    try:
        raw = base64.b64decode(text + padding, altchars=b"-_")
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise LinkTokenInvalid("malformed") from exc
    if not isinstance(data, Mapping):
        raise LinkTokenInvalid("malformed")
    return _from_payload(data)


def _from_payload(data: Mapping[str, Any]) -> LinkToken:
    version = data.get("v")
    cid = data.get("cid")
    ts = data.get("ts")
    sig = data.get("sig")
    if not isinstance(cid, str) or not cid or not isinstance(sig, str) or not sig:
        raise LinkTokenInvalid("malformed")
    if isinstance(ts, bool) or not isinstance(ts, int):
        raise LinkTokenInvalid("malformed")
    if version != const.LINK_TOKEN_VERSION:
        raise LinkTokenInvalid("unsupported_version")
    return LinkToken(version=version, channel_id=cid, issued_at=ts, signature=sig)


def verify_link_token(
    encoded: str,
    secret: str,
    *,
    now: int | None = None,
    max_age: int = const.LINK_TOKEN_MAX_AGE,
    clock_skew: int = const.LINK_TOKEN_CLOCK_SKEW,
) -> LinkToken:
    """Reference verifier mirroring what the device does with a scanned token."""

    token = decode_link_token(encoded)
    expected = sign_link(token.channel_id, token.issued_at, secret)
    if not hmac.compare_digest(expected, token.signature.lower()):
        raise LinkTokenInvalid("bad_signature")
    current = int(time.time()) if now is None else int(now)
    if token.issued_at - current > clock_skew:
        raise LinkTokenInvalid("not_yet_valid")
    if current - token.issued_at > max_age:
        raise LinkTokenInvalid("expired")
    return token
