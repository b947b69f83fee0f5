from __future__ import annotations

import base64
import hashlib
import hmac
import json
from urllib.parse import parse_qs, unquote, urlsplit

import pytest

from everon.services.registration import LinkTokenInvalid, issue_link_token, verify_link_token
from everon.services.registration.link_token import decode_link_token, sign_link


def test_signature_is_hmac_over_cid_and_ts():
    token = issue_link_token(42, "S", issued_at=1700000000)
    expected = hmac.new(b"S", b"42.1700000000", hashlib.sha256).hexdigest()
    assert token.channel_id == "42"
    assert token.signature == expected
    assert sign_link("42", 1700000000, "S") == expected


def test_signature_changes_with_any_input():
    base = sign_link("42", 1700000000, "S")
    assert sign_link("43", 1700000000, "S") != base
    assert sign_link("42", 1700000001, "S") != base
    assert sign_link("42", 1700000000, "T") != base


def test_wire_form_is_compact_base64_json():
    token = issue_link_token("42", "S", issued_at=1700000000)
    body = json.loads(base64.b64decode(token.encode()))
    assert body == {"v": 1, "cid": "42", "ts": 1700000000, "sig": token.signature}
    assert b" " not in base64.b64decode(token.encode())


def test_deep_link_and_qr_url_carry_the_payload():
    token = issue_link_token("42", "S", issued_at=1700000000)
    link = token.deep_link()
    assert link.startswith("everon://telegram-link?payload=")
    assert unquote(link.split("payload=", 1)[1]) == token.encode()

    qr = urlsplit(token.qr_url())
    assert qr.netloc == "api.qrserver.com"
    params = parse_qs(qr.query)
    assert params["size"] == ["360x360"]
    assert params["data"] == [link]


def test_issue_requires_secret():
    with pytest.raises(ValueError):
        issue_link_token("42", "")


def test_verify_accepts_fresh_token_and_url_encoded_form():
    token = issue_link_token("42", "S", issued_at=1000)
    assert verify_link_token(token.encode(), "S", now=1100) == token
    encoded = token.deep_link().split("payload=", 1)[1]
    assert verify_link_token(encoded, "S", now=1100).channel_id == "42"


@pytest.mark.parametrize(
    "secret,now,reason",
    [
        ("T", 1100, "bad_signature"),
        ("S", 1000 + 601, "expired"),
        ("S", 1000 - 61, "not_yet_valid"),
    ],
)
def test_verify_rejections(secret, now, reason):
    token = issue_link_token("42", "S", issued_at=1000)
    with pytest.raises(LinkTokenInvalid) as excinfo:
        verify_link_token(token.encode(), secret, now=now)
    assert excinfo.value.reason == reason


def test_decode_rejects_garbage_and_unknown_versions():
    with pytest.raises(LinkTokenInvalid) as excinfo:
        decode_link_token("not base64 at all!")
    assert excinfo.value.reason == "malformed"
    v2 = base64.b64encode(json.dumps({"v": 2, "cid": "1", "ts": 1, "sig": "x"}).encode()).decode()
    with pytest.raises(LinkTokenInvalid) as excinfo:
        decode_link_token(v2)
    assert excinfo.value.reason == "unsupported_version"
