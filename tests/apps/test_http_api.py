from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from everon.apps.api.server import create_app
from everon.apps.bootstrap import init_ctx
from everon.services.agent_context import clear_ctx
from everon.services.registration import issue_link_token
from everon.services.settings import Settings

from conftest import SECRET, RecordingSender


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def client(store, sender, clock):
    settings = Settings(reg_secret=SECRET, webhook_secret="hook", api_token="api-token")
    ctx = init_ctx(settings, store=store, sender=sender, clock=clock, configure_logging=False)
    with TestClient(create_app(ctx)) as c:
        yield c
    clear_ctx()


def _update(chat_id, text):
    return {"update_id": 1, "message": {"message_id": 1, "chat": {"id": chat_id}, "text": text}}


def test_webhook_requires_secret_header(client, store):
    resp = client.post("/io/tg/webhook", json=_update(42, "abc123"))
    assert resp.status_code == 401
    assert store.records[0].bound_channel_id is None


def test_webhook_binds_chat(client, store, sender):
    resp = client.post(
        "/io/tg/webhook", json=_update(42, "abc123"), headers={"X-Telegram-Bot-Api-Secret-Token": "hook"}
    )
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "outcome": "bound"}
    assert store.records[0].bound_channel_id == "42"
    assert len(sender.messages) == 2


def test_webhook_rejects_non_json(client):
    resp = client.post(
        "/io/tg/webhook", content=b"not json", headers={"X-Telegram-Bot-Api-Secret-Token": "hook"}
    )
    assert resp.status_code == 400


def test_system_event_auth_and_errors(client, sender):
    event = {"type": "SEND_TEST", "chat_id": "42"}
    assert client.post("/io/system", json=event).status_code == 401
    assert client.post("/io/system", json=event, headers={"X-Everon-Token": "nope"}).status_code == 401

    auth = {"Authorization": "Bearer api-token"}
    resp = client.post("/io/system", json=event, headers=auth)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "not_bound"

    assert client.post("/io/system", json={"type": "NOPE", "chat_id": "42"}, headers=auth).status_code == 400


def test_system_slip_to_bound_chat(client, sender):
    client.post("/io/tg/webhook", json=_update(42, "abc123"), headers={"X-Telegram-Bot-Api-Secret-Token": "hook"})
    event = {
        "type": "SEND_SLIP",
        "chat_id": "42",
        "image_base64": base64.b64encode(b"jpeg").decode(),
        "meta": {"bank": "SCB", "ref": "1", "amount": "99.00"},
    }
    resp = client.post("/io/system", json=event, headers={"X-Everon-Token": "api-token"})
    assert resp.json() == {"ok": True, "delivered": "send_slip"}
    assert sender.messages[-1].image_bytes == b"jpeg"


def test_link_verify(client, clock):
    token = issue_link_token("42", SECRET)
    headers = {"X-Everon-Token": "api-token"}
    resp = client.post("/api/link/verify", json={"payload": token.encode()}, headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "chat_id": "42", "issued_at": token.issued_at}

    forged = issue_link_token("42", "OTHER")
    resp = client.post("/api/link/verify", json={"payload": forged.encode()}, headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "reason": "bad_signature"}

    assert client.post("/api/link/verify", json={"payload": ""}, headers=headers).status_code == 422


def test_healthz_reports_counters(client):
    client.post("/io/tg/webhook", json=_update(42, "hi there!"), headers={"X-Telegram-Bot-Api-Secret-Token": "hook"})
    body = client.get("/healthz").json()
    assert body["ok"] is True
    assert body["telemetry"]["registration_total{outcome=help}"] == 1
