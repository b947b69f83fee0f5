from __future__ import annotations

import json

import pytest
import typer

from everon.adapters.store import JsonRegistrationStore
from everon.apps.cli.commands import bot as bot_cmd
from everon.apps.cli.commands import link as link_cmd
from everon.apps.cli.commands import registry as registry_cmd
from everon.services.agent_context import clear_ctx
from everon.services.registration import hash_code, issue_link_token

from conftest import RecordingSender


@pytest.fixture
def env(tmp_path, monkeypatch):
    store_path = tmp_path / "registration.json"
    monkeypatch.setenv("REG_SECRET", " s ")
    monkeypatch.setenv("EVERON_STORE_PATH", str(store_path))
    monkeypatch.delenv("EVERON_CONFIG", raising=False)
    monkeypatch.delenv("EVERON_LOG_FILE", raising=False)
    yield store_path
    clear_ctx()


def _last_json(capsys):
    out = capsys.readouterr().out.strip().splitlines()
    return json.loads(out[-1])


def test_hash_prints_provisioning_digest(env, capsys):
    registry_cmd.hash_(code="abc-123", config=None)
    assert capsys.readouterr().out.strip() == hash_code("ABC123", "S")


def test_hash_rejects_bad_code(env):
    with pytest.raises(typer.Exit) as excinfo:
        registry_cmd.hash_(code="a!", config=None)
    assert excinfo.value.exit_code == 1


def test_provision_writes_store(env, capsys):
    registry_cmd.provision(
        code="ABC123", status="active", valid_from=None, valid_until="2030-12-31", store=None, config=None
    )
    out = _last_json(capsys)
    assert out["reg_hash"] == hash_code("ABC123", "S")
    record = JsonRegistrationStore(env).load().records[0]
    assert str(record.valid_until) == "2030-12-31"

    with pytest.raises(typer.Exit):
        registry_cmd.provision(code="abc123", status="active", valid_from=None, valid_until=None, store=None, config=None)


def test_provision_rejects_bad_dates(env):
    with pytest.raises(typer.BadParameter):
        registry_cmd.provision(code="ABC123", status="active", valid_from="tomorrow", valid_until=None, store=None, config=None)


def test_missing_secret_exits_with_config_error(env, monkeypatch):
    monkeypatch.delenv("REG_SECRET")
    with pytest.raises(typer.Exit) as excinfo:
        link_cmd.token(chat_id="42", config=None)
    assert excinfo.value.exit_code == 2


def test_token_then_verify(env, capsys):
    link_cmd.token(chat_id="42", config=None)
    issued = _last_json(capsys)
    assert issued["deep_link"].startswith("everon://telegram-link?payload=")
    link_cmd.verify(payload=issued["payload"], max_age=None, config=None)
    assert _last_json(capsys)["chat_id"] == "42"

    stale = issue_link_token("42", "S", issued_at=1)
    with pytest.raises(typer.Exit):
        link_cmd.verify(payload=stale.encode(), max_age=None, config=None)
    assert _last_json(capsys) == {"ok": False, "reason": "expired"}


def test_handle_processes_tg_payload(env, capsys, monkeypatch):
    registry_cmd.provision(code="ABC123", status="active", valid_from=None, valid_until=None, store=None, config=None)
    capsys.readouterr()
    sender = RecordingSender()
    monkeypatch.setattr(
        bot_cmd,
        "init_ctx",
        lambda settings: bot_cmd_init(settings, sender),
    )
    update = {"update_id": 1, "message": {"message_id": 1, "chat": {"id": 42}, "text": "abc123"}}
    monkeypatch.setenv("TG_PAYLOAD", json.dumps(update))
    bot_cmd.handle(payload=None, config=None)
    assert _last_json(capsys) == {"ok": True, "outcome": "bound"}
    assert JsonRegistrationStore(env).load().records[0].bound_channel_id == "42"
    assert len(sender.messages) == 2


def test_handle_without_payload_is_a_no_op(env, capsys, monkeypatch):
    monkeypatch.delenv("TG_PAYLOAD", raising=False)
    bot_cmd.handle(payload=None, config=None)
    assert capsys.readouterr().out == ""


def test_handle_rejects_invalid_json(env):
    with pytest.raises(typer.Exit) as excinfo:
        bot_cmd.handle(payload="{oops", config=None)
    assert excinfo.value.exit_code == 2


def bot_cmd_init(settings, sender):
    from everon.apps.bootstrap import init_ctx

    return init_ctx(settings, sender=sender, configure_logging=False)


def test_entry_point_exposes_flat_commands(env):
    from typer.testing import CliRunner

    from everon.apps.cli.main import app

    runner = CliRunner()
    result = runner.invoke(app, ["hash", "abc-123"])
    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == hash_code("ABC123", "S")

    result = runner.invoke(app, ["token", "42"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout.strip().splitlines()[-1])["deep_link"].startswith("everon://")
