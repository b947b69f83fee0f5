# src/everon/apps/cli/commands/bot.py
"""One-shot processing of a single update, the way the bot runs from a job runner."""

from __future__ import annotations

import json
import os

import anyio
import typer

from everon.apps.bootstrap import init_ctx
from everon.services.bot import SystemEventError, dispatch_payload, parse_payload
from everon.services.chat_io.interfaces import DeliveryError
from everon.services.registration import RegistrationError
from everon.services.settings import ConfigError, load_settings


def handle(
    payload: str = typer.Option(None, "--payload", help="JSON update or system event; defaults to $TG_PAYLOAD"),
    config: str = typer.Option(None, "--config", help="YAML settings file"),
):
    """Process one Telegram update or system event and print the outcome."""
    raw = payload if payload is not None else os.environ.get("TG_PAYLOAD")
    if not raw:
        typer.echo("no payload given, nothing to do", err=True)
        return
    try:
        data = parse_payload(raw)
        ctx = init_ctx(load_settings(config))
    except SystemEventError as exc:
        typer.secho(f"invalid payload: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)
    except ConfigError as exc:
        typer.secho(f"configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)

    try:
        outcome = anyio.run(dispatch_payload, ctx.bot, data)
    except SystemEventError as exc:
        typer.secho(f"invalid payload: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)
    except RegistrationError as exc:
        typer.echo(json.dumps({"ok": False, "error": exc.as_dict()}))
        raise typer.Exit(1)
    except DeliveryError as exc:
        typer.echo(json.dumps({"ok": False, "error": {"code": "delivery_failed", "message": str(exc)}}))
        raise typer.Exit(1)
    typer.echo(json.dumps({"ok": True, "outcome": outcome}))
