# src/everon/apps/cli/commands/link.py
from __future__ import annotations

import json

import typer

from everon.apps.cli.commands.registry import settings_or_exit
from everon.services.registration import LinkTokenInvalid, issue_link_token, verify_link_token


def token(
    chat_id: str = typer.Argument(..., help="Telegram chat id"),
    config: str = typer.Option(None, "--config"),
):
    """Issue a link token for a chat and print its wire form, deep link and QR URL."""
    settings = settings_or_exit(config)
    tok = issue_link_token(chat_id, settings.reg_secret)
    typer.echo(
        json.dumps(
            {
                "payload": tok.encode(),
                "deep_link": tok.deep_link(settings.deep_link_scheme),
                "qr_url": tok.qr_url(
                    base_url=settings.qr_base_url, size=settings.qr_size, scheme=settings.deep_link_scheme
                ),
            }
        )
    )


def verify(
    payload: str = typer.Argument(..., help="encoded token (URL-encoded is fine)"),
    max_age: int = typer.Option(None, "--max-age", help="seconds; defaults to link_token_max_age"),
    config: str = typer.Option(None, "--config"),
):
    """Check a link token the way the device does."""
    settings = settings_or_exit(config)
    try:
        tok = verify_link_token(payload, settings.reg_secret, max_age=max_age or settings.link_token_max_age)
    except LinkTokenInvalid as exc:
        typer.echo(json.dumps({"ok": False, "reason": exc.reason}))
        raise typer.Exit(1)
    typer.echo(json.dumps({"ok": True, "chat_id": tok.channel_id, "issued_at": tok.issued_at}))
