# src/everon/apps/cli/commands/registry.py
from __future__ import annotations

import json
from datetime import date
from typing import Optional

import typer

from everon.adapters.store import JsonRegistrationStore
from everon.services.registration import RecordStatus, RegistrationError, RegistrationService, hash_code, normalize_code
from everon.services.settings import ConfigError, Settings, load_settings


def settings_or_exit(config: Optional[str]) -> Settings:
    try:
        settings = load_settings(config)
        settings.require_secret()
    except ConfigError as exc:
        typer.secho(f"configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)
    return settings


def _date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"{name} must be YYYY-MM-DD", param_hint=name)


def provision(
    code: str = typer.Argument(..., help="registration code printed for the customer"),
    status: RecordStatus = typer.Option(RecordStatus.ACTIVE, "--status"),
    valid_from: str = typer.Option(None, "--valid-from", help="first usable day, YYYY-MM-DD"),
    valid_until: str = typer.Option(None, "--valid-until", help="last usable day, YYYY-MM-DD"),
    store: str = typer.Option(None, "--store", help="registration.json path; defaults to EVERON_STORE_PATH"),
    config: str = typer.Option(None, "--config"),
):
    """Add an unbound registration record (only the code hash is stored)."""
    settings = settings_or_exit(config)
    path = store or settings.store_path
    service = RegistrationService.from_settings(settings, JsonRegistrationStore(path))
    try:
        record = service.provision(
            code,
            status=RecordStatus(status).value,
            valid_from=_date(valid_from, "--valid-from"),
            valid_until=_date(valid_until, "--valid-until"),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    except RegistrationError as exc:
        typer.secho(f"provision failed: {exc} ({exc.code})", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.echo(json.dumps({"reg_hash": record.code_hash, "status": record.status, "store": str(path)}))


def hash_(
    code: str = typer.Argument(...),
    config: str = typer.Option(None, "--config"),
):
    """Print the stored hash for a registration code."""
    settings = settings_or_exit(config)
    try:
        normalized = normalize_code(
            code, min_length=settings.code_min_length, max_length=settings.code_max_length
        )
    except RegistrationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.echo(hash_code(normalized, settings.reg_secret))
