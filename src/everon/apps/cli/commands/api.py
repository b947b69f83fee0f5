# src/everon/apps/cli/commands/api.py
import os

import typer
import uvicorn


def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8777, "--port"),
    reload: bool = typer.Option(False, "--reload", help="auto-reload for development"),
    config: str = typer.Option(None, "--config", help="YAML settings file; falls back to EVERON_CONFIG"),
):
    """Run the webhook / system-event HTTP API (FastAPI)."""
    if config:
        os.environ["EVERON_CONFIG"] = config
    uvicorn.run("everon.apps.api.server:app", host=host, port=port, reload=reload)
