# src/everon/apps/api/server.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from everon import __version__
from everon.apps.api import io_webhooks, link_api
from everon.apps.bootstrap import init_ctx
from everon.services.agent_context import AgentContext
from everon.services.chat_io import telemetry as tm


def create_app(ctx: Optional[AgentContext] = None) -> FastAPI:
    """Build the HTTP app; without ``ctx`` the context is initialised on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "ctx", None) is None:
            app.state.ctx = init_ctx()
        yield

    app = FastAPI(title="EverOn Link", version=__version__, lifespan=lifespan)
    if ctx is not None:
        app.state.ctx = ctx

    app.include_router(link_api.router, prefix="/api")
    # Chat IO webhooks (mounted without /api prefix to keep exact paths)
    app.include_router(io_webhooks.router)

    @app.get("/healthz")
    async def healthz():
        return {"ok": True, "version": __version__, "telemetry": tm.snapshot()}

    return app


app = create_app()
