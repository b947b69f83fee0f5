from __future__ import annotations

from fastapi import Request

from everon.services.agent_context import AgentContext, get_ctx


def app_ctx(request: Request) -> AgentContext:
    ctx = getattr(request.app.state, "ctx", None)
    return ctx if ctx is not None else get_ctx()
