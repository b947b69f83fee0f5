from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from everon.apps.api.auth import require_token
from everon.apps.api.deps import app_ctx
from everon.services.agent_context import AgentContext
from everon.services.registration import LinkTokenInvalid, verify_link_token

router = APIRouter(dependencies=[Depends(require_token)])


class VerifyRequest(BaseModel):
    payload: str = Field(..., min_length=1, description="encoded link token, optionally URL-encoded")
    max_age: int | None = Field(default=None, ge=1)


class VerifyResponse(BaseModel):
    ok: bool = True
    chat_id: str
    issued_at: int


@router.post("/link/verify", response_model=VerifyResponse)
async def verify(body: VerifyRequest, ctx: AgentContext = Depends(app_ctx)):
    settings = ctx.settings
    try:
        token = verify_link_token(
            body.payload,
            settings.require_secret(),
            max_age=body.max_age or settings.link_token_max_age,
        )
    except LinkTokenInvalid as exc:
        return JSONResponse(status_code=400, content={"ok": False, "reason": exc.reason})
    return VerifyResponse(chat_id=token.channel_id, issued_at=token.issued_at)
