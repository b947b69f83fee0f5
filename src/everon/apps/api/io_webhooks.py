from __future__ import annotations
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from everon.apps.api.auth import require_token
from everon.apps.api.deps import app_ctx
from everon.integrations.telegram.webhook import validate_secret
from everon.services.agent_context import AgentContext
from everon.services.bot import SystemEventError
from everon.services.chat_io import telemetry as tm
from everon.services.chat_io.interfaces import DeliveryError
from everon.services.registration import RegistrationError

router = APIRouter()
_log = logging.getLogger("everon.api.io")


async def _json_body(req: Request) -> dict:
    try:
        body = await req.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="body must be JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="body must be a JSON object")
    return body


@router.post("/io/tg/webhook")
async def tg_webhook(
    req: Request,
    ctx: AgentContext = Depends(app_ctx),
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
):
    if not validate_secret(x_telegram_bot_api_secret_token, ctx.settings.webhook_secret):
        tm.record_event("webhook_rejected_total", {"reason": "secret"})
        raise HTTPException(status_code=401, detail="invalid webhook secret")
    update = await _json_body(req)
    tm.record_event("inbound_total", {"source": "telegram"})
    outcome = await ctx.bot.handle_update(update)
    # Telegram redelivers on non-2xx, so rejections are reported in the body.
    return {"ok": True, "outcome": outcome}


@router.post("/io/system", dependencies=[Depends(require_token)])
async def system_event(req: Request, ctx: AgentContext = Depends(app_ctx)):
    event = await _json_body(req)
    try:
        delivered = await ctx.bot.handle_system(event)
    except SystemEventError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except RegistrationError as exc:
        status_code = 503 if exc.retryable else 409
        return JSONResponse(status_code=status_code, content={"ok": False, "error": exc.as_dict()})
    except DeliveryError as exc:
        _log.warning("system event %s not delivered: %s", event.get("type"), exc)
        return JSONResponse(status_code=502, content={"ok": False, "error": {"code": "delivery_failed", "message": str(exc)}})
    return {"ok": True, "delivered": delivered}
