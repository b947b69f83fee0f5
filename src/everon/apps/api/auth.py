import hmac

from fastapi import Depends, Header, HTTPException, status

from everon.apps.api.deps import app_ctx
from everon.services.agent_context import AgentContext


async def require_token(
    ctx: AgentContext = Depends(app_ctx),
    x_everon_token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    """
    Accept either X-Everon-Token or Authorization: Bearer <token>.
    """
    expected = ctx.settings.api_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="EVERON_API_TOKEN is not configured",
        )
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    elif x_everon_token:
        token = x_everon_token

    if token is None or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing X-Everon-Token",
        )
