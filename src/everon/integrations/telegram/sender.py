from __future__ import annotations
from everon.config import const
from everon.services.chat_io.interfaces import ChatOutputEvent, ChatOutputMessage, DeliveryError
from everon.services.chat_io.rate_limit import PerChatLimiter
from everon.services.chat_io import telemetry as tm
from typing import Any, Optional
import asyncio
import logging
import httpx

_log = logging.getLogger("everon.telegram.sender")

_RETRY_STATUS = (429, 500, 502, 503, 504)


class TelegramSendError(DeliveryError):
    def __init__(self, method: str, status_code: int | None = None, detail: str | None = None) -> None:
        msg = f"telegram {method} failed"
        if status_code is not None:
            msg += f" with HTTP {status_code}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.method = method
        self.status_code = status_code


class TelegramSender:
    """Bot API client for the handful of methods the bot needs."""

    def __init__(
        self,
        token: str,
        *,
        api_base: str = const.TELEGRAM_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        attempts: int = 3,
        limiter: Optional[PerChatLimiter] = None,
    ) -> None:
        if not token:
            raise ValueError("telegram bot token is required")
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._transport = transport
        self._attempts = attempts
        self._limiter = limiter or PerChatLimiter(rate_per_sec=1.0, capacity=30)

    async def send(self, out: ChatOutputEvent) -> None:
        chat_id = out.target.get("chat_id")
        if not chat_id:
            raise ValueError("output event has no chat_id")
        for m in out.messages:
            await self._send_one(chat_id, m)

    async def answer_callback(self, callback_id: str) -> None:
        await self._call("answerCallbackQuery", {"callback_query_id": callback_id})

    async def _send_one(self, chat_id: str, m: ChatOutputMessage) -> None:
        wait = self._limiter.delay(chat_id)
        if wait:
            await asyncio.sleep(min(wait, 5.0))
        if m.type == "text" and m.text:
            body: dict[str, Any] = {"chat_id": chat_id, "text": m.text}
            if m.parse_mode:
                body["parse_mode"] = m.parse_mode
            if m.keyboard:
                body["reply_markup"] = m.keyboard
            await self._call("sendMessage", body)
            tm.record_event("outbound_total", {"type": "text"})
        elif m.type == "photo" and m.image_url:
            body = {"chat_id": chat_id, "photo": m.image_url, "caption": m.text or ""}
            if m.parse_mode:
                body["parse_mode"] = m.parse_mode
            if m.keyboard:
                body["reply_markup"] = m.keyboard
            await self._call("sendPhoto", body)
            tm.record_event("outbound_total", {"type": "photo"})
        elif m.type == "photo" and m.image_bytes:
            fields = {"chat_id": chat_id, "caption": m.text or ""}
            if m.parse_mode:
                fields["parse_mode"] = m.parse_mode
            files = {"photo": (m.image_name, m.image_bytes, "image/jpeg")}
            await self._call_multipart("sendPhoto", fields, files)
            tm.record_event("outbound_total", {"type": "photo_upload"})
        else:
            raise ValueError(f"unsupported output message type: {m.type!r}")

    def _url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._token}/{method}"

    async def _call(self, method: str, payload: dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
            await _with_retries(method, lambda: client.post(self._url(method), json=payload), attempts=self._attempts)

    async def _call_multipart(self, method: str, fields: dict[str, Any], files: dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=20.0, transport=self._transport) as client:
            await _with_retries(
                method, lambda: client.post(self._url(method), data=fields, files=files), attempts=self._attempts
            )


async def _with_retries(method: str, request, *, attempts: int = 3) -> None:
    backoff = 0.5
    last_status: int | None = None
    last_error: str | None = None
    for attempt in range(attempts):
        try:
            resp = await request()
        except httpx.HTTPError as exc:
            last_status, last_error = None, str(exc)
        else:
            if resp.status_code in (200, 201, 202):
                return
            last_status, last_error = resp.status_code, resp.text[:200]
            if resp.status_code not in _RETRY_STATUS:
                break
            if resp.status_code == 429:
                try:
                    retry_after = float(((resp.json() or {}).get("parameters") or {}).get("retry_after", backoff))
                except (ValueError, AttributeError, TypeError):
                    retry_after = backoff
                backoff = max(backoff, min(retry_after, 5.0))
        if attempt + 1 < attempts:
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, 5.0)
    _log.warning("telegram %s failed status=%s detail=%s", method, last_status, last_error)
    tm.record_event("outbound_failed_total", {"method": method})
    raise TelegramSendError(method, last_status, last_error)
