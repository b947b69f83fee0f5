"""Dispatch of Telegram updates and system events onto the registration service."""
from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Callable, Mapping, Optional, TypeVar

import anyio

from everon.integrations.telegram.normalize import to_input_event
from everon.integrations.telegram.pairing import split_command
from everon.services.chat_io import telemetry as tm
from everon.services.chat_io.interfaces import ChatOutputEvent, ChatOutputMessage, ChatSender, DeliveryError
from everon.services.registration import (
    EventKind,
    InboundEvent,
    NotBound,
    RegistrationError,
    RegistrationService,
)
from everon.services.registration.codes import looks_like_code
from everon.services.registration.link_token import LinkToken
from everon.services.settings import Settings

from . import messages as msg

__all__ = ["BotHandler", "SystemEventError", "SYSTEM_ACTIONS", "parse_payload", "dispatch_payload"]

_log = logging.getLogger("everon.bot")

T = TypeVar("T")

SYSTEM_ACTIONS = ("SEND_TEST", "SEND_SLIP")


class SystemEventError(ValueError):
    """Raised when a system event is malformed or names an unknown action."""


class BotHandler:
    def __init__(self, service: RegistrationService, sender: ChatSender, settings: Settings) -> None:
        self.service = service
        self.sender = sender
        self.settings = settings

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        # store access is blocking file I/O
        return await anyio.to_thread.run_sync(fn, *args)

    async def _reply(self, chat_id: str, *messages: ChatOutputMessage) -> bool:
        try:
            await self.sender.send(ChatOutputEvent(target={"chat_id": chat_id}, messages=list(messages)))
        except DeliveryError as exc:
            _log.warning("reply to chat %s not delivered: %s", chat_id, exc)
            return False
        return True

    def _text(self, text: str, keyboard: Optional[Mapping[str, Any]] = None) -> ChatOutputMessage:
        return ChatOutputMessage(type="text", text=text, keyboard=dict(keyboard) if keyboard else None)

    def _qr(self, token: LinkToken, caption: str) -> ChatOutputMessage:
        url = token.qr_url(
            base_url=self.settings.qr_base_url,
            size=self.settings.qr_size,
            scheme=self.settings.deep_link_scheme,
        )
        minutes = max(1, self.settings.link_token_max_age // 60)
        return ChatOutputMessage(
            type="photo",
            image_url=url,
            text=caption.format(minutes=minutes),
            keyboard=msg.registered_keyboard(),
        )

    async def _is_registered(self, chat_id: str) -> bool:
        return bool(await self._run(self.service.records_for, chat_id))

    # ------------------------------------------------------------------
    # Telegram updates
    # ------------------------------------------------------------------
    async def handle_update(self, update: Mapping[str, Any]) -> str:
        """Process one Telegram update and return a short outcome label."""

        ev = to_input_event(update)
        if not ev.chat_id:
            outcome = "ignored"
        elif ev.type == "action":
            callback_id = (ev.payload.get("meta") or {}).get("callback_id")
            if callback_id and hasattr(self.sender, "answer_callback"):
                try:
                    await self.sender.answer_callback(callback_id)
                except DeliveryError as exc:
                    _log.info("callback %s not acknowledged: %s", callback_id, exc)
            outcome = await self._on_action(ev.chat_id, str((ev.payload.get("action") or {}).get("id") or ""))
        elif ev.type == "text":
            outcome = await self._on_text(ev.chat_id, str(ev.payload.get("text") or ""))
        else:
            outcome = "ignored"
        tm.record_event("registration_total", {"outcome": outcome})
        return outcome

    async def _on_action(self, chat_id: str, action: str) -> str:
        if action == msg.ACTION_REGISTER:
            await self._reply(chat_id, self._text(msg.REGISTER_PROMPT))
            return "prompt"
        if action == msg.ACTION_REGEN_QR:
            return await self._event(InboundEvent(EventKind.REISSUE_TOKEN, chat_id))
        if action == msg.ACTION_UNBIND:
            return await self._event(InboundEvent(EventKind.UNBIND, chat_id))
        return "ignored"

    async def _on_text(self, chat_id: str, text: str) -> str:
        command, rest = split_command(text)
        if command == "/start":
            if rest:
                return await self._event(InboundEvent(EventKind.BIND_ATTEMPT, chat_id, rest))
            return await self._help(chat_id)
        if command == "/help":
            return await self._help(chat_id)
        if command == "/regenqr":
            return await self._event(InboundEvent(EventKind.REISSUE_TOKEN, chat_id))
        if command == "/unbind":
            return await self._event(InboundEvent(EventKind.UNBIND, chat_id, rest))
        if command is not None:
            return await self._help(chat_id)
        if looks_like_code(text, max_length=self.settings.code_max_length):
            return await self._event(InboundEvent(EventKind.BIND_ATTEMPT, chat_id, text))
        return await self._help(chat_id)

    async def _help(self, chat_id: str) -> str:
        registered = await self._is_registered(chat_id)
        await self._reply(chat_id, self._text(msg.instruction_message(registered), msg.keyboard_for(registered)))
        return "help"

    async def _event(self, event: InboundEvent) -> str:
        chat_id = event.channel_id
        try:
            result = await self._run(self.service.handle, event)
        except RegistrationError as exc:
            _log.info("chat %s %s rejected: %s", chat_id, event.kind, exc.code)
            await self._reply(chat_id, self._text(msg.error_message(exc)))
            return f"rejected:{exc.code}"

        if event.kind is EventKind.BIND_ATTEMPT:
            if result.created:
                await self._reply(chat_id, self._text(msg.BIND_SUCCESS), self._qr(result.token, msg.QR_CAPTION_NEW))
                return "bound"
            await self._reply(chat_id, self._text(msg.BIND_RECONFIRMED), self._qr(result.token, msg.QR_CAPTION_NEW))
            return "reconfirmed"
        if event.kind is EventKind.UNBIND:
            await self._reply(chat_id, self._text(msg.UNBIND_SUCCESS, msg.register_keyboard()))
            return "unbound"
        await self._reply(chat_id, self._qr(result.token, msg.QR_CAPTION_REGEN))
        return "reissued"

    # ------------------------------------------------------------------
    # System events (device app -> chat)
    # ------------------------------------------------------------------
    async def handle_system(self, event: Mapping[str, Any]) -> str:
        """Deliver a ``SEND_TEST`` or ``SEND_SLIP`` event to a bound chat.

        Raises :class:`SystemEventError` for malformed input and
        :class:`NotBound` when the target chat holds no registration.
        Delivery errors propagate to the caller.
        """

        action = str(event.get("type") or "").upper()
        chat_id = str(event.get("chat_id") or "").strip()
        if action not in SYSTEM_ACTIONS:
            raise SystemEventError(f"unknown system event {action!r}")
        if not chat_id:
            raise SystemEventError("chat_id is required")
        if action == "SEND_TEST":
            message = self._text(msg.TEST_MESSAGE)
        else:
            image = event.get("image_base64")
            if not image:
                raise SystemEventError("image_base64 is required")
            try:
                data = base64.b64decode(str(image), validate=True)
            except (binascii.Error, ValueError) as exc:
                raise SystemEventError("image_base64 is not valid base64") from exc
            meta = event.get("meta")
            message = ChatOutputMessage(
                type="photo",
                image_bytes=data,
                image_name="slip.jpg",
                text=msg.slip_caption(meta if isinstance(meta, Mapping) else None),
            )

        if not await self._is_registered(chat_id):
            raise NotBound("chat is not linked to any registration")
        await self.sender.send(ChatOutputEvent(target={"chat_id": chat_id}, messages=[message]))
        tm.record_event("system_event_total", {"type": action})
        _log.info("system event %s delivered to chat %s", action, chat_id)
        return action.lower()


def parse_payload(raw: Optional[str]) -> Mapping[str, Any]:
    """Decode a one-shot JSON payload (a Telegram update or a system event)."""
    if not raw:
        raise SystemEventError("payload is empty")
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise SystemEventError(f"payload is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SystemEventError("payload must be a JSON object")
    return data


async def dispatch_payload(handler: BotHandler, payload: Mapping[str, Any]) -> str:
    if str(payload.get("type") or "").upper() in SYSTEM_ACTIONS:
        return await handler.handle_system(payload)
    return await handler.handle_update(payload)
