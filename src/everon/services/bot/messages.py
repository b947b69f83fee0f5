"""User-facing texts and inline keyboards (Telegram Markdown)."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from everon.services.registration.errors import Ineligible, RegistrationError
from everon.services.registration.models import IneligibleReason

ACTION_REGISTER = "REGISTER"
ACTION_REGEN_QR = "REGEN_QR"
ACTION_UNBIND = "UNBIND"

BOT_TITLE = "🤖 *EverOn Bot*"


def register_keyboard() -> Dict[str, Any]:
    return {"inline_keyboard": [[{"text": "🔐 Register", "callback_data": ACTION_REGISTER}]]}


def registered_keyboard() -> Dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": "🔄 Re-generate Device QR", "callback_data": ACTION_REGEN_QR}],
            [{"text": "🔓 Unlink this chat", "callback_data": ACTION_UNBIND}],
        ]
    }


def keyboard_for(registered: bool) -> Dict[str, Any]:
    return registered_keyboard() if registered else register_keyboard()


def instruction_message(registered: bool) -> str:
    if registered:
        return (
            f"{BOT_TITLE}\n\n"
            "This chat is linked to your EverOn device.\n\n"
            "Available commands:\n"
            "• `/start` – Show status\n"
            "• `/regenqr` – Re-generate device QR\n"
            "• `/unbind` – Unlink this chat\n"
            "• `/help` – Show instructions"
        )
    return (
        f"{BOT_TITLE}\n\n"
        "This bot links your EverOn device to this chat.\n\n"
        "Available commands:\n"
        "• `/start` – Start registration\n"
        "• `/help` – Show instructions\n\n"
        "Send your *Registration Code* to register."
    )


REGISTER_PROMPT = "🧾 Please send your *Registration Code*."
BIND_SUCCESS = "✅ *Registration successful*"
BIND_RECONFIRMED = "✅ This chat is already registered with that code."
UNBIND_SUCCESS = "🔓 This chat is no longer linked. Send a registration code to link it again."
QR_CAPTION_NEW = "🔐 *Secure EverOn Link QR*\n\n• Valid for {minutes} minutes"
QR_CAPTION_REGEN = "🔐 *New EverOn Link QR*\n\n• Valid for {minutes} minutes"
TEST_MESSAGE = "🧪 *EverOn Test Payment Slip*\n\n✅ Telegram connection is working correctly."

_INELIGIBLE_TEXT = {
    IneligibleReason.NOT_ACTIVE.value: "⛔ This registration is not active. Please contact support.",
    IneligibleReason.NOT_STARTED.value: "⏳ This registration is not valid yet.",
    IneligibleReason.EXPIRED.value: "⌛ This registration has expired.",
}

_ERROR_TEXT = {
    "invalid_format": "❌ That does not look like a registration code. Codes contain only letters and digits.",
    "not_found": "❌ Invalid registration code.",
    "already_linked_elsewhere": "⚠️ This registration code is already linked to another chat.",
    "not_owner": "⚠️ That registration is linked to another chat.",
    "not_bound": "❌ Please register first using /start",
    "store_unavailable": "⚠️ Registration is temporarily unavailable. Please try again in a moment.",
}


def error_message(exc: RegistrationError) -> str:
    if isinstance(exc, Ineligible):
        return _INELIGIBLE_TEXT.get(exc.reason, "⛔ This registration cannot be used.")
    return _ERROR_TEXT.get(exc.code, "❌ Something went wrong.")


def _md(value: Any) -> str:
    text = "-" if value in (None, "") else str(value)
    for ch in ("\\", "_", "*", "`", "["):
        text = text.replace(ch, "\\" + ch)
    return text


def slip_caption(meta: Optional[Mapping[str, Any]]) -> str:
    meta = meta or {}
    return (
        "🧾 *Payment Slip Received*\n\n"
        f"🏦 Bank: {_md(meta.get('bank'))}\n"
        f"🔢 Ref: {_md(meta.get('ref'))}\n"
        f"💰 Amount: {_md(meta.get('amount'))}"
    )
