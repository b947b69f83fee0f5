from __future__ import annotations
from typing import Mapping, Any, Dict
from everon.services.chat_io.interfaces import ChatInputEvent


def to_input_event(update: Mapping[str, Any]) -> ChatInputEvent:
    """Reduce a Bot API update to the fields the registration bot reacts to.

    Button presses carry the chat of the message the keyboard was attached to.
    """
    cb = update.get("callback_query") or {}
    msg = cb.get("message") if cb else update.get("message") or update.get("edited_message")
    msg = msg or {}
    frm = cb.get("from") or msg.get("from") or {}
    meta: Dict[str, Any] = {"msg_id": msg.get("message_id")}

    if cb:
        kind = "action"
        meta["callback_id"] = cb.get("id")
        payload: Dict[str, Any] = {"action": {"id": cb.get("data")}}
    elif msg.get("text"):
        kind = "text"
        meta["lang"] = frm.get("language_code")
        payload = {"text": msg["text"]}
    elif msg.get("photo"):
        # sizes are ordered smallest first
        kind = "photo"
        payload = {"file_id": (msg["photo"][-1] or {}).get("file_id")}
    else:
        kind = "unknown"
        meta["raw_kind"] = next((k for k in update if k != "update_id"), None)
        payload = {}
    payload["meta"] = meta

    return ChatInputEvent(
        type=kind,
        source="telegram",
        chat_id=str((msg.get("chat") or {}).get("id") or ""),
        user_id=str(frm.get("id") or ""),
        update_id=str(update.get("update_id", "")),
        payload=payload,
    )
