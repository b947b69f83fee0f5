# src/everon/services/chat_io/interfaces.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Protocol, Optional, Dict, Any, List


# ---- Input (platform -> bot) ----
@dataclass(slots=True)
class ChatInputEvent:
    type: str  # "text|action|photo|unknown"
    source: str  # "telegram"
    chat_id: str
    user_id: str
    update_id: str
    payload: Dict[str, Any]  # {text|action|file_id|meta}


# ---- Output (bot -> platform) ----
@dataclass(slots=True)
class ChatOutputMessage:
    type: str  # "text|photo"
    text: Optional[str] = None
    image_url: Optional[str] = None
    image_bytes: Optional[bytes] = None
    image_name: str = "image.jpg"
    keyboard: Optional[Dict[str, Any]] = None
    parse_mode: Optional[str] = "Markdown"


@dataclass(slots=True)
class ChatOutputEvent:
    target: Dict[str, str]  # {"chat_id"}
    messages: List[ChatOutputMessage] = field(default_factory=list)


class ChatSender(Protocol):
    async def send(self, out: ChatOutputEvent) -> None: ...


class DeliveryError(RuntimeError):
    """Raised by a sender when the platform did not accept a message."""
