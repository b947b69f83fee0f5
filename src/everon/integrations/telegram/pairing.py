from __future__ import annotations
from typing import Optional


def split_command(text: str) -> tuple[Optional[str], str]:
    """Split ``"/start@EverOnBot CODE"`` into ``("/start", "CODE")``.

    Returns ``(None, text)`` when ``text`` is not a bot command.  Deep links
    (``t.me/<bot>?start=CODE``) arrive as ``/start CODE``.
    """
    text = (text or "").strip()
    if not text.startswith("/"):
        return None, text
    head, _, rest = text.partition(" ")
    command = head.split("@", 1)[0].lower()
    return command, rest.strip()
