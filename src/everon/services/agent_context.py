# src/everon/services/agent_context.py
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from everon.ports import RegistrationStore
from everon.services.bot import BotHandler
from everon.services.chat_io.interfaces import ChatSender
from everon.services.registration import RegistrationService
from everon.services.settings import Settings


@dataclass(slots=True)
class AgentContext:
    """Process-wide wiring shared by the HTTP app and the CLI."""

    settings: Settings
    store: RegistrationStore
    service: RegistrationService
    sender: ChatSender
    bot: BotHandler


_CTX: Optional[AgentContext] = None
_LOCK = threading.Lock()


def set_ctx(ctx: AgentContext) -> AgentContext:
    global _CTX
    with _LOCK:
        _CTX = ctx
    return ctx


def get_ctx() -> AgentContext:
    ctx = _CTX
    if ctx is None:
        raise RuntimeError("AgentContext is not initialised; call everon.apps.bootstrap.init_ctx() first")
    return ctx


def clear_ctx() -> None:
    global _CTX
    with _LOCK:
        _CTX = None
