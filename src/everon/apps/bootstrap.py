# src/everon/apps/bootstrap.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from everon.adapters.store import JsonRegistrationStore
from everon.integrations.telegram.sender import TelegramSender
from everon.ports import RegistrationStore
from everon.services.agent_context import AgentContext, set_ctx
from everon.services.bot import BotHandler
from everon.services.chat_io.interfaces import ChatSender
from everon.services.logging import setup_logging
from everon.services.registration import RegistrationService
from everon.services.settings import ConfigError, Settings, load_settings

_log = logging.getLogger("everon.bootstrap")


def init_ctx(
    settings: Optional[Settings] = None,
    *,
    store: Optional[RegistrationStore] = None,
    sender: Optional[ChatSender] = None,
    clock: Optional[Callable[[], datetime]] = None,
    configure_logging: bool = True,
) -> AgentContext:
    """Wire settings, store, service and sender and publish them via ``set_ctx``.

    Tests pass ready-made ``store``/``sender`` doubles; in production both are
    built from ``settings``.
    """

    settings = settings or load_settings()
    if configure_logging:
        setup_logging(settings.log_level, logfile=settings.log_file)
    if store is None:
        store = JsonRegistrationStore(settings.store_path)
    if sender is None:
        if not settings.telegram_bot_token:
            raise ConfigError("TELEGRAM_BOT_TOKEN is not configured")
        sender = TelegramSender(settings.telegram_bot_token, api_base=settings.telegram_api_base)
    service = RegistrationService.from_settings(settings, store, clock=clock)
    bot = BotHandler(service, sender, settings)
    _log.info("context ready store=%s tz=%s", getattr(store, "path", type(store).__name__), settings.timezone)
    return set_ctx(AgentContext(settings=settings, store=store, service=service, sender=sender, bot=bot))
