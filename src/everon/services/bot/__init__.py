from .handler import SYSTEM_ACTIONS, BotHandler, SystemEventError, dispatch_payload, parse_payload

__all__ = ["SYSTEM_ACTIONS", "BotHandler", "SystemEventError", "dispatch_payload", "parse_payload"]
