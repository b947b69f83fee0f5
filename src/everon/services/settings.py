from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping
import os

import yaml

from everon.config import const

__all__ = ["ConfigError", "Settings", "load_settings"]


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


@dataclass
class Settings:
    reg_secret: str = ""
    telegram_bot_token: str | None = None
    webhook_secret: str | None = None
    api_token: str | None = None
    store_path: str = const.STORE_PATH
    timezone: str = "UTC"
    code_min_length: int = const.CODE_MIN_LENGTH
    code_max_length: int = const.CODE_MAX_LENGTH
    link_token_max_age: int = const.LINK_TOKEN_MAX_AGE
    deep_link_scheme: str = const.DEEP_LINK_SCHEME
    qr_base_url: str = const.QR_BASE_URL
    qr_size: str = const.QR_SIZE
    telegram_api_base: str = const.TELEGRAM_API_BASE
    log_level: str = "INFO"
    log_file: str | None = None

    def __post_init__(self) -> None:
        # The bot has always hashed codes with the trimmed, upper-cased secret.
        self.reg_secret = (self.reg_secret or "").strip().upper()
        self.code_min_length = int(self.code_min_length)
        self.code_max_length = int(self.code_max_length)
        self.link_token_max_age = int(self.link_token_max_age)
        if self.code_min_length < 1 or self.code_max_length < self.code_min_length:
            raise ConfigError("code_min_length/code_max_length are inconsistent")

    def require_secret(self) -> str:
        if not self.reg_secret:
            raise ConfigError("REG_SECRET is not configured")
        return self.reg_secret


# env var -> settings field
_ENV_MAP = {
    "REG_SECRET": "reg_secret",
    "TELEGRAM_BOT_TOKEN": "telegram_bot_token",
    "EVERON_WEBHOOK_SECRET": "webhook_secret",
    "EVERON_API_TOKEN": "api_token",
    "EVERON_STORE_PATH": "store_path",
    "EVERON_TIMEZONE": "timezone",
    "EVERON_CODE_MIN_LENGTH": "code_min_length",
    "EVERON_CODE_MAX_LENGTH": "code_max_length",
    "EVERON_LINK_TOKEN_MAX_AGE": "link_token_max_age",
    "EVERON_LOG_LEVEL": "log_level",
    "EVERON_LOG_FILE": "log_file",
}


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must be a mapping")
    return data


def load_settings(config_path: str | Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from an optional YAML file plus environment overrides.

    The file path falls back to ``EVERON_CONFIG``; environment values win over
    file values.
    """
    env = os.environ if env is None else env
    path = config_path or env.get("EVERON_CONFIG")
    values: dict[str, Any] = {}
    if path:
        known = {f.name for f in fields(Settings)}
        for key, value in _read_yaml(Path(path)).items():
            if key in known:
                values[key] = value
    for var, name in _ENV_MAP.items():
        raw = env.get(var)
        if raw is not None and raw != "":
            values[name] = raw
    try:
        return Settings(**values)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid settings: {exc}") from exc
