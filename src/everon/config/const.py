# src/everon/config/const.py
from __future__ import annotations

# Defaults shipped with the build; deployments override them via config/env.
CODE_MIN_LENGTH: int = 6
CODE_MAX_LENGTH: int = 64

# Separator characters users may type inside a code; dropped on normalization.
CODE_SEPARATORS: str = "-"

LINK_TOKEN_VERSION: int = 1
# Freshness window the device applies when verifying a link token.
LINK_TOKEN_MAX_AGE: int = 600
LINK_TOKEN_CLOCK_SKEW: int = 60

DEEP_LINK_SCHEME: str = "everon://telegram-link"
QR_BASE_URL: str = "https://api.qrserver.com/v1/create-qr-code/"
QR_SIZE: str = "360x360"

STORE_PATH: str = "registration.json"
TELEGRAM_API_BASE: str = "https://api.telegram.org"
