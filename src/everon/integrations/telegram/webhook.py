from __future__ import annotations

import hmac


def validate_secret(header_value: str | None, expected: str | None) -> bool:
    """Check ``X-Telegram-Bot-Api-Secret-Token`` against the configured secret."""
    if not expected:
        return True
    return bool(header_value) and hmac.compare_digest(header_value.encode("utf-8"), expected.encode("utf-8"))
