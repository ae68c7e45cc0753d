"""
OAuth Token 有效期校验。时间戳均为毫秒。
"""

import time
from typing import Any

from connectivity.models import StoredTokenRecord, TokenStatus

# 提前 60 秒视为过期，避免请求途中失效
EXPIRY_BUFFER_MS = 60_000


def now_ms() -> int:
    return int(time.time() * 1000)


def check_expiry(stored: StoredTokenRecord | dict[str, Any] | None) -> TokenStatus:
    if isinstance(stored, dict):
        expires_at = stored.get("expires_at")
    else:
        expires_at = stored.expires_at if stored is not None else None

    if not expires_at:
        return TokenStatus(expired=False, message="No expiry info available")

    now = now_ms()
    expired = now >= expires_at - EXPIRY_BUFFER_MS
    return TokenStatus(
        expired=expired,
        expires_at=expires_at,
        remaining_time=expires_at - now,
        message="Token expired" if expired else "Token valid",
    )


def calculate_expiry_timestamp(expires_in: int | float | None) -> int | None:
    """由 expires_in（秒）计算绝对过期时间。"""
    if not expires_in:
        return None
    return now_ms() + int(float(expires_in) * 1000)
