"""
错误分类：将传输异常与 HTTP 状态码归一化为固定的错误类型。

分类函数是纯函数，不做任何 I/O。
"""

import re
from typing import Optional

from connectivity.models import ClassifiedError, ErrorKind, TestOutcome


# ── 异常 ──────────────────────────────────────────────

class ConnectivityError(Exception):
    """本子系统所有异常的基类。"""


class ValidationError(ConnectivityError):
    """发起网络请求前即可发现的输入错误（缺少凭证、缺少测试 URL 等）。"""

    def __init__(self, message: str, missing_fields: list[str] | None = None):
        self.missing_fields = missing_fields or []
        super().__init__(message)


class ConfigurationError(ConnectivityError):
    """集成 / 鉴权定义缺失或彼此不一致。"""


class TransportError(ConnectivityError):
    """传输层失败（DNS、连接被拒绝、连接重置等）。"""


class TransportTimeout(TransportError):
    """请求超时，已中止。"""


class TokenRefreshError(ConnectivityError):
    """刷新 OAuth Token 失败。"""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class UnsupportedOperationError(ConnectivityError):
    """当前鉴权方式不支持该操作。"""


# ── 分类 ──────────────────────────────────────────────

REFRESH_PREFIX = "Token refresh failed: "

_MESSAGES = {
    ErrorKind.TIMEOUT: "Connection timeout - Provider API did not respond in time",
    ErrorKind.DNS_ERROR: "DNS resolution failed - Cannot find provider domain",
    ErrorKind.CONNECTION_REFUSED: "Connection refused - Provider API is not reachable",
    ErrorKind.CONNECTION_RESET: "Connection reset - Provider closed the connection",
    ErrorKind.AUTHENTICATION: "Authentication failed - Invalid credentials",
    ErrorKind.AUTHORIZATION: "Authorization failed - Insufficient permissions or invalid scopes",
    ErrorKind.NOT_FOUND: "Endpoint not found - Check test endpoint configuration",
    ErrorKind.SERVER_ERROR: "Provider server error - The provider API is experiencing issues",
}

# 按顺序匹配，先命中者生效
_SUBSTRING_RULES: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.TIMEOUT, ("etimedout", "timeout", "timed out")),
    (ErrorKind.DNS_ERROR, (
        "enotfound",
        "name or service not known",
        "nodename nor servname",
        "getaddrinfo failed",
        "temporary failure in name resolution",
        "no address associated with hostname",
    )),
    (ErrorKind.CONNECTION_REFUSED, ("econnrefused", "connection refused")),
    (ErrorKind.CONNECTION_RESET, ("econnreset", "connection reset")),
]

# 只认 "status 401" / "status code 401" 这种写法，主机名中的数字不算
_STATUS_IN_MESSAGE = re.compile(r"\bstatus(?: code)? (401|403|404|5\d\d)\b", re.IGNORECASE)


def message_for(kind: ErrorKind, status_code: int | None = None) -> str:
    if kind == ErrorKind.HTTP_ERROR:
        return f"HTTP {status_code} error" if status_code is not None else "HTTP error"
    return _MESSAGES.get(kind, "Unknown error")


def kind_for_status(status_code: int) -> ErrorKind:
    """HTTP 状态码 → 错误类型。"""
    if status_code == 401:
        return ErrorKind.AUTHENTICATION
    if status_code == 403:
        return ErrorKind.AUTHORIZATION
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.HTTP_ERROR


def _kind_from_message(message: str) -> tuple[ErrorKind, Optional[int]]:
    lowered = message.lower()
    for kind, needles in _SUBSTRING_RULES:
        if any(needle in lowered for needle in needles):
            return kind, None

    match = _STATUS_IN_MESSAGE.search(message)
    if match:
        status = int(match.group(1))
        return kind_for_status(status), status

    if "missing required" in lowered:
        return ErrorKind.VALIDATION, None
    return ErrorKind.UNKNOWN, None


def classify_error(error: BaseException) -> tuple[ErrorKind, Optional[int]]:
    """返回 (错误类型, 可识别的 HTTP 状态码)。"""
    if isinstance(error, TransportTimeout):
        return ErrorKind.TIMEOUT, None
    if isinstance(error, ValidationError):
        return ErrorKind.VALIDATION, None
    if isinstance(error, TokenRefreshError) and error.status_code is not None:
        return kind_for_status(error.status_code), error.status_code
    if isinstance(error, ConfigurationError):
        return ErrorKind.UNKNOWN, None
    return _kind_from_message(str(error) or type(error).__name__)


def classify_exception(error: BaseException, response_time: int | None = None) -> TestOutcome:
    """将捕获的异常转换为失败的 TestOutcome。"""
    detail = str(error) or type(error).__name__
    kind, status_code = classify_error(error)

    if kind in (ErrorKind.VALIDATION, ErrorKind.UNKNOWN):
        message = detail
    else:
        message = message_for(kind, status_code)
        if isinstance(error, TokenRefreshError):
            message = REFRESH_PREFIX + message

    return TestOutcome(
        success=False,
        status_code=status_code,
        response_time=response_time,
        message=message,
        error=ClassifiedError(type=kind, details=detail),
    )


def classify_http_status(status_code: int, body: str | None = None, response_time: int | None = None) -> TestOutcome:
    """将非预期的 HTTP 状态码转换为失败的 TestOutcome。"""
    kind = kind_for_status(status_code)
    return TestOutcome(
        success=False,
        status_code=status_code,
        response_time=response_time,
        message=message_for(kind, status_code),
        error=ClassifiedError(
            type=kind,
            details=f"Unexpected status code {status_code}",
            response_body=body[:500] if body else None,
        ),
    )
