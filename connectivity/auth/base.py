"""
鉴权策略基类：所有鉴权方式共享的能力。

子类实现 build_headers；test_connection 提供通用实现（发送请求、比对期望状态码、
脱敏回显请求、失败时交给错误分类器）。支持刷新的策略覆盖 refresh_token。
"""

import logging
import time
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from connectivity.encryption import CredentialCipher
from connectivity.errors import UnsupportedOperationError, classify_exception, classify_http_status
from connectivity.http_client import DEFAULT_TIMEOUT_MS, HttpClient
from connectivity.models import AdditionalField, FieldUsage, FillBy, RequestEcho, StoredTokenRecord, TestOutcome
from connectivity.templating import substitute

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED_STATUS_CODES = [200, 201]

_SENSITIVE_NAMES = ("authorization", "auth", "token", "key", "secret", "password", "cookie", "signature")
_REDACT_VISIBLE_CHARS = 6


def is_sensitive_name(name: str) -> bool:
    lowered = name.lower()
    return any(part in lowered for part in _SENSITIVE_NAMES)


def redact_value(value: str) -> str:
    """只保留很短的前缀，不可还原。"""
    if len(value) <= _REDACT_VISIBLE_CHARS * 2:
        return "***"
    return value[:_REDACT_VISIBLE_CHARS] + "***"


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    return {
        name: redact_value(str(value)) if is_sensitive_name(name) else str(value)
        for name, value in headers.items()
    }


def redact_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (name, redact_value(value) if is_sensitive_name(name) else value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


class AuthStrategy:
    """鉴权策略接口与通用实现。"""

    supports_token_refresh = False

    def __init__(self, http_client: HttpClient, cipher: CredentialCipher):
        self.http = http_client
        self.cipher = cipher

    # ── 子类实现 ──────────────────────────────────────

    async def build_headers(
        self,
        credentials: dict[str, Any],
        config: dict[str, Any],
        variables: dict[str, Any],
        stored_tokens: StoredTokenRecord | None = None,
    ) -> dict[str, str]:
        raise NotImplementedError("build_headers must be implemented by subclass")

    async def refresh_token(
        self,
        credentials: dict[str, Any],
        stored_tokens: StoredTokenRecord | None,
        config: dict[str, Any],
        variables: dict[str, Any] | None = None,
    ) -> StoredTokenRecord:
        raise UnsupportedOperationError("Token refresh not supported for this auth type")

    # ── 通用连接测试 ──────────────────────────────────

    async def test_connection(self, test_url: str, headers: dict[str, str], test_config: dict[str, Any]) -> TestOutcome:
        method = (test_config.get("method") or "GET").upper()
        timeout_ms = test_config.get("timeout") or DEFAULT_TIMEOUT_MS
        expected = test_config.get("expected_status_codes") or DEFAULT_EXPECTED_STATUS_CODES
        echo = RequestEcho(method=method, url=redact_url(test_url), headers=redact_headers(headers))

        start = time.monotonic()
        try:
            response = await self.http.request(test_url, method, headers=headers, timeout_ms=timeout_ms)
        except Exception as e:
            elapsed = int((time.monotonic() - start) * 1000)
            logger.info(f"连接测试失败: {method} {echo.url} -> {e}")
            outcome = classify_exception(e, response_time=elapsed)
            outcome.request = echo
            return outcome
        elapsed = int((time.monotonic() - start) * 1000)

        if response.status_code in expected:
            return TestOutcome(
                success=True,
                status_code=response.status_code,
                response_time=elapsed,
                message="Connection successful",
                request=echo,
                details={"test_url": echo.url, "method": method, "response_time": elapsed},
            )

        logger.info(f"连接测试返回非预期状态码 {response.status_code}: {method} {echo.url}")
        outcome = classify_http_status(response.status_code, response.body, response_time=elapsed)
        outcome.request = echo
        return outcome

    # ── 工具方法 ──────────────────────────────────────

    def parse_template_value(self, template: Any, credentials: dict[str, Any], variables: dict[str, Any]) -> str:
        """解析模板，并对看起来已加密的值尝试解密。"""
        return substitute(template, credentials, variables, cipher=self.cipher)

    def decrypt_credential(self, value: Any) -> Any:
        """解密单个凭证；明文原样返回。"""
        return self.cipher.decrypt(value)

    def build_additional_headers(
        self,
        additional_fields: list[AdditionalField | dict[str, Any]],
        credentials: dict[str, Any],
        variables: dict[str, Any],
    ) -> dict[str, str]:
        """
        将 use_as=header 的附加字段转为请求头。

        admin 填写：使用 default_value。
        user 填写：依次从 credentials、variables、default_value 取值，最终回退为空字符串。
        值为空的请求头不会发送。
        """
        headers: dict[str, str] = {}
        for raw in additional_fields or []:
            field = raw if isinstance(raw, AdditionalField) else AdditionalField.model_validate(raw)
            if field.use_as != FieldUsage.HEADER:
                continue

            if field.fill_by == FillBy.ADMIN:
                value = field.default_value or ""
            else:
                value = credentials.get(field.name) or variables.get(field.name) or field.default_value or ""

            value = self.parse_template_value(value, credentials, variables)
            if not value:
                logger.debug(f"附加请求头 {field.header_name or field.name} 无值，已跳过")
                continue
            headers[field.header_name or field.name] = value
        return headers
