"""
鉴权管理器：将 Connection + AuthTypeDefinition + AuthMethodConfig 绑定到对应的鉴权策略。

无论哪种鉴权方式，都通过统一的接口构建请求头、测试连接。
"""

import json
import logging
import time
from typing import Any, Optional
from urllib.parse import urlencode

from connectivity.auth.apikey_auth import PARAM_NAME_MARKER, PARAM_VALUE_MARKER, append_query_param
from connectivity.auth.base import AuthStrategy, redact_headers, redact_url
from connectivity.auth.registry import StrategyRegistry
from connectivity.config_merger import merge_auth_config
from connectivity.connection_store import ConnectionStore
from connectivity.errors import UnsupportedOperationError, ValidationError, classify_exception
from connectivity.models import (
    ApiCallResult,
    AuthMethodConfig,
    AuthTypeDefinition,
    ClassifiedError,
    Connection,
    ErrorKind,
    StoredTokenRecord,
    TestOutcome,
    TokenStatus,
)
from connectivity.templating import substitute
from connectivity.token_validator import check_expiry

logger = logging.getLogger(__name__)

# custom_headers 的凭证字段是动态的，不参与必填校验
DYNAMIC_FIELDS_MARKER = "_dynamic"

TOKEN_EXPIRED_MESSAGE = "Access token expired"


class AuthManager:
    """
    一次连接测试 / API 调用的鉴权上下文。
    """

    def __init__(
        self,
        connection: Connection,
        auth_type_definition: AuthTypeDefinition,
        auth_method: AuthMethodConfig,
        strategies: StrategyRegistry,
        store: Optional[ConnectionStore] = None,
    ):
        self.connection = connection
        self.auth_type_definition = auth_type_definition
        self.auth_method = auth_method
        self.auth_type = connection.auth_type or auth_method.auth_type
        self._strategies = strategies
        self._store = store
        self._strategy: AuthStrategy | None = None

    @property
    def log_prefix(self) -> str:
        return f"[{self.connection.connection_id or self.connection.integration_id}]"

    @property
    def strategy(self) -> AuthStrategy:
        """按 scheme key 选择策略；未知的 scheme key 抛出 ConfigurationError。"""
        if self._strategy is None:
            self._strategy = self._strategies.get(self.auth_type)
        return self._strategy

    # ── 凭证校验 ──────────────────────────────────────

    def validate_credentials(self) -> None:
        """检查所有必填凭证字段；一次性报告全部缺失字段。"""
        provided = self.connection.credentials or {}
        missing = []
        for name, field in self.auth_type_definition.credential_fields.items():
            if name == DYNAMIC_FIELDS_MARKER:
                continue
            if field.required and provided.get(name) in (None, ""):
                missing.append(name)

        if missing:
            raise ValidationError(f"Missing required credentials: {', '.join(missing)}", missing_fields=missing)

    # ── 请求头 ────────────────────────────────────────

    def effective_config(self) -> dict[str, Any]:
        """config_options 默认值 + auth method config，并附带 additional_fields。"""
        config = merge_auth_config(self.auth_type_definition.config_options, self.auth_method.config)
        config["additional_fields"] = list(self.auth_method.additional_fields)
        return config

    async def build_auth_headers(self) -> dict[str, str]:
        return await self.strategy.build_headers(
            self.connection.credentials or {},
            self.effective_config(),
            self.connection.configured_variables or {},
            self.connection.stored_tokens,
        )

    # ── Token 生命周期 ─────────────────────────────────

    def check_token_expiry(self) -> TokenStatus:
        if not self.strategy.supports_token_refresh:
            return TokenStatus(expired=False, message="Token refresh not applicable")
        return check_expiry(self.connection.stored_tokens)

    async def refresh_token(self) -> StoredTokenRecord:
        """刷新 Token，持久化到存储（仅已保存的连接）并更新内存中的连接。"""
        if not self.strategy.supports_token_refresh:
            raise UnsupportedOperationError("Token refresh not supported for this auth type")

        new_tokens = await self.strategy.refresh_token(
            self.connection.credentials or {},
            self.connection.stored_tokens,
            self.effective_config(),
            self.connection.configured_variables or {},
        )

        if self.connection.connection_id and self._store is not None:
            self._store.update_connection(
                self.connection.connection_id,
                {"stored_tokens": new_tokens.model_dump(mode="json")},
            )
        self.connection = self.connection.model_copy(update={"stored_tokens": new_tokens})
        logger.info(f"{self.log_prefix} Token 已刷新并保存")
        return new_tokens

    # ── 连接测试 ──────────────────────────────────────

    async def run_test(self, test_url: str, test_config: dict[str, Any]) -> TestOutcome:
        """
        完整的测试流程：选择策略 → 校验凭证 → Token 过期检查 → 构建请求头 → 发送测试请求。
        任何异常都经过错误分类器，调用方不会看到原始异常。
        """
        try:
            strategy = self.strategy
            self.validate_credentials()

            if strategy.supports_token_refresh and test_config.get("check_token_expiry"):
                token_status = self.check_token_expiry()
                if token_status.expired:
                    if test_config.get("auto_refresh_token"):
                        logger.info(f"{self.log_prefix} Token 已过期，正在刷新...")
                        await self.refresh_token()
                    else:
                        logger.info(f"{self.log_prefix} Token 已过期，且未开启自动刷新")
                        return TestOutcome(
                            success=False,
                            message=TOKEN_EXPIRED_MESSAGE,
                            error=ClassifiedError(type=ErrorKind.AUTHENTICATION, details=token_status.message),
                            details={"token_status": "expired", "expires_at": token_status.expires_at},
                        )

            headers = await self.build_auth_headers()
            return await strategy.test_connection(test_url, headers, test_config)

        except Exception as e:
            logger.warning(f"{self.log_prefix} 连接测试失败: {e}")
            return classify_exception(e)

    # ── 带鉴权的 API 调用 ──────────────────────────────

    async def execute_api_request(
        self,
        api_config: dict[str, Any],
        variable_values: Optional[dict[str, Any]] = None,
        timeout_ms: int = 30_000,
    ) -> ApiCallResult:
        """
        使用当前连接的鉴权信息执行一次 API 请求。

        api_config 中的 url / headers / body / params 均支持 {{var}} 替换；
        headers 可以是 dict，也可以是 [{"key": ..., "value": ...}] 列表；
        body 可以是字符串、对象，或 {"json": ...} 包装。
        """
        values = variable_values or {}
        method = (api_config.get("method") or "GET").upper()
        url = substitute(api_config.get("url"), None, values)
        request_echo: dict[str, Any] = {"url": url, "method": method}

        try:
            auth_headers = await self.build_auth_headers()

            if not url.startswith(("http://", "https://")):
                url = "https://" + url

            headers = dict(auth_headers)
            param_name = headers.pop(PARAM_NAME_MARKER, None)
            param_value = headers.pop(PARAM_VALUE_MARKER, None)
            if param_name:
                url = append_query_param(url, param_name, param_value or "")
            raw_headers = api_config.get("headers") or {}
            if isinstance(raw_headers, list):
                for item in raw_headers:
                    if item.get("key") and item.get("value"):
                        headers[item["key"]] = substitute(item["value"], None, values)
            else:
                for key, value in raw_headers.items():
                    headers[key] = substitute(value, None, values)

            body = self._resolve_body(api_config.get("body"), values)

            params = {
                key: substitute(value, None, values) if isinstance(value, str) else value
                for key, value in (api_config.get("params") or {}).items()
            }
            if params:
                url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"

            request_echo = {
                "url": redact_url(url),
                "method": method,
                "headers": redact_headers(headers),
                "params": params,
                "body": body,
            }

            start = time.monotonic()
            response = await self.strategy.http.request(url, method, headers=headers, body=body, timeout_ms=timeout_ms)
            elapsed = int((time.monotonic() - start) * 1000)

            return ApiCallResult(
                success=200 <= response.status_code < 300,
                status=response.status_code,
                status_text=response.reason,
                headers=response.headers,
                data=response.data if response.data is not None else response.body,
                response_time=elapsed,
                request=request_echo,
            )

        except Exception as e:
            logger.warning(f"{self.log_prefix} API 请求失败: {e}")
            return ApiCallResult(
                success=False,
                error=classify_exception(e).message,
                request=request_echo,
            )

    @staticmethod
    def _resolve_body(raw: Any, values: dict[str, Any]) -> Any:
        if not raw:
            return None
        if isinstance(raw, dict) and "json" in raw:
            raw = raw["json"]

        if isinstance(raw, str):
            resolved = substitute(raw, None, values)
            stripped = resolved.strip()
            if stripped.startswith(("{", "[")):
                try:
                    return json.loads(stripped)
                except ValueError:
                    return resolved
            return resolved

        if isinstance(raw, (dict, list)):
            return _substitute_nested(raw, values)
        return raw


def _substitute_nested(obj: Any, values: dict[str, Any]) -> Any:
    """递归替换对象中的字符串。"""
    if isinstance(obj, str):
        return substitute(obj, None, values)
    if isinstance(obj, dict):
        return {k: _substitute_nested(v, values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_nested(v, values) for v in obj]
    return obj
