"""
API Key 鉴权策略：将 API Key 注入到请求 Header，或作为 URL 查询参数。
"""

from typing import Any
from urllib.parse import quote

from connectivity.auth.base import AuthStrategy
from connectivity.models import StoredTokenRecord, TestOutcome

DEFAULT_KEY_TEMPLATE = "{{api_key}}"

# 查询参数方式：先暂存在 headers 中，由 test_connection 转为 URL 参数
PARAM_NAME_MARKER = "_api_key_param_name"
PARAM_VALUE_MARKER = "_api_key_value"


def append_query_param(url: str, name: str, value: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{quote(name, safe='')}={quote(value, safe='')}"


class ApiKeyAuth(AuthStrategy):
    """Header 方式（header_name）或查询参数方式（param_name）。"""

    async def build_headers(
        self,
        credentials: dict[str, Any],
        config: dict[str, Any],
        variables: dict[str, Any],
        stored_tokens: StoredTokenRecord | None = None,
    ) -> dict[str, str]:
        headers: dict[str, str] = {}
        key_template = config.get("api_key_value") or DEFAULT_KEY_TEMPLATE

        if config.get("header_name"):
            header_name = self.parse_template_value(config["header_name"], credentials, variables)
            prefix = self.parse_template_value(config.get("prefix") or "", credentials, variables)
            api_key = self.parse_template_value(key_template, credentials, variables)
            headers[header_name] = prefix + api_key

        if config.get("param_name"):
            headers[PARAM_NAME_MARKER] = self.parse_template_value(config["param_name"], credentials, variables)
            headers[PARAM_VALUE_MARKER] = self.parse_template_value(key_template, credentials, variables)

        headers.update(self.build_additional_headers(config.get("additional_fields", []), credentials, variables))
        return headers

    async def test_connection(self, test_url: str, headers: dict[str, str], test_config: dict[str, Any]) -> TestOutcome:
        headers = dict(headers)
        param_name = headers.pop(PARAM_NAME_MARKER, None)
        api_key = headers.pop(PARAM_VALUE_MARKER, None)
        if param_name:
            test_url = append_query_param(test_url, param_name, api_key or "")
        return await super().test_connection(test_url, headers, test_config)
