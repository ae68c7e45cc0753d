"""
Bearer Token 鉴权策略。
"""

from typing import Any

from connectivity.auth.base import AuthStrategy
from connectivity.models import StoredTokenRecord


class BearerTokenAuth(AuthStrategy):
    """header_name 默认 Authorization，prefix 默认 "Bearer "，均可覆盖。"""

    async def build_headers(
        self,
        credentials: dict[str, Any],
        config: dict[str, Any],
        variables: dict[str, Any],
        stored_tokens: StoredTokenRecord | None = None,
    ) -> dict[str, str]:
        header_name = self.parse_template_value(config.get("header_name") or "Authorization", credentials, variables)
        # prefix 允许显式设为空字符串
        prefix_template = config["prefix"] if config.get("prefix") is not None else "Bearer "
        prefix = self.parse_template_value(prefix_template, credentials, variables)
        token = self.parse_template_value(config.get("token_value") or "{{token}}", credentials, variables)

        headers = {header_name: prefix + token}
        headers.update(self.build_additional_headers(config.get("additional_fields", []), credentials, variables))
        return headers
