"""
Basic Auth 鉴权策略。

username / password 可以是字面量、单个占位符，或组合模板（如 {{email}}/token）。
"""

import base64
from typing import Any

from connectivity.auth.base import AuthStrategy
from connectivity.models import StoredTokenRecord


class BasicAuth(AuthStrategy):

    async def build_headers(
        self,
        credentials: dict[str, Any],
        config: dict[str, Any],
        variables: dict[str, Any],
        stored_tokens: StoredTokenRecord | None = None,
    ) -> dict[str, str]:
        username = self.parse_template_value(config.get("username") or "{{username}}", credentials, variables)
        password = self.parse_template_value(config.get("password") or "{{password}}", credentials, variables)
        encoded = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")

        headers = {"Authorization": f"Basic {encoded}"}
        headers.update(self.build_additional_headers(config.get("additional_fields", []), credentials, variables))
        return headers
