"""
自定义 Header 鉴权策略：按配置生成多个鉴权请求头。

每一项支持两种写法：
    - value: 模板值，如 "{{key1}}-{{key2}}"
    - credential_key: 指向某个凭证字段（旧写法）
"""

import logging
from typing import Any

from connectivity.auth.base import AuthStrategy
from connectivity.errors import ConfigurationError
from connectivity.models import StoredTokenRecord

logger = logging.getLogger(__name__)


class CustomHeadersAuth(AuthStrategy):

    async def build_headers(
        self,
        credentials: dict[str, Any],
        config: dict[str, Any],
        variables: dict[str, Any],
        stored_tokens: StoredTokenRecord | None = None,
    ) -> dict[str, str]:
        header_configs = config.get("headers")
        if not isinstance(header_configs, list):
            raise ConfigurationError("Custom headers config must include a headers list")

        headers: dict[str, str] = {}
        for item in header_configs:
            if not item.get("header_name"):
                logger.warning("自定义请求头缺少 header_name，已跳过")
                continue
            header_name = self.parse_template_value(item["header_name"], credentials, variables)
            prefix = self.parse_template_value(item.get("prefix") or "", credentials, variables)

            if item.get("value"):
                value = self.parse_template_value(item["value"], credentials, variables)
            elif item.get("credential_key"):
                credential_key = item["credential_key"]
                if not credentials.get(credential_key):
                    logger.warning(f"自定义请求头 {header_name} 缺少凭证: {credential_key}")
                    continue
                value = str(self.decrypt_credential(credentials[credential_key]))
            else:
                logger.warning(f"自定义请求头 {header_name} 既没有 value 也没有 credential_key，已跳过")
                continue

            headers[header_name] = prefix + value

        headers.update(self.build_additional_headers(config.get("additional_fields", []), credentials, variables))
        return headers
