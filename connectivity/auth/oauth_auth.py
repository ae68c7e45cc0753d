"""
OAuth 2.0 鉴权策略（authorization code / client credentials / service account）。

三种授权方式只在最初获取 Token 的方式上不同，这里只负责：
    - 用已保存的 Token 构建 Authorization 请求头
    - 使用 refresh_token 刷新 Token
"""

import logging
from typing import Any
from urllib.parse import urlencode

from connectivity.auth.base import AuthStrategy
from connectivity.auth.oauth_types import REFRESH_TIMEOUT_MS, GrantType, OAuthParams, TokenRequestType
from connectivity.errors import TokenRefreshError, TransportError
from connectivity.models import StoredTokenRecord
from connectivity.token_validator import calculate_expiry_timestamp

logger = logging.getLogger(__name__)


def _as_seconds(value: Any) -> int | None:
    """expires_in 可能是小数或字符串；无法解析时视为未知。"""
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


class OAuth2Auth(AuthStrategy):
    """
    OAuth 2.0 Token 管理。
    """

    supports_token_refresh = True

    async def build_headers(
        self,
        credentials: dict[str, Any],
        config: dict[str, Any],
        variables: dict[str, Any],
        stored_tokens: StoredTokenRecord | None = None,
    ) -> dict[str, str]:
        headers: dict[str, str] = {}
        if stored_tokens and stored_tokens.access_token:
            token_type = stored_tokens.token_type or "Bearer"
            headers["Authorization"] = f"{token_type} {stored_tokens.access_token}"
        return headers

    # ── Token 刷新 ────────────────────────────────────

    async def refresh_token(
        self,
        credentials: dict[str, Any],
        stored_tokens: StoredTokenRecord | None,
        config: dict[str, Any],
        variables: dict[str, Any] | None = None,
    ) -> StoredTokenRecord:
        """使用 refresh_token 换取新的 access_token，返回完整替换的 Token 记录。"""
        if not stored_tokens or not stored_tokens.refresh_token:
            raise TokenRefreshError("Token refresh failed: No refresh token available")

        token_url = config.get("refresh_token_url") or config.get("token_url")
        if not token_url:
            raise TokenRefreshError("Token refresh failed: Token URL not configured")
        token_url = self.parse_template_value(token_url, {}, variables or {})

        data = {
            OAuthParams.GRANT_TYPE: GrantType.REFRESH_TOKEN.value,
            OAuthParams.REFRESH_TOKEN: stored_tokens.refresh_token,
        }
        client_id = credentials.get(OAuthParams.CLIENT_ID)
        client_secret = self.decrypt_credential(credentials.get(OAuthParams.CLIENT_SECRET))
        if client_id:
            data[OAuthParams.CLIENT_ID] = client_id
        if client_secret:
            data[OAuthParams.CLIENT_SECRET] = client_secret

        headers = {"Accept": "application/json"}
        if config.get("token_request_type") == TokenRequestType.JSON.value:
            body: Any = data
        else:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
            body = urlencode(data)

        try:
            resp = await self.http.post(token_url, body, headers=headers, timeout_ms=REFRESH_TIMEOUT_MS)
        except TransportError as e:
            logger.error(f"刷新 token 失败: {e}")
            raise TokenRefreshError(f"Token refresh failed: {e}") from e

        if resp.status_code != 200:
            logger.error(f"刷新 token 失败，状态码 {resp.status_code}")
            raise TokenRefreshError(
                f"Token refresh failed with status {resp.status_code}: {resp.body[:200]}",
                status_code=resp.status_code,
            )

        try:
            new_tokens = self._parse_token_response(resp.data, stored_tokens)
        except TokenRefreshError:
            raise
        except Exception as e:
            logger.error(f"解析 token 响应失败: {e}")
            raise TokenRefreshError(f"Token refresh failed: {e}") from e

        logger.info("OAuth Token 已刷新")
        return new_tokens

    @staticmethod
    def _parse_token_response(data: Any, stored_tokens: StoredTokenRecord) -> StoredTokenRecord:
        tokens = data if isinstance(data, dict) else {}
        if not tokens.get(OAuthParams.ACCESS_TOKEN):
            raise TokenRefreshError("Token refresh failed: Invalid token response - missing access_token")

        expires_in = _as_seconds(tokens.get(OAuthParams.EXPIRES_IN))
        return StoredTokenRecord(
            access_token=tokens[OAuthParams.ACCESS_TOKEN],
            # 未返回新的 refresh_token 时沿用旧的
            refresh_token=tokens.get(OAuthParams.REFRESH_TOKEN) or stored_tokens.refresh_token,
            token_type=tokens.get(OAuthParams.TOKEN_TYPE) or "Bearer",
            expires_in=expires_in,
            expires_at=calculate_expiry_timestamp(expires_in),
            scope=tokens.get(OAuthParams.SCOPE) or stored_tokens.scope,
        )
