"""
鉴权方式枚举与策略注册表。

注册表在启动时构建一次：scheme key → 策略实例。策略本身无状态，可被并发调用共享。
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from connectivity.auth.apikey_auth import ApiKeyAuth
from connectivity.auth.base import AuthStrategy
from connectivity.auth.basic_auth import BasicAuth
from connectivity.auth.bearer_auth import BearerTokenAuth
from connectivity.auth.custom_headers_auth import CustomHeadersAuth
from connectivity.auth.oauth_auth import OAuth2Auth
from connectivity.encryption import CredentialCipher
from connectivity.errors import ConfigurationError
from connectivity.http_client import HttpClient


class AuthType(str, Enum):
    API_KEY_HEADER = "api_key_header"
    API_KEY_QUERY = "api_key_query"
    BEARER_TOKEN = "bearer_token"
    BASIC_AUTH = "basic_auth"
    BASIC_AUTH_API_KEY = "basic_auth_api_key"
    CUSTOM_HEADERS = "custom_headers"
    OAUTH2_AUTHORIZATION_CODE = "oauth2_authorization_code"
    OAUTH2_CLIENT_CREDENTIALS = "oauth2_client_credentials"
    OAUTH2_SERVICE_ACCOUNT = "oauth2_service_account"


_STRATEGY_CLASSES: dict[AuthType, type[AuthStrategy]] = {
    AuthType.API_KEY_HEADER: ApiKeyAuth,
    AuthType.API_KEY_QUERY: ApiKeyAuth,
    AuthType.BEARER_TOKEN: BearerTokenAuth,
    AuthType.BASIC_AUTH: BasicAuth,
    AuthType.BASIC_AUTH_API_KEY: BasicAuth,
    AuthType.CUSTOM_HEADERS: CustomHeadersAuth,
    AuthType.OAUTH2_AUTHORIZATION_CODE: OAuth2Auth,
    AuthType.OAUTH2_CLIENT_CREDENTIALS: OAuth2Auth,
    AuthType.OAUTH2_SERVICE_ACCOUNT: OAuth2Auth,
}


class StrategyRegistry:
    """scheme key → 策略实例（只读）。"""

    def __init__(self, http_client: HttpClient | None = None, cipher: CredentialCipher | None = None):
        self.http = http_client or HttpClient()
        self.cipher = cipher or CredentialCipher()
        instances: dict[type[AuthStrategy], AuthStrategy] = {}
        strategies: dict[str, AuthStrategy] = {}
        for auth_type, strategy_cls in _STRATEGY_CLASSES.items():
            if strategy_cls not in instances:
                instances[strategy_cls] = strategy_cls(self.http, self.cipher)
            strategies[auth_type.value] = instances[strategy_cls]
        self._strategies: Mapping[str, AuthStrategy] = MappingProxyType(strategies)

    def get(self, auth_type: str | None) -> AuthStrategy:
        strategy = self._strategies.get(auth_type or "")
        if strategy is None:
            raise ConfigurationError(f"Unsupported auth type: {auth_type}")
        return strategy

    def __contains__(self, auth_type: str) -> bool:
        return auth_type in self._strategies

    def keys(self) -> list[str]:
        return list(self._strategies)
