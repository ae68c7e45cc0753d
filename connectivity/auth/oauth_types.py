"""
OAuth 2.0 标准参数与常量定义。
"""

from enum import Enum


class GrantType(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


class TokenRequestType(str, Enum):
    FORM = "form"
    JSON = "json"


# 标准 OAuth 参数名常量
class OAuthParams:
    CLIENT_ID = "client_id"
    CLIENT_SECRET = "client_secret"
    GRANT_TYPE = "grant_type"
    REFRESH_TOKEN = "refresh_token"
    ACCESS_TOKEN = "access_token"
    TOKEN_TYPE = "token_type"
    EXPIRES_IN = "expires_in"
    SCOPE = "scope"


# Token 刷新请求超时
REFRESH_TIMEOUT_MS = 15_000
