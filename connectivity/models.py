"""
Data models for auth-type catalog entries, integration auth schemas and user connections.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Catalog ──────────────────────────────────────────

class FieldDescriptor(BaseModel):
    """Describes one credential / config / test-config field of an auth type."""
    type: str = "text"
    label: str = ""
    description: Optional[str] = None
    required: bool = False
    default: Any = None

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class AuthTypeDefinition(BaseModel):
    """Provider-agnostic description of one authentication scheme."""
    key: str
    label: str = ""
    category: str = ""
    credential_fields: Dict[str, FieldDescriptor] = Field(default_factory=dict)
    config_options: Dict[str, FieldDescriptor] = Field(default_factory=dict)
    test_config: Dict[str, FieldDescriptor] = Field(default_factory=dict)


# ── Integration auth schema ──────────────────────────

class FieldUsage(str, Enum):
    HEADER = "header"
    BODY = "body"
    QUERY = "query"


class FillBy(str, Enum):
    ADMIN = "admin"
    USER = "user"


class AdditionalField(BaseModel):
    """An extra value contributed to request construction (header / body / query)."""
    name: str
    label: str = ""
    use_as: FieldUsage = FieldUsage.HEADER
    fill_by: FillBy = FillBy.ADMIN
    header_name: Optional[str] = None
    default_value: Optional[str] = None
    required: bool = False


class AuthMethodConfig(BaseModel):
    """One integration's concrete configuration of an auth scheme."""
    id: str
    auth_type: str
    label: str = ""
    is_default: bool = False
    priority: int = 0
    config: Dict[str, Any] = Field(default_factory=dict)
    additional_fields: List[AdditionalField] = Field(default_factory=list)
    test_config: Dict[str, Any] = Field(default_factory=dict)


class IntegrationAuthSchema(BaseModel):
    """All auth methods an integration supports."""
    integration_id: str
    display_name: str = ""
    version: str = "1.0.0"
    auth_methods: List[AuthMethodConfig] = Field(default_factory=list)

    def get_auth_method(self, auth_method_id: str) -> Optional[AuthMethodConfig]:
        for method in self.auth_methods:
            if method.id == auth_method_id:
                return method
        return None


# ── Connections ──────────────────────────────────────

class StoredTokenRecord(BaseModel):
    """OAuth2 token bundle. expires_at is epoch milliseconds."""
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    scope: Optional[str] = None


class Connection(BaseModel):
    """A user's binding to one auth method of one integration."""
    connection_id: Optional[str] = None
    user_id: Optional[str] = None
    integration_id: str
    integration_name: Optional[str] = None
    connection_name: Optional[str] = None
    auth_method_id: str
    auth_type: Optional[str] = None
    # flat map, or {"encrypted": "...", "decrypted": {...}}
    credentials: Dict[str, Any] = Field(default_factory=dict)
    configured_variables: Dict[str, Any] = Field(default_factory=dict)
    stored_tokens: Optional[StoredTokenRecord] = None
    status: str = "active"
    is_active: bool = True
    last_test_status: Optional[str] = None
    last_test_message: Optional[str] = None
    last_test_date: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ── Results ──────────────────────────────────────────

class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    DNS_ERROR = "dns_error"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    VALIDATION = "validation"
    HTTP_ERROR = "http_error"
    UNKNOWN = "unknown"


class ClassifiedError(BaseModel):
    type: ErrorKind
    details: Optional[str] = None
    response_body: Optional[str] = None


class RequestEcho(BaseModel):
    """Sanitized description of the request that was sent."""
    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)


class TestOutcome(BaseModel):
    """Result of one connectivity test."""
    __test__ = False  # keep pytest from collecting this class

    success: bool
    status_code: Optional[int] = None
    response_time: Optional[int] = None
    message: str = ""
    request: Optional[RequestEcho] = None
    error: Optional[ClassifiedError] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    test_url: Optional[str] = None
    timestamp: str = Field(default_factory=utc_now_iso)


class TokenStatus(BaseModel):
    expired: bool
    expires_at: Optional[int] = None
    remaining_time: Optional[int] = None
    message: str = ""


class HttpResponse(BaseModel):
    """Raw transport response with best-effort decoded JSON in `data`."""
    status_code: int
    reason: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str = ""
    data: Any = None


class ApiCallResult(BaseModel):
    """Result of an authenticated API call executed on behalf of a connection."""
    success: bool
    status: Optional[int] = None
    status_text: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    data: Any = None
    response_time: Optional[int] = None
    request: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
