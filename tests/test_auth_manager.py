import httpx
import pytest

from connectivity.auth.manager import AuthManager
from connectivity.config_merger import merge_test_config
from connectivity.errors import ValidationError
from connectivity.models import AuthMethodConfig, Connection, ErrorKind, StoredTokenRecord
from connectivity.token_validator import now_ms


def _manager(catalog, registry, auth_type, credentials, method_config=None, stored_tokens=None, store=None, **conn):
    method = AuthMethodConfig(id="m1", auth_type=auth_type, config=method_config or {})
    connection = Connection(
        integration_id="acme",
        auth_method_id="m1",
        auth_type=auth_type,
        credentials=credentials,
        stored_tokens=stored_tokens,
        **conn,
    )
    return AuthManager(connection, catalog.get(auth_type), method, registry, store=store)


def _oauth_test_config(catalog, **overrides):
    return merge_test_config(catalog.get("oauth2_client_credentials").test_config, overrides)


def test_all_missing_credentials_are_reported(catalog, registry):
    manager = _manager(catalog, registry, "basic_auth", {"username": ""})
    with pytest.raises(ValidationError) as exc_info:
        manager.validate_credentials()
    assert exc_info.value.missing_fields == ["username", "password"]
    assert str(exc_info.value) == "Missing required credentials: username, password"


def test_dynamic_credential_fields_are_not_required(catalog, registry):
    manager = _manager(catalog, registry, "custom_headers", {})
    manager.validate_credentials()


@pytest.mark.asyncio
async def test_effective_config_applies_catalog_defaults(catalog, registry):
    manager = _manager(catalog, registry, "api_key_header", {"api_key": "k"}, {"prefix": "Token "})
    assert manager.effective_config()["header_name"] == "X-API-Key"
    assert await manager.build_auth_headers() == {"X-API-Key": "Token k"}


@pytest.mark.asyncio
async def test_missing_credentials_fail_before_any_request(catalog, registry, recorder):
    manager = _manager(catalog, registry, "bearer_token", {})

    outcome = await manager.run_test("https://api.test/me", {})

    assert outcome.success is False
    assert outcome.error.type == ErrorKind.VALIDATION
    assert outcome.message == "Missing required credentials: token"
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_unknown_auth_type_becomes_failed_outcome(catalog, registry):
    method = AuthMethodConfig(id="m1", auth_type="kerberos")
    connection = Connection(integration_id="acme", auth_method_id="m1", auth_type="kerberos")
    manager = AuthManager(connection, catalog.get("bearer_token"), method, registry)

    outcome = await manager.run_test("https://api.test/me", {})

    assert outcome.success is False
    assert outcome.message == "Unsupported auth type: kerberos"


@pytest.mark.asyncio
async def test_expired_token_without_auto_refresh_makes_no_request(catalog, registry, recorder):
    manager = _manager(
        catalog, registry, "oauth2_client_credentials",
        {"client_id": "cid", "client_secret": "cs"},
        stored_tokens=StoredTokenRecord(access_token="old", refresh_token="R1", expires_at=now_ms() - 1000),
    )

    outcome = await manager.run_test("https://api.test/me", _oauth_test_config(catalog, auto_refresh_token=False))

    assert outcome.success is False
    assert outcome.message == "Access token expired"
    assert outcome.error.type == ErrorKind.AUTHENTICATION
    assert outcome.details["token_status"] == "expired"
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_persisted(catalog, make_recorder, make_registry, store):
    def handler(request):
        if request.url.path == "/token":
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})
        return httpx.Response(200, json={"id": 1})

    recorder = make_recorder(handler)
    saved = store.save_connection(Connection(
        integration_id="acme",
        auth_method_id="m1",
        auth_type="oauth2_client_credentials",
        credentials={"client_id": "cid", "client_secret": "cs"},
        stored_tokens=StoredTokenRecord(access_token="old", refresh_token="R1", expires_at=now_ms() - 1000),
    ))
    method = AuthMethodConfig(id="m1", auth_type="oauth2_client_credentials", config={"token_url": "https://auth.test/token"})
    manager = AuthManager(saved, catalog.get("oauth2_client_credentials"), method, make_registry(recorder), store=store)

    outcome = await manager.run_test("https://api.test/me", _oauth_test_config(catalog))

    assert outcome.success is True
    assert [r.url.path for r in recorder.requests] == ["/token", "/me"]
    assert recorder.last.headers["Authorization"] == "Bearer fresh"
    persisted = store.get_connection(saved.connection_id)
    assert persisted.stored_tokens.access_token == "fresh"
    assert persisted.stored_tokens.refresh_token == "R1"


@pytest.mark.asyncio
async def test_refresh_failure_is_prefixed(catalog, make_recorder, make_registry):
    recorder = make_recorder(lambda request: httpx.Response(401, json={"error": "invalid_client"}))
    manager = _manager(
        catalog, make_registry(recorder), "oauth2_client_credentials",
        {"client_id": "cid", "client_secret": "cs"},
        method_config={"token_url": "https://auth.test/token"},
        stored_tokens=StoredTokenRecord(access_token="old", refresh_token="R1", expires_at=now_ms() - 1000),
    )

    outcome = await manager.run_test("https://api.test/me", _oauth_test_config(catalog))

    assert outcome.success is False
    assert outcome.message == "Token refresh failed: Authentication failed - Invalid credentials"
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_refresh_with_fractional_expires_in_succeeds(catalog, make_recorder, make_registry):
    def handler(request):
        if request.url.path == "/token":
            return httpx.Response(200, json={"access_token": "n", "expires_in": 3599.5})
        return httpx.Response(200, json={"id": 1})

    recorder = make_recorder(handler)
    manager = _manager(
        catalog, make_registry(recorder), "oauth2_client_credentials",
        {"client_id": "cid", "client_secret": "cs"},
        method_config={"token_url": "https://auth.test/token"},
        stored_tokens=StoredTokenRecord(access_token="old", refresh_token="R1", expires_at=now_ms() - 1000),
    )

    outcome = await manager.run_test("https://api.test/me", _oauth_test_config(catalog))

    assert outcome.success is True
    assert manager.connection.stored_tokens.expires_in == 3599
    assert recorder.last.headers["Authorization"] == "Bearer n"


def test_token_expiry_not_applicable_for_static_credentials(catalog, registry):
    status = _manager(catalog, registry, "bearer_token", {"token": "abc"}).check_token_expiry()
    assert status.expired is False
    assert status.message == "Token refresh not applicable"


@pytest.mark.asyncio
async def test_execute_api_request(catalog, registry, recorder):
    manager = _manager(catalog, registry, "api_key_query", {"api_key": "abcdefghijklmnop"}, {"param_name": "key"})

    result = await manager.execute_api_request(
        {
            "method": "post",
            "url": "{{host}}/v1/items",
            "headers": [{"key": "X-Request-Id", "value": "{{request_id}}"}],
            "body": {"json": {"name": "{{name}}"}},
            "params": {"page": "2"},
        },
        {"host": "api.test", "request_id": "r-1", "name": "widget"},
    )

    assert result.success is True
    assert result.status == 200
    assert result.data == {"ok": True}
    sent = recorder.last
    assert sent.method == "POST"
    assert str(sent.url) == "https://api.test/v1/items?key=abcdefghijklmnop&page=2"
    assert sent.headers["X-Request-Id"] == "r-1"
    assert recorder.json() == {"name": "widget"}
    assert result.request["url"] == "https://api.test/v1/items?key=abcdef***&page=2"


@pytest.mark.asyncio
async def test_execute_api_request_reports_classified_errors(catalog, make_recorder, make_registry):
    def refuse(request):
        raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

    manager = _manager(catalog, make_registry(make_recorder(refuse)), "bearer_token", {"token": "abc"})
    result = await manager.execute_api_request({"url": "https://api.test/x"})

    assert result.success is False
    assert result.error == "Connection refused - Provider API is not reachable"
