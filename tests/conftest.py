import json
from pathlib import Path

import httpx
import pytest
import yaml

from connectivity.auth.registry import StrategyRegistry
from connectivity.config_loader import AuthTypeCatalog
from connectivity.connection_store import ConnectionStore
from connectivity.encryption import CredentialCipher
from connectivity.http_client import HttpClient
from connectivity.integration_manager import IntegrationSchemaStore

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class RecordingTransport:
    """httpx.MockTransport wrapper that records every request it answers."""

    def __init__(self, handler=None):
        self.requests: list[httpx.Request] = []
        self._handler = handler or (lambda request: httpx.Response(200, json={"ok": True}))
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def form(self, index: int = -1) -> dict:
        return dict(httpx.QueryParams(self.requests[index].content.decode()))

    def json(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def cipher():
    return CredentialCipher("unit-test-passphrase")


@pytest.fixture
def catalog():
    return AuthTypeCatalog.load(PROJECT_ROOT / "config" / "auth_types.yaml")


@pytest.fixture
def make_recorder():
    return RecordingTransport


@pytest.fixture
def recorder():
    return RecordingTransport()


@pytest.fixture
def make_registry(cipher):
    def _make(transport: RecordingTransport) -> StrategyRegistry:
        return StrategyRegistry(HttpClient(transport.transport), cipher)
    return _make


@pytest.fixture
def registry(make_registry, recorder):
    return make_registry(recorder)


@pytest.fixture
def store(tmp_path):
    store = ConnectionStore(tmp_path / "connections.json")
    yield store
    store.close()


@pytest.fixture
def schemas(tmp_path):
    return IntegrationSchemaStore(config_root=tmp_path / "config")


@pytest.fixture
def add_schema(schemas):
    def _add(schema: dict) -> None:
        path = schemas.integrations_dir / f"{schema['integration_id']}.yaml"
        path.write_text(yaml.safe_dump(schema), encoding="utf-8")
    return _add
