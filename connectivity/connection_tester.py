"""
连接测试器：对已保存的连接，或向导中尚未保存的凭证，执行一次实时鉴权验证。

流程：加载 Connection / AuthType / AuthMethod → 合并测试配置 → 替换测试 URL 中的变量
→ AuthManager 执行测试 →（已保存的连接）回写测试结果。
"""

import logging
import time
from typing import Any, Optional

from connectivity.auth.base import redact_url
from connectivity.auth.manager import AuthManager
from connectivity.auth.registry import StrategyRegistry
from connectivity.config_loader import AuthTypeCatalog
from connectivity.config_merger import merge_test_config
from connectivity.connection_store import ConnectionStore
from connectivity.encryption import CredentialCipher
from connectivity.errors import ConfigurationError, ValidationError, classify_exception
from connectivity.integration_manager import IntegrationSchemaStore
from connectivity.models import (
    AuthMethodConfig,
    AuthTypeDefinition,
    Connection,
    IntegrationAuthSchema,
    TestOutcome,
    utc_now_iso,
)
from connectivity.templating import extract_variables, substitute

logger = logging.getLogger(__name__)


def normalize_credentials(raw: Any, cipher: CredentialCipher) -> dict[str, Any]:
    """
    凭证可能以 {"encrypted": "...", "decrypted": {...}} 的形式存储；
    统一返回解密后的扁平字典。
    """
    if not isinstance(raw, dict):
        return {}
    decrypted = raw.get("decrypted")
    if isinstance(decrypted, dict):
        return decrypted
    encrypted = raw.get("encrypted")
    if isinstance(encrypted, str) and set(raw) <= {"encrypted", "decrypted"}:
        return cipher.decrypt_credentials(encrypted)
    return raw


def resolve_test_url(test_config: dict[str, Any], variables: dict[str, Any]) -> str:
    """取出测试 URL 并替换变量；缺少 URL 或仍有未解析的占位符时抛出 ValidationError。"""
    test_url = test_config.get("test_url")
    if not test_url:
        raise ValidationError("Test URL not configured for this integration")

    resolved = substitute(test_url, None, variables)
    unresolved = extract_variables(resolved)
    if unresolved:
        raise ValidationError(f"Missing values for dynamic variables: {', '.join(unresolved)}")
    return resolved


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ConnectionTester:
    """
    两个入口：
        - test_existing_connection: 测试已保存的连接，并回写 last_test_* 字段
        - test_connection_before_save: 测试向导中的临时凭证，不写入存储
    """

    def __init__(
        self,
        catalog: AuthTypeCatalog,
        schemas: IntegrationSchemaStore,
        store: Optional[ConnectionStore],
        strategies: StrategyRegistry,
    ):
        self.catalog = catalog
        self.schemas = schemas
        self.store = store
        self.strategies = strategies

    # ── 已保存的连接 ──────────────────────────────────

    async def test_existing_connection(self, connection_id: str) -> TestOutcome:
        start = time.monotonic()
        try:
            outcome = await self._test_existing(connection_id)
        except Exception as e:
            logger.error(f"[{connection_id}] 连接测试失败: {e}")
            outcome = classify_exception(e)

        outcome.response_time = _elapsed_ms(start)
        outcome.timestamp = utc_now_iso()
        self._record_result(connection_id, outcome)
        return outcome

    async def _test_existing(self, connection_id: str) -> TestOutcome:
        if self.store is None:
            raise ConfigurationError("Connection store not configured")
        connection = self.store.get_connection(connection_id)
        if connection is None:
            raise ConfigurationError(f"Connection not found: {connection_id}")

        schema = self.schemas.get_auth_schema(connection.integration_id)
        auth_type = connection.auth_type
        if not auth_type and schema is not None:
            method = schema.get_auth_method(connection.auth_method_id)
            auth_type = method.auth_type if method else None
        if not auth_type:
            raise ConfigurationError(f"Unable to determine auth type for connection: {connection_id}")

        definition = self._get_definition(auth_type)
        method = self._get_auth_method(schema, connection.integration_id, connection.auth_method_id)
        if method.auth_type != auth_type:
            raise ConfigurationError(
                f"Auth type mismatch: connection uses '{auth_type}' "
                f"but auth method '{method.id}' is configured as '{method.auth_type}'"
            )

        test_config = merge_test_config(definition.test_config, method.test_config)
        test_url = resolve_test_url(test_config, connection.configured_variables or {})

        connection = connection.model_copy(update={
            "auth_type": auth_type,
            "credentials": normalize_credentials(connection.credentials, self.strategies.cipher),
        })
        manager = AuthManager(connection, definition, method, self.strategies, store=self.store)

        logger.info(f"[{connection_id}] 测试连接: {auth_type} -> {redact_url(test_url)}")
        outcome = await manager.run_test(test_url, test_config)
        outcome.test_url = redact_url(test_url)
        return outcome

    def _record_result(self, connection_id: str, outcome: TestOutcome):
        """测试结束后回写一次结果。"""
        if self.store is None:
            return
        try:
            self.store.update_connection(connection_id, {
                "last_test_status": "success" if outcome.success else "failed",
                "last_test_message": outcome.message,
                "last_test_date": outcome.timestamp,
            })
        except Exception as e:
            logger.error(f"[{connection_id}] 保存测试结果失败: {e}")

    # ── 向导中的临时凭证 ──────────────────────────────

    async def test_connection_before_save(
        self,
        integration_id: str,
        auth_method_id: str,
        credentials: dict[str, Any],
        variables: Optional[dict[str, Any]] = None,
    ) -> TestOutcome:
        start = time.monotonic()
        try:
            outcome = await self._test_unsaved(integration_id, auth_method_id, credentials, variables or {})
        except Exception as e:
            logger.error(f"[{integration_id}] 保存前连接测试失败: {e}")
            outcome = classify_exception(e)

        outcome.response_time = _elapsed_ms(start)
        outcome.timestamp = utc_now_iso()
        return outcome

    async def _test_unsaved(
        self,
        integration_id: str,
        auth_method_id: str,
        credentials: dict[str, Any],
        variables: dict[str, Any],
    ) -> TestOutcome:
        schema = self.schemas.get_auth_schema(integration_id)
        method = self._get_auth_method(schema, integration_id, auth_method_id)
        definition = self._get_definition(method.auth_type)

        # 尚未保存：没有 Token，也不会触发刷新
        connection = Connection(
            integration_id=integration_id,
            auth_method_id=auth_method_id,
            auth_type=method.auth_type,
            credentials=normalize_credentials(credentials, self.strategies.cipher),
            configured_variables=variables,
        )

        test_config = merge_test_config(definition.test_config, method.test_config)
        test_url = resolve_test_url(test_config, variables)

        manager = AuthManager(connection, definition, method, self.strategies)
        logger.info(f"[{integration_id}] 保存前测试连接: {method.auth_type} -> {redact_url(test_url)}")
        outcome = await manager.run_test(test_url, test_config)
        outcome.test_url = redact_url(test_url)
        return outcome

    # ── 定义查找 ──────────────────────────────────────

    def _get_definition(self, auth_type: str) -> AuthTypeDefinition:
        definition = self.catalog.get(auth_type)
        if definition is None:
            raise ConfigurationError(f"Auth type definition not found: {auth_type}")
        return definition

    @staticmethod
    def _get_auth_method(
        schema: Optional[IntegrationAuthSchema],
        integration_id: str,
        auth_method_id: str,
    ) -> AuthMethodConfig:
        if schema is None:
            raise ConfigurationError(f"Auth schema not found for integration: {integration_id}")
        method = schema.get_auth_method(auth_method_id)
        if method is None:
            raise ConfigurationError(f"Auth method not found in schema: {auth_method_id}")
        return method
