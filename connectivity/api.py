"""
FastAPI 路由：鉴权类型目录、集成 auth schema 校验，以及连接测试。
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from connectivity.auth.manager import AuthManager
from connectivity.dynamic_variables import validate_auth_schema
from connectivity.errors import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# 这些全局引用会在 main.py 中注入
_catalog = None
_schemas = None
_store = None
_strategies = None
_tester = None


def init_api(catalog, schemas, store, strategies, tester):
    """注入全局依赖（由 main.py 调用）。"""
    global _catalog, _schemas, _store, _strategies, _tester
    _catalog = catalog
    _schemas = schemas
    _store = store
    _strategies = strategies
    _tester = tester


class TestConnectionRequest(BaseModel):
    integration_id: str
    auth_method_id: str
    credentials: dict[str, Any] = Field(default_factory=dict)
    configured_variables: Optional[dict[str, Any]] = None


def _outcome_response(outcome) -> JSONResponse:
    return JSONResponse(
        status_code=200 if outcome.success else 400,
        content=outcome.model_dump(mode="json"),
    )


# ── 鉴权类型目录 ──────────────────────────────────────

@router.get("/auth-types")
async def list_auth_types() -> list[dict]:
    return [definition.model_dump(mode="json") for definition in _catalog.all()]


@router.get("/auth-types/{auth_type}")
async def get_auth_type(auth_type: str) -> dict:
    definition = _catalog.get(auth_type)
    if definition is None:
        raise HTTPException(404, f"Auth type '{auth_type}' not found")
    return definition.model_dump(mode="json")


# ── 集成 auth schema ──────────────────────────────────

@router.post("/integrations/validate-auth-schema")
async def validate_schema(schema: dict[str, Any]) -> dict:
    """只校验动态变量，不保存。"""
    return validate_auth_schema(schema)


@router.put("/integrations/{integration_id}/auth-schema")
async def save_auth_schema(integration_id: str, schema: dict[str, Any]) -> dict:
    validation = validate_auth_schema(schema)
    if not validation["valid"]:
        raise HTTPException(400, {
            "message": "Invalid dynamic variables in authentication configuration",
            "errors": validation["errors"],
        })
    try:
        saved = _schemas.save_auth_schema(integration_id, schema)
    except ValidationError as e:
        raise HTTPException(400, str(e))
    return saved.model_dump(mode="json")


# ── 连接测试 ──────────────────────────────────────────

@router.post("/user-integrations/test-connection")
async def test_connection_before_save(request: TestConnectionRequest) -> JSONResponse:
    """在保存连接之前测试凭证。"""
    outcome = await _tester.test_connection_before_save(
        request.integration_id,
        request.auth_method_id,
        request.credentials,
        request.configured_variables,
    )
    return _outcome_response(outcome)


@router.post("/user-integrations/{connection_id}/test")
async def test_existing_connection(connection_id: str) -> JSONResponse:
    outcome = await _tester.test_existing_connection(connection_id)
    return _outcome_response(outcome)


@router.get("/user-integrations/{connection_id}/token-status")
async def get_token_status(connection_id: str) -> dict:
    """查看已保存连接的 OAuth Token 是否过期（不触发刷新）。"""
    connection = _store.get_connection(connection_id)
    if connection is None:
        raise HTTPException(404, f"Connection '{connection_id}' not found")

    schema = _schemas.get_auth_schema(connection.integration_id)
    method = schema.get_auth_method(connection.auth_method_id) if schema else None
    if method is None:
        raise HTTPException(404, f"Auth method '{connection.auth_method_id}' not found")
    definition = _catalog.get(connection.auth_type or method.auth_type)
    if definition is None:
        raise HTTPException(404, f"Auth type '{connection.auth_type or method.auth_type}' not found")

    manager = AuthManager(connection, definition, method, _strategies, store=_store)
    try:
        status = manager.check_token_expiry()
    except Exception as e:
        raise HTTPException(400, str(e))
    return {"connection_id": connection_id, "auth_type": manager.auth_type, **status.model_dump(mode="json")}
