"""
Integration Connect 主入口：启动 FastAPI 后端服务。
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from connectivity import api
from connectivity.auth.registry import StrategyRegistry
from connectivity.config_loader import AuthTypeCatalog
from connectivity.connection_store import ConnectionStore
from connectivity.connection_tester import ConnectionTester
from connectivity.encryption import CredentialCipher
from connectivity.http_client import HttpClient
from connectivity.integration_manager import IntegrationSchemaStore

# 日志配置
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan 事件处理：关闭时释放数据库。"""
    logger.info(f"已注册 {len(app.state.strategies.keys())} 个鉴权策略")

    yield  # 应用运行中

    logger.info("正在关闭...")
    app.state.store.close()


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用。"""
    app = FastAPI(
        title="Integration Connect API",
        description="API for integration authentication and connectivity testing",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── 初始化核心组件 ────────────────────────────────────────
    logger.info("正在加载鉴权类型目录...")
    catalog = AuthTypeCatalog.load()

    # 集成 auth schema (YAML 文件管理)
    schemas = IntegrationSchemaStore()

    # 连接持久化
    store = ConnectionStore()

    # 鉴权策略，共享一个 HTTP 客户端和凭证加密器
    strategies = StrategyRegistry(HttpClient(), CredentialCipher())

    tester = ConnectionTester(catalog, schemas, store, strategies)

    # 注入依赖到 API 模块
    api.init_api(
        catalog=catalog,
        schemas=schemas,
        store=store,
        strategies=strategies,
        tester=tester,
    )

    # 注册 API 路由
    app.include_router(api.router)

    # 将组件存到 app.state，供 lifespan 访问
    app.state.store = store
    app.state.strategies = strategies

    return app


def main():
    """主入口。"""
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 8400

    logger.info(f"🚀 启动 Integration Connect 后端 (port={port})...")

    app = create_app()

    uvicorn.run(
        app,
        host="127.0.0.1",
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
