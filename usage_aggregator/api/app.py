"""
FastAPI 应用配置

配置 CORS、路由注册、健康检查。
"""

import logging
import time

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_config
from ..registry import PeerRegistry
from ..runtime import get_runtime
from .routers import alerts, peers, scan, statistics

logger = logging.getLogger(__name__)

_started_at = time.monotonic()


async def get_registry() -> PeerRegistry:
    return get_runtime().registry


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用实例

    配置：
    - CORS 中间件
    - API 路由
    - 健康检查
    """
    config = get_config()

    app = FastAPI(
        title="Usage Aggregator",
        description="局域网客户端发现与使用量聚合 API",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json"
    )

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册路由
    app.include_router(peers.router)
    app.include_router(statistics.router)
    app.include_router(alerts.router)
    app.include_router(scan.router)

    @app.get("/health", tags=["health"])
    async def health(registry: PeerRegistry = Depends(get_registry)):
        return {
            "status": "healthy",
            "uptime": round(time.monotonic() - _started_at, 1),
            "clients": len(registry),
        }

    return app
