"""FastAPI 应用主文件

app 创建 + lifespan 管理：存储初始化/关闭、FeedHub、页面登记表、路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from odara.core.config import load_store_config
from odara.core.exceptions import OdaraError
from odara.core.store import FeedHub, RestTaskStore, create_sqlite_store
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import http_error_handler, odara_error_handler
from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import checklists, dialog, feed, health, stream
from .services.screen_registry import ScreenRegistry

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化存储，关闭时卸载页面并断开连接"""
    config = load_store_config()
    feed_hub = FeedHub()

    if config.mode == "rest":
        store = RestTaskStore(config)
        log.info("store_initialized", mode="rest", base_url=config.base_url)
    else:
        # 本地模式：写入经 FeedHub 推送，/api/feed 对外转发
        store = await create_sqlite_store(config.db_path, feed_hub)
        log.info("store_initialized", mode="sqlite", db_path=config.db_path)

    app.state.store_config = config
    app.state.store = store
    app.state.feed_hub = feed_hub
    app.state.screens = ScreenRegistry(store)

    yield

    await app.state.screens.close_all()
    await store.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Odara Gateway",
        version="0.1.0",
        description="Odara 护理任务检查清单 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(OdaraError, odara_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # 初始化日志
    setup_logging()

    # 注册路由
    app.include_router(checklists.router, tags=["checklists"])
    app.include_router(dialog.router, tags=["dialog"])
    app.include_router(stream.router, tags=["stream"])
    app.include_router(feed.router, tags=["feed"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
