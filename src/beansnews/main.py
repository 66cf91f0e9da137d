"""BEANS News 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from beansnews.api import articles, sources, system
from beansnews.config import get_settings
from beansnews.core.errors import (
    AdapterError,
    ArticleNotFoundError,
    EnrichmentBoundaryError,
    InvalidStateError,
    PipelineError,
    PublishError,
    StorageConflictError,
)
from beansnews.core.pipeline import Pipeline
from beansnews.core.retry import RetryPolicy
from beansnews.log_config import setup_logging
from beansnews.models.database import close_db, init_db
from beansnews.scheduler import create_scheduler, shutdown_scheduler

logger = logging.getLogger(__name__)

# 按顺序匹配，子类在前
ERROR_STATUS_CODES: tuple[tuple[type[PipelineError], int], ...] = (
    (ArticleNotFoundError, 404),
    (InvalidStateError, 400),
    (AdapterError, 400),
    (StorageConflictError, 409),
    (PublishError, 502),
    (EnrichmentBoundaryError, 502),
)


def status_code_for(error: PipelineError) -> int:
    """流水线错误 -> HTTP 状态码."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()
    setup_logging(app_settings)

    # 启动时初始化
    logger.info("正在初始化数据库...")
    retry = RetryPolicy(
        max_attempts=app_settings.db_connect_attempts,
        delay=app_settings.db_connect_delay_seconds,
        backoff=app_settings.db_connect_backoff,
    )
    session_factory = await init_db(app_settings.database_url, retry=retry)

    pipeline = Pipeline(app_settings, session_factory)
    app.state.pipeline = pipeline

    if app_settings.scheduler_enabled:
        logger.info("正在启动定时任务...")
        create_scheduler(pipeline, await pipeline.list_sources(), app_settings)
    else:
        logger.info("定时任务已禁用")

    logger.info("BEANS News 启动完成！")
    yield

    # 关闭时清理
    logger.info("正在关闭...")
    await shutdown_scheduler()
    await pipeline.close()
    await close_db()
    logger.info("BEANS News 已关闭")


app = FastAPI(
    title="BEANS News",
    description="咖啡新闻流水线 - 抓取、AI 处理并发布到 Shopify",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """流水线错误统一返回结构化 JSON."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} 失败: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# 注册路由
app.include_router(articles.router)
app.include_router(sources.router)
app.include_router(system.router)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "BEANS News",
        "version": "0.1.0",
        "description": "咖啡新闻流水线",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "beansnews.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
