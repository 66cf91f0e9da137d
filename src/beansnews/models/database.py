"""数据库初始化和会话管理."""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from beansnews.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

# 全局引擎和会话工厂
_engine: Any = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db(
    database_url: str,
    retry: RetryPolicy | None = None,
) -> async_sessionmaker[AsyncSession]:
    """初始化数据库，创建所有表（连接失败时按策略重试）."""
    global _engine, _session_factory

    # 确保所有表模型已注册到 metadata
    from beansnews.models import article, run_log, source  # noqa: F401

    engine = create_async_engine(database_url, echo=False)

    async def _create_all() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    policy = retry or RetryPolicy(max_attempts=1)
    try:
        await policy.run(_create_all, name="数据库连接")
    except Exception:
        await engine.dispose()
        raise

    _engine = engine
    _session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info("数据库已就绪")
    return _session_factory


async def close_db() -> None:
    """释放数据库连接."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话（用于依赖注入）."""
    if _session_factory is None:
        msg = "数据库未初始化，请先调用 init_db()"
        raise RuntimeError(msg)

    async with _session_factory() as session:
        yield session
