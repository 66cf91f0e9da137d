"""数据源 API."""

import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from beansnews.api.deps import get_pipeline
from beansnews.api.schemas import SourceCreate
from beansnews.core.errors import AdapterError, StorageConflictError
from beansnews.core.pipeline import Pipeline
from beansnews.models.database import get_session
from beansnews.models.source import Source
from beansnews.scheduler import schedule_source

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sources", tags=["sources"])


@router.get("")
async def list_sources(
    session: AsyncSession = Depends(get_session),
) -> list[dict[str, Any]]:
    """获取所有数据源."""
    result = await session.execute(select(Source).order_by(Source.name))
    return [source.model_dump(mode="json") for source in result.scalars().all()]


@router.post("", status_code=201)
async def create_source(
    payload: SourceCreate,
    session: AsyncSession = Depends(get_session),
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """新建数据源，并加入正在运行的调度器."""
    adapter = payload.adapter_key
    if adapter not in pipeline.registry:
        msg = f"适配器 '{adapter}' 未注册"
        raise AdapterError(msg, source=payload.name, detail={"registered": pipeline.registry.keys()})

    existing = await session.execute(select(Source).where(Source.name == payload.name))
    if existing.scalar_one_or_none() is not None:
        msg = f"数据源 '{payload.name}' 已存在"
        raise StorageConflictError(msg, stage="sources")

    source = Source(
        name=payload.name,
        kind=payload.kind,
        url=payload.url,
        cron_schedule=payload.cron_schedule,
        adapter=adapter,
    )
    session.add(source)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        msg = f"数据源 '{payload.name}' 已存在"
        raise StorageConflictError(msg, stage="sources", detail=str(e.orig)) from e

    await session.refresh(source)
    logger.info(f"数据源已创建: {source.name} ({source.adapter}, {source.cron_schedule})")
    schedule_source(pipeline, source)
    return source.model_dump(mode="json")
