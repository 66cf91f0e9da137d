"""流水线操作 API（手动触发抓取 / AI 处理 / 发布）."""

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from beansnews.api.deps import article_payload, get_pipeline
from beansnews.api.schemas import ArticleUpdate
from beansnews.core.errors import AdapterError
from beansnews.core.moderation import ModerationStatus
from beansnews.core.pipeline import Pipeline
from beansnews.models.article import Article
from beansnews.models.database import get_session
from beansnews.models.run_log import RunLog
from beansnews.utils.time import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


@router.post("/scrape")
async def scrape(
    source: str | None = Query(None, description="数据源名称，为空时抓取全部"),
    pipeline: Pipeline = Depends(get_pipeline),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """抓取数据源，返回本次新增或更新的待处理文章."""
    started = utc_now()

    if source:
        results = [asdict(await pipeline.ingest_source(source))]
        errors: list[dict[str, Any]] = []
    else:
        results, errors = [], []
        for item in await pipeline.list_sources():
            name = item.name
            try:
                results.append(asdict(await pipeline.ingest_source(name)))
            except AdapterError as e:
                logger.error(f"数据源抓取失败: {name} - {e.message}")
                errors.append(e.to_dict())

    stmt = (
        select(Article)
        .where(Article.moderation_status == ModerationStatus.SCRAPED)
        .where(Article.updated_at >= started)
        .order_by(Article.published_at.desc())
    )
    articles = (await session.execute(stmt)).scalars().all()

    return {
        "results": results,
        "errors": errors,
        "articles": [article_payload(a) for a in articles],
    }


@router.post("/process-ai")
async def process_ai(
    source: str | None = Query(None, description="数据源名称，为空时处理全部"),
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """AI 处理所有 scraped 文章."""
    result = await pipeline.enrich_source(source)
    return asdict(result)


@router.post("/publish-shopify")
async def publish_shopify(
    source: str | None = Query(None, description="数据源名称，为空时发布全部"),
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """发布所有 aiProcessed 文章到 Shopify."""
    result = await pipeline.publish(source)
    return {**asdict(result), "failed_count": result.failed_count}


@router.post("/run-all")
async def run_all(
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """全量运行：所有数据源抓取 + AI 处理，然后发布."""
    result = await pipeline.run_all()
    return asdict(result)


@router.post("/push-to-shopify/{uuid}")
async def push_to_shopify(
    uuid: str,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """推送单篇文章到 Shopify."""
    outcome = await pipeline.publish_one(uuid)
    return {"uuid": uuid, **asdict(outcome)}


@router.put("/edit-on-shopify/{uuid}")
async def edit_on_shopify(
    uuid: str,
    payload: ArticleUpdate,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """修改已发布文章并同步到 Shopify."""
    article = await pipeline.edit_and_resync(uuid, payload.changes())
    return article_payload(article)


@router.post("/process-single-ai/{uuid}")
async def process_single_ai(
    uuid: str,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """AI 处理单篇文章."""
    article = await pipeline.enrich_one(uuid)
    return article_payload(article)


@router.post("/reject/{uuid}")
async def reject_article(
    uuid: str,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """拒绝文章."""
    article = await pipeline.reject(uuid)
    return article_payload(article)


@router.get("/scrapers")
async def list_scrapers(
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, list[str]]:
    """已注册的适配器."""
    return {"adapters": pipeline.registry.keys()}


@router.get("/runs")
async def list_runs(
    stage: str | None = Query(None, description="按阶段筛选"),
    source: str | None = Query(None, description="按数据源筛选"),
    limit: int = Query(50, ge=1, le=500, description="返回数量"),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """最近的运行记录."""
    stmt = select(RunLog)
    if stage:
        stmt = stmt.where(RunLog.stage == stage)
    if source:
        stmt = stmt.where(RunLog.source == source)
    stmt = stmt.order_by(RunLog.started_at.desc(), RunLog.id.desc()).limit(limit)
    runs = (await session.execute(stmt)).scalars().all()
    return {"items": [run.model_dump(mode="json") for run in runs]}
