"""文章 API."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from beansnews.api.deps import article_payload, get_pipeline
from beansnews.api.schemas import ArticleUpdate, BulkEditRequest
from beansnews.core.errors import PipelineError
from beansnews.core.moderation import ModerationStatus
from beansnews.core.pipeline import Pipeline
from beansnews.core.repository import require_article
from beansnews.models.article import Article
from beansnews.models.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/articles", tags=["articles"])


@router.get("")
async def list_articles(
    status: list[str] | None = Query(None, description="按审核状态筛选，可重复"),
    source: str | None = Query(None, description="按数据源筛选"),
    search: str | None = Query(None, description="标题 / 描述关键词"),
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """获取文章列表（按发布时间倒序）."""
    stmt = select(Article)
    if status:
        unknown = [s for s in status if s not in ModerationStatus.ALL]
        if unknown:
            msg = f"未知的审核状态: {', '.join(unknown)}"
            raise PipelineError(msg, stage="query", detail={"allowed": list(ModerationStatus.ALL)})
        stmt = stmt.where(Article.moderation_status.in_(status))
    if source:
        stmt = stmt.where(Article.source == source)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Article.title.ilike(pattern), Article.description.ilike(pattern)))

    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()

    offset = (page - 1) * limit
    stmt = stmt.order_by(Article.published_at.desc(), Article.id.desc()).offset(offset).limit(limit)
    articles = (await session.execute(stmt)).scalars().all()

    return {
        "total": total,
        "page": page,
        "limit": limit,
        "items": [article_payload(a) for a in articles],
    }


@router.get("/{uuid}")
async def get_article(
    uuid: str,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """获取文章详情."""
    article = await require_article(session, uuid, stage="query")
    return article_payload(article)


@router.put("/{uuid}")
async def update_article(
    uuid: str,
    payload: ArticleUpdate,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """修改文章（仅本地，不同步到 Shopify）."""
    article = await pipeline.update_article(uuid, payload.changes())
    return article_payload(article)


@router.post("/bulk-edit")
async def bulk_edit(
    payload: BulkEditRequest,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """批量修改文章，单篇失败不影响其他文章."""
    changes = payload.changes.changes()
    updated: list[str] = []
    failed: list[dict[str, Any]] = []

    for uuid in dict.fromkeys(payload.uuids):
        try:
            await pipeline.update_article(uuid, changes)
        except PipelineError as e:
            logger.warning(f"批量修改跳过文章: {uuid} - {e.message}")
            failed.append(e.to_dict())
            continue
        updated.append(uuid)

    return {"updated": updated, "failed": failed}
