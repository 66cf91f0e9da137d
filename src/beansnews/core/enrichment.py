"""AI 增强协调器 - 选择 scraped 文章，调用 AI，推进到 aiProcessed."""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beansnews.core.errors import EnrichmentBoundaryError, InvalidStateError
from beansnews.core.locks import KeyedLock
from beansnews.core.moderation import ModerationStatus, apply_transition
from beansnews.core.repository import get_article, get_link, require_article, select_keys
from beansnews.llm.enrichment import (
    ArticleEnricher,
    EnrichmentResult,
    normalize_improved_description,
    normalize_seo_description,
)
from beansnews.models.article import Article

logger = logging.getLogger(__name__)


@dataclass
class EnrichResult:
    """AI 增强统计."""

    processed_count: int = 0  # 成功 + 降级
    degraded_count: int = 0
    skipped_count: int = 0  # 选中后被拒绝或状态已变化
    failed_count: int = 0


def seo_title_for(title: str, brand_suffix: str) -> str:
    """SEO 标题: "<标题> | <品牌>"."""
    return f"{title} | {brand_suffix}"


def enriched_fields(result: EnrichmentResult) -> dict[str, Any]:
    """AI 成功时写入的字段."""
    return {
        "category": result.category,
        "geotag": result.geotag,
        "tags": result.tags,
        "improved_description": result.improved_description,
        "seo_description": result.seo_description,
    }


def degraded_fields(title: str, description: str | None) -> dict[str, Any]:
    """AI 不可用时的降级字段，保证文章仍可发布."""
    original = (description or "").strip()
    return {
        "category": None,
        "geotag": None,
        "tags": None,
        # 描述为空时用标题兜底，改写描述始终非空
        "improved_description": normalize_improved_description(original or title),
        "seo_description": normalize_seo_description(original),
    }


class EnrichmentCoordinator:
    """AI 增强协调器."""

    def __init__(
        self,
        session: AsyncSession,
        enricher: ArticleEnricher,
        brand_suffix: str = "BEANS News",
        locks: KeyedLock | None = None,
    ) -> None:
        self.session = session
        self.enricher = enricher
        self.brand_suffix = brand_suffix
        self.locks = locks or KeyedLock()

    async def enrich(self, source_name: str | None = None) -> EnrichResult:
        """处理所有 scraped 文章（可按数据源过滤）."""
        result = EnrichResult()
        keys = await select_keys(self.session, ModerationStatus.SCRAPED, source_name)
        if not keys:
            logger.info(f"没有待 AI 处理的文章 (source={source_name or '*'})")
            return result

        logger.info(f"开始 AI 处理: {len(keys)} 篇 (source={source_name or '*'})")
        for uuid, link in keys:
            try:
                async with self.locks.hold(link):
                    article = await get_article(self.session, uuid)
                    if article is None or article.moderation_status != ModerationStatus.SCRAPED:
                        result.skipped_count += 1
                        logger.info(f"跳过 AI 处理 (状态已变化): {uuid}")
                        continue
                    degraded = await self._apply(article)
            except SQLAlchemyError:
                await self.session.rollback()
                result.failed_count += 1
                logger.exception(f"AI 处理保存失败: {uuid}")
                continue
            except Exception:
                await self.session.rollback()
                result.failed_count += 1
                logger.exception(f"AI 处理失败，跳过文章: {uuid}")
                continue

            result.processed_count += 1
            if degraded:
                result.degraded_count += 1

        logger.info(
            f"AI 处理完成: 处理={result.processed_count}, 降级={result.degraded_count}, "
            f"跳过={result.skipped_count}, 失败={result.failed_count}"
        )
        return result

    async def enrich_one(self, uuid: str) -> Article:
        """处理单篇文章，文章必须处于 scraped 状态."""
        link = await get_link(self.session, uuid, stage="enrich")
        async with self.locks.hold(link):
            article = await require_article(self.session, uuid, stage="enrich")
            if article.moderation_status != ModerationStatus.SCRAPED:
                msg = "文章必须处于 scraped 状态才能进行 AI 处理"
                raise InvalidStateError(
                    msg,
                    stage="enrich",
                    article=uuid,
                    detail={"status": article.moderation_status},
                )
            await self._apply(article)
        return article

    async def _apply(self, article: Article) -> bool:
        """调用 AI 并推进状态，返回是否使用了降级结果."""
        title = article.title
        try:
            ai = await self.enricher.enrich(
                title=title,
                description=article.description,
                image_url=article.image_url,
                article=article.uuid,
            )
            fields = enriched_fields(ai)
            article.process_error = None
            article.process_stage = None
            degraded = False
        except EnrichmentBoundaryError as e:
            logger.warning(f"AI 处理失败，使用降级结果: {title} - {e.message}")
            fields = degraded_fields(title, article.description)
            article.process_error = e.message
            article.process_stage = "enrich"
            degraded = True
        except Exception as e:
            logger.exception(f"AI 处理出现意外错误，使用降级结果: {title}")
            fields = degraded_fields(title, article.description)
            article.process_error = f"{type(e).__name__}: {e}"[:500]
            article.process_stage = "enrich"
            degraded = True

        for key, value in fields.items():
            setattr(article, key, value)
        article.seo_title = seo_title_for(title, self.brand_suffix)
        apply_transition(article, ModerationStatus.AI_PROCESSED, stage="enrich")
        await self.session.commit()

        logger.info(f"文章 AI 处理完成: {title} (category={article.category})")
        return degraded
