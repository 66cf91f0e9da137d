"""流水线容器 - 组装各阶段并记录运行日志.

调度器和 API 都只通过 :class:`Pipeline` 调用各阶段。每次批量阶段调用使用
独立的数据库会话，并写入一条 RunLog；单篇文章操作直接返回结果或抛出
结构化的 PipelineError。
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from beansnews.config import Settings
from beansnews.core.editing import apply_edits
from beansnews.core.enrichment import EnrichmentCoordinator, EnrichResult
from beansnews.core.errors import AdapterError, PublishValidationError
from beansnews.core.ingestion import IngestionEngine, IngestResult
from beansnews.core.locks import KeyedLock
from beansnews.core.moderation import reject
from beansnews.core.publish import PublishOutcome, PublishResult, PublishSync
from beansnews.core.repository import get_link, require_article
from beansnews.llm.enrichment import ArticleEnricher
from beansnews.llm.factory import create_llm_provider
from beansnews.models.article import Article
from beansnews.models.run_log import RunLog
from beansnews.models.source import Source
from beansnews.shopify.client import ShopifyClient, ShopifyConfig
from beansnews.sources import AdapterRegistry, default_registry
from beansnews.utils.time import utc_now

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass
class SourceRunResult:
    """单个数据源的抓取 + AI 处理结果."""

    source: str
    ingest: IngestResult | None = None
    enrich: EnrichResult | None = None
    error: str | None = None


@dataclass
class FullRunResult:
    """全量运行结果."""

    sources: list[SourceRunResult] = field(default_factory=list)
    publish: PublishResult | None = None


def _ingest_counts(result: IngestResult) -> dict[str, int]:
    return {
        "new_count": result.new_count,
        "updated_count": result.updated_count,
        "failed_count": result.failed_count,
    }


def _enrich_counts(result: EnrichResult) -> dict[str, int]:
    return {"processed_count": result.processed_count, "failed_count": result.failed_count}


def _publish_counts(result: PublishResult) -> dict[str, int]:
    return {
        "new_count": result.created,
        "updated_count": result.updated,
        "processed_count": result.created + result.updated + result.conflicts,
        "failed_count": result.failed_count,
    }


class Pipeline:
    """抓取 -> AI 处理 -> 发布 流水线."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        registry: AdapterRegistry | None = None,
        enricher: ArticleEnricher | None = None,
        shopify: ShopifyClient | None = None,
        http_client: httpx.AsyncClient | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.registry = registry or default_registry()
        self.locks = locks or KeyedLock()
        self.http_client = http_client or httpx.AsyncClient(
            headers={"User-Agent": settings.http_user_agent},
            follow_redirects=True,
            timeout=30.0,
        )
        self.enricher = enricher or ArticleEnricher(
            create_llm_provider(settings),
            timeout_seconds=settings.enrichment_timeout_seconds,
        )
        if shopify is None and settings.shopify_configured:
            shopify = ShopifyClient(
                ShopifyConfig(
                    api_url=settings.shopify_api_url,
                    access_token=settings.shopify_access_token,
                    metaobject_type=settings.shopify_metaobject_type,
                    timeout=settings.shopify_timeout_seconds,
                )
            )
        self.shopify = shopify

    async def close(self) -> None:
        """释放 HTTP 客户端和 LLM 连接."""
        await self.http_client.aclose()
        await self.enricher.provider.close()
        if self.shopify is not None:
            await self.shopify.close()

    # ---- 数据源 ----

    async def list_sources(self) -> list[Source]:
        """读取所有数据源."""
        async with self.session_factory() as session:
            result = await session.execute(select(Source).order_by(Source.name))
            return list(result.scalars().all())

    def validate_sources(self, sources: Iterable[Source]) -> None:
        """校验数据源的适配器都已注册，缺失时抛出 AdapterError."""
        self.registry.validate((source.name, source.adapter) for source in sources)

    # ---- 批量阶段 ----

    async def ingest_source(self, name: str, trigger: str = "manual") -> IngestResult:
        """抓取单个数据源."""

        async def work(session: AsyncSession) -> IngestResult:
            engine = IngestionEngine(
                session,
                self.registry,
                self.http_client,
                locks=self.locks,
                timeout_seconds=self.settings.adapter_timeout_seconds,
            )
            return await engine.ingest_by_name(name)

        return await self._tracked("ingest", name, trigger, work, _ingest_counts)

    async def enrich_source(self, name: str | None = None, trigger: str = "manual") -> EnrichResult:
        """AI 处理 scraped 文章（name 为空时处理全部数据源）."""

        async def work(session: AsyncSession) -> EnrichResult:
            return await self._coordinator(session).enrich(name)

        return await self._tracked("enrich", name, trigger, work, _enrich_counts)

    async def publish(self, name: str | None = None, trigger: str = "manual") -> PublishResult:
        """发布 aiProcessed 文章到 Shopify."""

        async def work(session: AsyncSession) -> PublishResult:
            return await self._publisher(session).publish(name)

        return await self._tracked("publish", name, trigger, work, _publish_counts)

    async def run_source(self, name: str, trigger: str = "schedule") -> SourceRunResult:
        """抓取并 AI 处理单个数据源；抓取失败时跳过本次运行."""
        run = SourceRunResult(source=name)
        try:
            run.ingest = await self.ingest_source(name, trigger)
        except AdapterError as e:
            run.error = e.message
            logger.error(f"数据源抓取失败，跳过本次运行: {name} - {e.message}")
            return run
        run.enrich = await self.enrich_source(name, trigger)
        return run

    async def run_all(self, trigger: str = "manual") -> FullRunResult:
        """所有数据源并发运行（各自串行抓取 + AI 处理），然后统一发布."""
        sources = await self.list_sources()
        names = [source.name for source in sources]
        logger.info(f"开始全量运行: {len(names)} 个数据源")

        outcomes = await asyncio.gather(
            *(self.run_source(name, trigger) for name in names),
            return_exceptions=True,
        )
        full = FullRunResult()
        for name, outcome in zip(names, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(f"数据源运行失败: {name} - {type(outcome).__name__}: {outcome}")
                full.sources.append(SourceRunResult(source=name, error=str(outcome)))
            else:
                full.sources.append(outcome)

        full.publish = await self.publish(trigger=trigger)
        return full

    # ---- 单篇文章操作 ----

    async def enrich_one(self, uuid: str) -> Article:
        """AI 处理单篇 scraped 文章."""
        async with self.session_factory() as session:
            return await self._coordinator(session).enrich_one(uuid)

    async def publish_one(self, uuid: str) -> PublishOutcome:
        """推送单篇文章到 Shopify."""
        async with self.session_factory() as session:
            return await self._publisher(session).publish_one(uuid)

    async def edit_and_resync(self, uuid: str, changes: dict[str, Any]) -> Article:
        """修改已发布文章并同步到 Shopify."""
        async with self.session_factory() as session:
            return await self._publisher(session).edit_and_resync(uuid, changes)

    async def reject(self, uuid: str) -> Article:
        """编辑拒绝文章（任意状态均可，已拒绝时不做修改）."""
        async with self.session_factory() as session:
            link = await get_link(session, uuid, stage="moderation")
            async with self.locks.hold(link):
                article = await require_article(session, uuid, stage="moderation")
                if reject(article):
                    await session.commit()
                    logger.info(f"文章已拒绝: {article.title} ({uuid})")
                return article

    async def update_article(self, uuid: str, changes: dict[str, Any]) -> Article:
        """本地编辑文章，不同步到 Shopify."""
        async with self.session_factory() as session:
            link = await get_link(session, uuid, stage="edit")
            async with self.locks.hold(link):
                article = await require_article(session, uuid, stage="edit")
                changed = apply_edits(article, changes)
                if changed:
                    await session.commit()
                    logger.info(f"文章已修改: {uuid} ({', '.join(changed)})")
                return article

    # ---- 内部 ----

    def _coordinator(self, session: AsyncSession) -> EnrichmentCoordinator:
        return EnrichmentCoordinator(
            session,
            self.enricher,
            brand_suffix=self.settings.brand_suffix,
            locks=self.locks,
        )

    def _publisher(self, session: AsyncSession) -> PublishSync:
        if self.shopify is None:
            msg = "Shopify 未配置 (SHOPIFY_STORE_DOMAIN / SHOPIFY_ACCESS_TOKEN)"
            raise PublishValidationError(msg)
        return PublishSync(
            session,
            self.shopify,
            brand_suffix=self.settings.brand_suffix,
            default_category=self.settings.default_category,
            timeout_seconds=self.settings.shopify_timeout_seconds,
            locks=self.locks,
        )

    async def _tracked(
        self,
        stage: str,
        source: str | None,
        trigger: str,
        work: Callable[[AsyncSession], Awaitable[R]],
        counts: Callable[[R], dict[str, int]],
    ) -> R:
        """执行阶段并写入 RunLog（使用独立会话，阶段回滚不影响日志）."""
        async with self.session_factory() as log_session:
            run = RunLog(stage=stage, source=source, trigger=trigger)
            log_session.add(run)
            await log_session.commit()

            try:
                async with self.session_factory() as session:
                    result = await work(session)
            except Exception as e:
                run.status = "failed"
                run.error_message = str(e)[:500]
                run.completed_at = utc_now()
                await log_session.commit()
                raise

            for key, value in counts(result).items():
                setattr(run, key, value)
            run.status = "success"
            run.completed_at = utc_now()
            await log_session.commit()
            return result
