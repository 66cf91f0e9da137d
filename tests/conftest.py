"""测试配置和 fixtures."""

from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from beansnews.config import Settings
from beansnews.core.moderation import ModerationStatus
from beansnews.core.pipeline import Pipeline
from beansnews.llm.enrichment import EnrichmentResult
from beansnews.models.article import Article
from beansnews.models.run_log import RunLog  # noqa: F401
from beansnews.models.source import Source
from beansnews.shopify.client import MetaobjectRef, ShopifyClient
from beansnews.sources.base import AdapterRegistry, RawRecord, SourceAdapter


@pytest_asyncio.fixture
async def async_session() -> AsyncGenerator[AsyncSession, None]:
    """创建测试用的内存数据库会话."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(tmp_path: Any) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """创建测试用的文件数据库会话工厂（多个会话共享数据）."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def settings() -> Settings:
    """测试配置（不读取 .env）."""
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        shopify_store_domain="beans-test.myshopify.com",
        shopify_access_token="shpat_test",
        scheduler_enabled=False,
    )


@pytest.fixture
def make_article() -> Callable[..., Article]:
    """构造文章（未保存）."""
    counter = {"n": 0}

    def _make(**overrides: Any) -> Article:
        counter["n"] += 1
        n = counter["n"]
        values: dict[str, Any] = {
            "link": f"https://example.com/news/article-{n}",
            "source": "dailycoffeenews",
            "domain": "example.com",
            "published_at": datetime(2024, 5, n % 28 + 1, 8, 30),
            "title": f"Coffee Article {n}",
            "description": f"Description of coffee article {n}",
            "moderation_status": ModerationStatus.SCRAPED,
        }
        values.update(overrides)
        return Article(**values)

    return _make


@pytest_asyncio.fixture
async def sample_articles(
    async_session: AsyncSession, make_article: Callable[..., Article]
) -> dict[str, Article]:
    """每个审核状态各一篇文章."""
    articles = {
        ModerationStatus.SCRAPED: make_article(),
        ModerationStatus.AI_PROCESSED: make_article(
            moderation_status=ModerationStatus.AI_PROCESSED,
            improved_description="An improved description.",
            seo_description="An improved description",
            seo_title="Coffee Article | BEANS News",
            category="Market",
        ),
        ModerationStatus.SENT_TO_SHOPIFY: make_article(
            moderation_status=ModerationStatus.SENT_TO_SHOPIFY,
            improved_description="Already published.",
            shopify_metaobject_id="gid://shopify/Metaobject/1001",
            shopify_handle="79759497-coffee-article",
        ),
        ModerationStatus.REJECTED: make_article(moderation_status=ModerationStatus.REJECTED),
    }
    for article in articles.values():
        async_session.add(article)
    await async_session.commit()
    return articles


@pytest.fixture
def sample_source() -> Source:
    """RSS 数据源."""
    return Source(
        name="dailycoffeenews",
        kind="rss",
        url="https://dailycoffeenews.com/feed/",
        cron_schedule="0 7 * * *",
        adapter="rss",
    )


class CoffeeAdapter(SourceAdapter):
    """每个数据源返回两条记录."""

    async def scrape(self) -> list[RawRecord]:
        return [
            RawRecord(
                title=f"{self.name} story {i}",
                link=f"https://{self.name}.example.com/story-{i}",
                source=self.name,
                domain=f"{self.name}.example.com",
                description="Something happened in coffee.",
            )
            for i in (1, 2)
        ]


class BrokenAdapter(SourceAdapter):
    """总是失败的适配器."""

    async def scrape(self) -> list[RawRecord]:
        raise httpx.ConnectError("connection refused")


@pytest.fixture
def fake_enricher() -> MagicMock:
    """模拟 AI 增强，总是返回同一结果."""
    enricher = MagicMock()
    enricher.enrich = AsyncMock(
        return_value=EnrichmentResult(
            category="Market",
            geotag=None,
            tags=None,
            improved_description="Something happened in coffee.",
            seo_description="Something happened in coffee",
        )
    )
    enricher.provider.close = AsyncMock()
    return enricher


@pytest.fixture
def fake_shopify_client() -> MagicMock:
    """模拟 Shopify：create 返回递增 ID."""
    client = MagicMock(spec=ShopifyClient)
    counter = {"n": 0}

    async def create(handle, fields, article=None):
        counter["n"] += 1
        return MetaobjectRef(id=f"gid://shopify/Metaobject/{counter['n']}", handle=handle)

    async def update(metaobject_id, fields, article=None):
        return MetaobjectRef(id=metaobject_id, handle="stored-handle")

    client.create_metaobject = AsyncMock(side_effect=create)
    client.update_metaobject = AsyncMock(side_effect=update)
    client.find_metaobject_by_handle = AsyncMock(return_value=None)
    client.close = AsyncMock()
    return client


@pytest_asyncio.fixture
async def pipeline(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    fake_enricher: MagicMock,
    fake_shopify_client: MagicMock,
) -> AsyncGenerator[Pipeline, None]:
    """使用模拟 AI / Shopify 的流水线，预置 alpha、beta（正常）和 gamma（失败）三个数据源."""
    async with session_factory() as session:
        session.add_all(
            [
                Source(
                    name=name,
                    kind="rss",
                    url=f"https://{name}.example.com/feed",
                    cron_schedule="0 7 * * *",
                    adapter=adapter,
                )
                for name, adapter in (("alpha", "coffee"), ("beta", "coffee"), ("gamma", "broken"))
            ]
        )
        await session.commit()

    registry = AdapterRegistry()
    registry.register("coffee", CoffeeAdapter)
    registry.register("broken", BrokenAdapter)

    pipeline = Pipeline(
        settings,
        session_factory,
        registry=registry,
        enricher=fake_enricher,
        shopify=fake_shopify_client,
        http_client=httpx.AsyncClient(),
    )
    yield pipeline
    await pipeline.close()
