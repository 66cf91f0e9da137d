"""测试 HTTP API."""

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beansnews.core.errors import (
    AdapterError,
    ArticleNotFoundError,
    InvalidStateError,
    PipelineError,
    PublishTransportError,
    StorageConflictError,
)
from beansnews.core.moderation import ModerationStatus
from beansnews.core.pipeline import Pipeline
from beansnews.main import app, status_code_for
from beansnews.models.database import get_session


@pytest_asyncio.fixture
async def client(
    pipeline: Pipeline, session_factory: async_sessionmaker[AsyncSession]
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """不启动 lifespan 的测试客户端，使用测试数据库和模拟流水线."""

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.state.pipeline = pipeline
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def scraped_uuid(client: httpx.AsyncClient) -> str:
    response = await client.post("/api/system/scrape", params={"source": "alpha"})
    return response.json()["articles"][0]["uuid"]


class TestErrorMapping:
    """测试错误到状态码的映射."""

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (ArticleNotFoundError("x", stage="query"), 404),
            (InvalidStateError("x", stage="publish"), 400),
            (AdapterError("x"), 400),
            (StorageConflictError("x", stage="sources"), 409),
            (PublishTransportError("x"), 502),
            (PipelineError("x", stage="query"), 400),
        ],
    )
    def test_status_code_for(self, error: PipelineError, status_code: int) -> None:
        """按错误类型返回状态码."""
        assert status_code_for(error) == status_code


class TestHealth:
    """测试健康检查."""

    async def test_health(self, client: httpx.AsyncClient) -> None:
        """健康检查返回 ok."""
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestArticlesApi:
    """测试文章 API."""

    async def test_list_and_filter(self, client: httpx.AsyncClient) -> None:
        """按状态、数据源和关键词筛选."""
        await client.post("/api/system/scrape", params={"source": "alpha"})
        await client.post("/api/system/scrape", params={"source": "beta"})

        response = await client.get("/api/articles", params={"status": "scraped", "source": "beta"})
        data = response.json()
        assert response.status_code == 200
        assert data["total"] == 2
        assert {item["source"] for item in data["items"]} == {"beta"}

        response = await client.get("/api/articles", params={"search": "alpha story 1"})
        assert response.json()["total"] == 1

        response = await client.get("/api/articles", params={"limit": 3, "page": 2})
        data = response.json()
        assert data["total"] == 4
        assert len(data["items"]) == 1

    async def test_unknown_status_filter(self, client: httpx.AsyncClient) -> None:
        """未知审核状态返回 400."""
        response = await client.get("/api/articles", params={"status": "published"})
        assert response.status_code == 400
        assert response.json()["stage"] == "query"

    async def test_get_missing_article(self, client: httpx.AsyncClient) -> None:
        """文章不存在返回 404 结构化错误."""
        response = await client.get("/api/articles/does-not-exist")
        assert response.status_code == 404
        body = response.json()
        assert body["stage"] == "query"
        assert body["article"] == "does-not-exist"

    async def test_update_article(self, client: httpx.AsyncClient) -> None:
        """修改可编辑字段."""
        uuid = await scraped_uuid(client)

        response = await client.put(f"/api/articles/{uuid}", json={"title": "Edited title"})

        assert response.status_code == 200
        assert response.json()["title"] == "Edited title"
        assert response.json()["moderation_status"] == ModerationStatus.SCRAPED

    async def test_update_protected_field_rejected(self, client: httpx.AsyncClient) -> None:
        """受保护字段不能通过 API 修改."""
        uuid = await scraped_uuid(client)
        response = await client.put(f"/api/articles/{uuid}", json={"link": "https://evil.example.com"})
        assert response.status_code == 422

    async def test_update_status_cannot_skip_state_machine(self, client: httpx.AsyncClient) -> None:
        """不能通过编辑把文章标记为已发布."""
        uuid = await scraped_uuid(client)
        response = await client.put(f"/api/articles/{uuid}", json={"moderation_status": "sentToShopify"})
        assert response.status_code == 400

        response = await client.get(f"/api/articles/{uuid}")
        assert response.json()["moderation_status"] == ModerationStatus.SCRAPED

    async def test_bulk_edit(self, client: httpx.AsyncClient) -> None:
        """批量修改，不存在的文章记入 failed."""
        uuid = await scraped_uuid(client)

        response = await client.post(
            "/api/articles/bulk-edit",
            json={"uuids": [uuid, "missing"], "changes": {"category": "Culture"}},
        )

        data = response.json()
        assert data["updated"] == [uuid]
        assert data["failed"][0]["article"] == "missing"


class TestSystemApi:
    """测试流水线操作 API."""

    async def test_scrape_all_reports_errors(self, client: httpx.AsyncClient) -> None:
        """全部抓取时失败的数据源记入 errors，不影响其他数据源."""
        response = await client.post("/api/system/scrape")

        data = response.json()
        assert response.status_code == 200
        assert {r["source"] for r in data["results"]} == {"alpha", "beta"}
        assert data["errors"][0]["source"] == "gamma"
        assert len(data["articles"]) == 4

    async def test_scrape_unknown_source(self, client: httpx.AsyncClient) -> None:
        """抓取不存在的数据源返回 400."""
        response = await client.post("/api/system/scrape", params={"source": "missing"})
        assert response.status_code == 400
        assert response.json()["stage"] == "ingest"

    async def test_process_then_publish(self, client: httpx.AsyncClient) -> None:
        """AI 处理后发布."""
        await client.post("/api/system/scrape", params={"source": "alpha"})

        processed = await client.post("/api/system/process-ai")
        published = await client.post("/api/system/publish-shopify")

        assert processed.json()["processed_count"] == 2
        assert published.json()["created"] == 2
        assert published.json()["failed_count"] == 0

        response = await client.get("/api/articles", params={"status": "sentToShopify"})
        assert response.json()["total"] == 2

    async def test_push_requires_ai_processed(self, client: httpx.AsyncClient) -> None:
        """推送 scraped 文章返回 400 结构化错误."""
        uuid = await scraped_uuid(client)

        response = await client.post(f"/api/system/push-to-shopify/{uuid}")

        assert response.status_code == 400
        body = response.json()
        assert set(body) >= {"error", "stage", "article", "detail"}
        assert body["article"] == uuid

    async def test_single_article_flow(self, client: httpx.AsyncClient) -> None:
        """单篇 AI 处理、推送、修改并同步."""
        uuid = await scraped_uuid(client)

        processed = await client.post(f"/api/system/process-single-ai/{uuid}")
        pushed = await client.post(f"/api/system/push-to-shopify/{uuid}")
        edited = await client.put(f"/api/system/edit-on-shopify/{uuid}", json={"geotag": "Kenya"})

        assert processed.json()["moderation_status"] == ModerationStatus.AI_PROCESSED
        assert pushed.json()["action"] == "created"
        assert edited.status_code == 200
        assert edited.json()["geotag"] == "Kenya"
        assert edited.json()["moderation_status"] == ModerationStatus.SENT_TO_SHOPIFY

    async def test_reject(self, client: httpx.AsyncClient) -> None:
        """拒绝文章."""
        uuid = await scraped_uuid(client)

        response = await client.post(f"/api/system/reject/{uuid}")

        assert response.status_code == 200
        assert response.json()["moderation_status"] == ModerationStatus.REJECTED

    async def test_scrapers_and_runs(self, client: httpx.AsyncClient) -> None:
        """列出适配器和运行记录."""
        await client.post("/api/system/scrape", params={"source": "alpha"})

        scrapers = await client.get("/api/system/scrapers")
        runs = await client.get("/api/system/runs", params={"stage": "ingest"})

        assert scrapers.json() == {"adapters": ["broken", "coffee"]}
        items = runs.json()["items"]
        assert len(items) == 1
        assert items[0]["source"] == "alpha"
        assert items[0]["status"] == "success"


class TestSourcesApi:
    """测试数据源 API."""

    async def test_list_sources(self, client: httpx.AsyncClient) -> None:
        """按名称排序."""
        response = await client.get("/api/sources")
        assert [s["name"] for s in response.json()] == ["alpha", "beta", "gamma"]

    async def test_create_source(self, client: httpx.AsyncClient) -> None:
        """新建数据源."""
        response = await client.post(
            "/api/sources",
            json={
                "name": "delta",
                "kind": "rss",
                "url": "https://delta.example.com/feed",
                "cron_schedule": "*/15 * * * *",
                "adapter": "coffee",
            },
        )

        assert response.status_code == 201
        assert response.json()["adapter"] == "coffee"

    async def test_duplicate_source(self, client: httpx.AsyncClient) -> None:
        """重名返回 409."""
        response = await client.post(
            "/api/sources",
            json={
                "name": "alpha",
                "url": "https://alpha.example.com/feed",
                "cron_schedule": "0 7 * * *",
                "adapter": "coffee",
            },
        )
        assert response.status_code == 409

    async def test_unregistered_adapter(self, client: httpx.AsyncClient) -> None:
        """适配器未注册返回 400."""
        response = await client.post(
            "/api/sources",
            json={"name": "delta", "url": "https://delta.example.com/feed", "cron_schedule": "0 7 * * *"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == {"registered": ["broken", "coffee"]}

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "delta-2"},
            {"url": "ftp://delta.example.com"},
            {"cron_schedule": "0 7 * *"},
            {"cron_schedule": "99 7 * * *"},
        ],
    )
    async def test_invalid_source(self, client: httpx.AsyncClient, overrides: dict) -> None:
        """名称、URL、crontab 无效返回 422."""
        payload = {
            "name": "delta",
            "url": "https://delta.example.com/feed",
            "cron_schedule": "0 7 * * *",
            "adapter": "coffee",
        }
        payload.update(overrides)
        response = await client.post("/api/sources", json=payload)
        assert response.status_code == 422
