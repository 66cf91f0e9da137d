"""测试 Shopify 字段映射和 GraphQL 客户端."""

import json
from datetime import datetime
from typing import Any

import httpx
import pytest

from beansnews.core.errors import (
    PublishConflictError,
    PublishTransportError,
    PublishValidationError,
)
from beansnews.shopify.client import (
    MetaobjectRef,
    ShopifyClient,
    ShopifyConfig,
    is_duplicate_error,
)
from beansnews.shopify.mapping import (
    FIELD_KEYS,
    build_fields,
    compute_handle,
    reverse_date_token,
    slugify,
)

API_URL = "https://beans-test.myshopify.com/admin/api/2023-04/graphql.json"


class TestHandle:
    """测试 handle 计算."""

    def test_reverse_date_token(self) -> None:
        """99999999 - YYYYMMDD，补零到 8 位."""
        assert reverse_date_token(datetime(2024, 5, 14).date()) == "79759485"

    def test_newer_articles_sort_first(self) -> None:
        """越新的文章 handle 越小."""
        newer = compute_handle("Same title", datetime(2024, 5, 15))
        older = compute_handle("Same title", datetime(2024, 5, 14))
        assert newer < older

    def test_deterministic(self) -> None:
        """相同输入得到相同 handle."""
        a = compute_handle("Café Culture: 10 Best!", datetime(2024, 5, 14, 8))
        b = compute_handle("Café Culture: 10 Best!", datetime(2024, 5, 14, 23))
        assert a == b == "79759485-caf-culture-10-best"

    def test_slug_rules(self) -> None:
        """非字母数字折叠为 '-'，首尾去除，最长 50."""
        assert slugify("  --Hello,   World--  ") == "hello-world"
        assert slugify("!!!") == "untitled"
        slug = slugify("a" * 49 + " bcd")
        assert len(slug) <= 50
        assert not slug.endswith("-")

    def test_missing_published_at_uses_now(self) -> None:
        """缺少发布时间时使用当前时间."""
        handle = compute_handle("T", None, now=datetime(2024, 1, 1))
        assert handle.startswith(reverse_date_token(datetime(2024, 1, 1).date()))


class TestBuildFields:
    """测试字段映射."""

    def test_field_order_and_values(self, make_article) -> None:
        """字段顺序固定，值来自文章."""
        article = make_article(
            title="Cafe opens",
            improved_description="A new cafe.",
            image_url="https://cdn.example.com/c.jpg",
            tags=["Ona Coffee", "Proud Mary"],
            geotag="Australia",
            category="Culture",
            seo_title="Cafe opens | BEANS News",
            seo_description="A new cafe",
            published_at=datetime(2024, 5, 14, 9, 15),
        )
        fields = build_fields(article)
        values = {f["key"]: f["value"] for f in fields}

        assert [f["key"] for f in fields] == list(FIELD_KEYS)
        assert values["uuid"] == article.uuid
        assert values["publishdate"] == "2024-05-14T09:15:00.000Z"
        assert values["tags"] == "Ona Coffee, Proud Mary"
        assert values["url"] == article.link
        assert values["attribution"] == article.source

    def test_fallbacks(self, make_article) -> None:
        """缺失字段使用兜底值."""
        article = make_article(title="", domain="", source="")
        values = {f["key"]: f["value"] for f in build_fields(article, brand_suffix="BEANS News")}

        assert values["title"] == "Untitled"
        assert values["description"] == "No description available."
        assert values["domain"] == "unknown"
        assert values["attribution"] == "Unknown Source"
        assert values["category"] == "Market"
        assert values["seotitle"] == "Untitled | BEANS News"
        assert values["tags"] == ""
        assert values["image"] == ""


def graphql_client(handler) -> ShopifyClient:
    config = ShopifyConfig(api_url=API_URL, access_token="shpat_test")
    return ShopifyClient(config, transport=httpx.MockTransport(handler))


def respond(data: dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json={"data": data})


class TestShopifyClient:
    """测试 GraphQL 客户端."""

    async def test_create_metaobject(self) -> None:
        """创建请求包含类型、handle、发布状态和字段."""
        captured: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["token"] = request.headers["X-Shopify-Access-Token"]
            captured["body"] = json.loads(request.content)
            return respond(
                {
                    "metaobjectCreate": {
                        "metaobject": {"id": "gid://shopify/Metaobject/1", "handle": "h-1"},
                        "userErrors": [],
                    }
                }
            )

        client = graphql_client(handler)
        ref = await client.create_metaobject("h-1", [{"key": "title", "value": "T"}], article="u-1")
        await client.close()

        assert ref == MetaobjectRef(id="gid://shopify/Metaobject/1", handle="h-1")
        assert captured["token"] == "shpat_test"
        metaobject = captured["body"]["variables"]["input"]
        assert metaobject["type"] == "news_articles"
        assert metaobject["handle"] == "h-1"
        assert metaobject["capabilities"] == {"publishable": {"status": "ACTIVE"}}

    async def test_duplicate_user_error(self) -> None:
        """重复值 userErrors -> PublishConflictError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return respond(
                {
                    "metaobjectCreate": {
                        "metaobject": None,
                        "userErrors": [
                            {
                                "field": ["fields", "0"],
                                "message": "Value is already assigned to another metafield",
                                "code": "TAKEN",
                            }
                        ],
                    }
                }
            )

        client = graphql_client(handler)
        with pytest.raises(PublishConflictError) as exc_info:
            await client.create_metaobject("h", [], article="u-1")
        assert exc_info.value.article == "u-1"
        assert exc_info.value.stage == "publish"

    async def test_other_user_error(self) -> None:
        """其他 userErrors -> PublishValidationError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return respond(
                {
                    "metaobjectUpdate": {
                        "metaobject": None,
                        "userErrors": [{"field": ["fields"], "message": "Field is invalid", "code": "INVALID"}],
                    }
                }
            )

        client = graphql_client(handler)
        with pytest.raises(PublishValidationError):
            await client.update_metaobject("gid://shopify/Metaobject/1", [])

    async def test_graphql_errors(self) -> None:
        """顶层 errors -> PublishValidationError."""
        client = graphql_client(lambda r: httpx.Response(200, json={"errors": [{"message": "bad"}]}))
        with pytest.raises(PublishValidationError):
            await client.create_metaobject("h", [])

    async def test_non_object_payload(self) -> None:
        """响应体不是 JSON 对象 -> PublishTransportError."""
        client = graphql_client(lambda r: httpx.Response(200, json=[]))
        with pytest.raises(PublishTransportError, match="JSON 对象"):
            await client.create_metaobject("h", [])

    @pytest.mark.parametrize(
        "data",
        [
            "oops",
            {"metaobjectCreate": "oops"},
            {"metaobjectCreate": {"metaobject": "oops", "userErrors": []}},
            {"metaobjectCreate": {"metaobject": None, "userErrors": ["oops"]}},
        ],
    )
    async def test_malformed_data(self, data: Any) -> None:
        """data 结构不符合预期 -> PublishValidationError."""
        client = graphql_client(lambda r: httpx.Response(200, json={"data": data}))
        with pytest.raises(PublishValidationError):
            await client.create_metaobject("h", [])

    async def test_find_by_handle_malformed(self) -> None:
        """metaobjectByHandle 不是对象 -> PublishValidationError."""
        client = graphql_client(lambda r: respond({"metaobjectByHandle": ["oops"]}))
        with pytest.raises(PublishValidationError):
            await client.find_metaobject_by_handle("h")

    async def test_http_error(self) -> None:
        """非 2xx -> PublishTransportError."""
        client = graphql_client(lambda r: httpx.Response(503, text="unavailable"))
        with pytest.raises(PublishTransportError, match="503"):
            await client.create_metaobject("h", [])

    async def test_network_error(self) -> None:
        """网络错误 -> PublishTransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = graphql_client(handler)
        with pytest.raises(PublishTransportError):
            await client.create_metaobject("h", [])

    async def test_update_rejects_invalid_id_without_call(self) -> None:
        """无效 ID 在请求前被拒绝."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return respond({})

        client = graphql_client(handler)
        with pytest.raises(PublishValidationError):
            await client.update_metaobject("12345", [])
        assert calls == []

    async def test_update_keeps_handle(self) -> None:
        """更新请求只包含字段."""
        captured: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return respond(
                {
                    "metaobjectUpdate": {
                        "metaobject": {"id": "gid://shopify/Metaobject/7", "handle": "h-7"},
                        "userErrors": [],
                    }
                }
            )

        client = graphql_client(handler)
        ref = await client.update_metaobject("gid://shopify/Metaobject/7", [{"key": "title", "value": "T"}])

        assert ref.handle == "h-7"
        assert captured["body"]["variables"] == {
            "id": "gid://shopify/Metaobject/7",
            "metaobject": {"fields": [{"key": "title", "value": "T"}]},
        }

    async def test_find_by_handle(self) -> None:
        """按 handle 查找，返回 uuid 字段."""

        def handler(request: httpx.Request) -> httpx.Response:
            variables = json.loads(request.content)["variables"]
            assert variables["handle"] == {"type": "news_articles", "handle": "h-1"}
            return respond(
                {
                    "metaobjectByHandle": {
                        "id": "gid://shopify/Metaobject/1",
                        "handle": "h-1",
                        "uuid": {"value": "u-1"},
                    }
                }
            )

        ref = await graphql_client(handler).find_metaobject_by_handle("h-1")
        assert ref == MetaobjectRef(id="gid://shopify/Metaobject/1", handle="h-1", uuid="u-1")

    async def test_find_by_handle_missing(self) -> None:
        """不存在时返回 None."""
        ref = await graphql_client(lambda r: respond({"metaobjectByHandle": None})).find_metaobject_by_handle("x")
        assert ref is None

    def test_is_duplicate_error(self) -> None:
        """识别重复值错误."""
        assert is_duplicate_error([{"message": "Handle has already been taken"}])
        assert not is_duplicate_error([{"message": "Title can't be blank", "code": "BLANK"}])
