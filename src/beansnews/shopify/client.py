"""Shopify Admin GraphQL 元对象客户端."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from beansnews.core.errors import (
    PublishConflictError,
    PublishTransportError,
    PublishValidationError,
)

logger = logging.getLogger(__name__)

METAOBJECT_ID_PREFIX = "gid://shopify/Metaobject/"

# userErrors 中表示值 / handle 已被占用的提示
DUPLICATE_MARKERS = (
    "value is already assigned",
    "already assigned to another",
    "has already been taken",
)

CREATE_MUTATION = """
mutation MetaobjectCreate($input: MetaobjectCreateInput!) {
  metaobjectCreate(metaobject: $input) {
    metaobject { id handle type }
    userErrors { field message code }
  }
}
"""

UPDATE_MUTATION = """
mutation UpdateMetaobject($id: ID!, $metaobject: MetaobjectUpdateInput!) {
  metaobjectUpdate(id: $id, metaobject: $metaobject) {
    metaobject { id handle type }
    userErrors { field message code }
  }
}
"""

BY_HANDLE_QUERY = """
query MetaobjectByHandle($handle: MetaobjectHandleInput!) {
  metaobjectByHandle(handle: $handle) {
    id
    handle
    uuid: field(key: "uuid") { value }
  }
}
"""


@dataclass
class ShopifyConfig:
    """Shopify 连接配置."""

    api_url: str
    access_token: str
    metaobject_type: str = "news_articles"
    timeout: float = 30.0


@dataclass
class MetaobjectRef:
    """Shopify 元对象引用."""

    id: str
    handle: str
    uuid: str | None = None


def is_metaobject_id(value: str | None) -> bool:
    """是否为合法的元对象 GID."""
    return isinstance(value, str) and value.startswith(METAOBJECT_ID_PREFIX)


def is_duplicate_error(user_errors: list[dict[str, Any]]) -> bool:
    """userErrors 是否表示重复值冲突."""
    for error in user_errors:
        message = str(error.get("message", "")).lower()
        if error.get("code") == "TAKEN" or any(m in message for m in DUPLICATE_MARKERS):
            return True
    return False


class ShopifyClient:
    """Shopify 元对象客户端."""

    def __init__(
        self,
        config: ShopifyConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            timeout=config.timeout,
            transport=transport,
            headers={
                "X-Shopify-Access-Token": config.access_token,
                "Content-Type": "application/json",
            },
        )

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def _execute(
        self,
        query: str,
        variables: dict[str, Any],
        article: str | None = None,
    ) -> dict[str, Any]:
        """执行 GraphQL 请求，返回 data 部分."""
        try:
            response = await self._client.post(
                self.config.api_url,
                json={"query": query, "variables": variables},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            msg = f"Shopify 返回 HTTP {e.response.status_code}"
            raise PublishTransportError(msg, article=article, detail=e.response.text[:500]) from e
        except httpx.HTTPError as e:
            msg = f"Shopify 请求失败: {type(e).__name__}: {e}"
            raise PublishTransportError(msg, article=article) from e
        except ValueError as e:
            msg = "Shopify 响应不是合法 JSON"
            raise PublishTransportError(msg, article=article) from e

        if not isinstance(payload, dict):
            msg = f"Shopify 响应不是 JSON 对象: {type(payload).__name__}"
            raise PublishTransportError(msg, article=article, detail=response.text[:500])
        if payload.get("errors"):
            logger.error(f"GraphQL 错误: {payload['errors']}")
            msg = "Shopify GraphQL 错误"
            raise PublishValidationError(msg, article=article, detail=payload["errors"])

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            msg = f"Shopify 响应 data 不是对象: {type(data).__name__}"
            raise PublishValidationError(msg, article=article, detail=payload)
        return data

    def _unwrap(self, data: dict[str, Any], key: str, article: str | None) -> MetaobjectRef:
        """解析 metaobjectCreate / metaobjectUpdate 结果."""
        result = data.get(key) or {}
        if not isinstance(result, dict):
            msg = f"Shopify 响应 {key} 不是对象"
            raise PublishValidationError(msg, article=article, detail=data)
        user_errors = result.get("userErrors") or []
        if not isinstance(user_errors, list) or not all(isinstance(e, dict) for e in user_errors):
            msg = "Shopify userErrors 格式错误"
            raise PublishValidationError(msg, article=article, detail=result)
        if user_errors:
            if is_duplicate_error(user_errors):
                msg = "Shopify 报告值已被占用"
                raise PublishConflictError(msg, article=article, detail=user_errors)
            msg = "Shopify userErrors"
            raise PublishValidationError(msg, article=article, detail=user_errors)

        metaobject = result.get("metaobject")
        if not isinstance(metaobject, dict) or not metaobject.get("id"):
            msg = "Shopify 未返回元对象"
            raise PublishValidationError(msg, article=article, detail=result)
        return MetaobjectRef(id=metaobject["id"], handle=metaobject.get("handle", ""))

    async def create_metaobject(
        self,
        handle: str,
        fields: list[dict[str, str]],
        article: str | None = None,
    ) -> MetaobjectRef:
        """创建元对象."""
        variables = {
            "input": {
                "type": self.config.metaobject_type,
                "handle": handle,
                "capabilities": {"publishable": {"status": "ACTIVE"}},
                "fields": fields,
            }
        }
        data = await self._execute(CREATE_MUTATION, variables, article)
        return self._unwrap(data, "metaobjectCreate", article)

    async def update_metaobject(
        self,
        metaobject_id: str,
        fields: list[dict[str, str]],
        article: str | None = None,
    ) -> MetaobjectRef:
        """按 ID 更新元对象（相同内容重复调用结果一致，handle 保持不变）."""
        if not is_metaobject_id(metaobject_id):
            msg = f"无效的 Shopify 元对象 ID: {metaobject_id!r}"
            raise PublishValidationError(msg, article=article)

        data = await self._execute(
            UPDATE_MUTATION, {"id": metaobject_id, "metaobject": {"fields": fields}}, article
        )
        return self._unwrap(data, "metaobjectUpdate", article)

    async def find_metaobject_by_handle(
        self,
        handle: str,
        article: str | None = None,
    ) -> MetaobjectRef | None:
        """按 handle 查找元对象."""
        variables = {"handle": {"type": self.config.metaobject_type, "handle": handle}}
        data = await self._execute(BY_HANDLE_QUERY, variables, article)
        found = data.get("metaobjectByHandle")
        if not found:
            return None
        if not isinstance(found, dict) or not found.get("id"):
            msg = "Shopify 响应 metaobjectByHandle 格式错误"
            raise PublishValidationError(msg, article=article, detail=data)
        uuid_field = found.get("uuid") or {}
        if not isinstance(uuid_field, dict):
            uuid_field = {}
        return MetaobjectRef(id=found["id"], handle=found.get("handle", handle), uuid=uuid_field.get("value"))
