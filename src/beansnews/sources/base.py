"""数据源适配器抽象和注册表."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from datetime import datetime
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, Field, field_validator

from beansnews.core.errors import AdapterError


class RawRecord(BaseModel):
    """适配器输出的标准化原始文章."""

    title: str = Field(min_length=1)
    link: str = Field(min_length=1)
    source: str
    domain: str
    published_at: datetime | None = None
    description: str | None = None
    image_url: str | None = None
    image_width: int | None = None
    image_height: int | None = None
    category: str | None = None

    @field_validator("title", "link")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "不能为空"
            raise ValueError(msg)
        return value


def domain_of(link: str) -> str:
    """提取链接的主机名."""
    return urlparse(link).hostname or "unknown"


class SourceAdapter(ABC):
    """数据源适配器基类.

    ``scrape()`` 返回尽力而为的记录列表：单条记录解析失败只跳过该条，
    整个数据源不可用时才抛出异常。
    """

    def __init__(self, name: str, url: str, client: httpx.AsyncClient) -> None:
        self.name = name
        self.url = url
        self.client = client

    @abstractmethod
    async def scrape(self) -> list[RawRecord]:
        """抓取数据源，返回标准化记录."""
        ...


AdapterFactory = Callable[[str, str, httpx.AsyncClient], SourceAdapter]


class AdapterRegistry:
    """适配器静态注册表：适配器名 -> 工厂."""

    def __init__(self) -> None:
        self._factories: dict[str, AdapterFactory] = {}

    def register(self, key: str, factory: AdapterFactory) -> None:
        """注册适配器."""
        if key in self._factories:
            msg = f"适配器 '{key}' 已注册"
            raise ValueError(msg)
        self._factories[key] = factory

    def keys(self) -> list[str]:
        """已注册的适配器名."""
        return sorted(self._factories)

    def __contains__(self, key: object) -> bool:
        return key in self._factories

    def resolve(self, name: str, adapter: str, url: str, client: httpx.AsyncClient) -> SourceAdapter:
        """为数据源创建适配器实例."""
        factory = self._factories.get(adapter)
        if factory is None:
            msg = f"数据源 '{name}' 的适配器 '{adapter}' 未注册"
            raise AdapterError(msg, source=name, detail={"registered": self.keys()})
        if not url:
            msg = f"数据源 '{name}' 未配置 URL"
            raise AdapterError(msg, source=name)
        return factory(name, url, client)

    def validate(self, sources: Iterable[tuple[str, str]]) -> None:
        """启动时校验 (数据源名, 适配器名)，有缺失时立即失败."""
        missing = [(name, adapter) for name, adapter in sources if adapter not in self]
        if missing:
            names = ", ".join(f"{name}->{adapter}" for name, adapter in missing)
            msg = f"以下数据源没有注册的适配器: {names}"
            raise AdapterError(msg, detail={"registered": self.keys()})
