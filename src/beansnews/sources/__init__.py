"""数据源适配器."""

from beansnews.sources.base import AdapterRegistry, RawRecord, SourceAdapter
from beansnews.sources.rss import OpenGraphRssAdapter, RssAdapter


def default_registry() -> AdapterRegistry:
    """内置适配器注册表."""
    registry = AdapterRegistry()
    registry.register("rss", RssAdapter)
    registry.register("rss_og", OpenGraphRssAdapter)
    return registry


__all__ = [
    "AdapterRegistry",
    "OpenGraphRssAdapter",
    "RawRecord",
    "RssAdapter",
    "SourceAdapter",
    "default_registry",
]
