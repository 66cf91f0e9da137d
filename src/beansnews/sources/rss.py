"""RSS 数据源适配器."""

import asyncio
import logging
from datetime import datetime
from typing import Any

import feedparser
import httpx
from pydantic import ValidationError

from beansnews.sources.base import RawRecord, SourceAdapter, domain_of
from beansnews.sources.images import find_image
from beansnews.utils.html_parser import extract_page_meta, html_to_text

logger = logging.getLogger(__name__)


def _entry_published(entry: Any) -> datetime | None:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime(*parsed[:6])


def _entry_description(entry: Any) -> str:
    summary = entry.get("summary")
    if summary:
        return html_to_text(summary)
    for content in entry.get("content") or []:
        text = html_to_text(content.get("value", ""))
        if text:
            return text
    return ""


class RssAdapter(SourceAdapter):
    """通用 RSS / Atom 适配器."""

    async def scrape(self) -> list[RawRecord]:
        """抓取并解析 Feed."""
        response = await self.client.get(self.url)
        response.raise_for_status()

        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            msg = f"无法解析 Feed: {feed.get('bozo_exception')}"
            raise ValueError(msg)

        records: list[RawRecord] = []
        for entry in feed.entries:
            try:
                records.append(self.parse_entry(entry))
            except (ValidationError, ValueError, KeyError) as e:
                logger.warning(f"[{self.name}] 跳过无法解析的条目 {entry.get('link')}: {e}")

        logger.debug(f"[{self.name}] Feed 解析完成: {len(records)} 条")
        return records

    def parse_entry(self, entry: Any) -> RawRecord:
        """将 feedparser 条目转换为 RawRecord."""
        link = entry.get("link")
        if not link:
            msg = "条目缺少 link"
            raise ValueError(msg)

        image = find_image(entry)
        return RawRecord(
            title=(entry.get("title") or "").strip() or "Untitled",
            link=link,
            source=self.name,
            domain=domain_of(link),
            published_at=_entry_published(entry),
            description=_entry_description(entry),
            image_url=image.url if image else None,
            image_width=image.width if image else None,
            image_height=image.height if image else None,
        )


class OpenGraphRssAdapter(RssAdapter):
    """RSS + 文章页面 Open Graph 信息（图片优先取 og:image）."""

    page_concurrency = 4

    async def scrape(self) -> list[RawRecord]:
        """抓取 Feed 后逐篇补充页面信息."""
        records = await super().scrape()
        semaphore = asyncio.Semaphore(self.page_concurrency)

        async def enrich(record: RawRecord) -> RawRecord:
            async with semaphore:
                return await self._with_page_meta(record)

        return list(await asyncio.gather(*(enrich(r) for r in records)))

    async def _with_page_meta(self, record: RawRecord) -> RawRecord:
        try:
            response = await self.client.get(record.link)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[{self.name}] 页面抓取失败，使用 Feed 数据: {record.link} - {e}")
            return record

        meta = extract_page_meta(response.text)
        updates: dict[str, Any] = {}
        if meta.image_url:
            updates.update(
                image_url=meta.image_url,
                image_width=meta.image_width,
                image_height=meta.image_height,
            )
        if not record.description and meta.description:
            updates["description"] = meta.description
        return record.model_copy(update=updates) if updates else record
