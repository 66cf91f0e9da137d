"""抓取入库 - 按 link 去重，插入或部分更新."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from beansnews.core.errors import AdapterError, StorageConflictError
from beansnews.core.locks import KeyedLock
from beansnews.core.moderation import ModerationStatus
from beansnews.models.article import Article
from beansnews.models.source import Source
from beansnews.sources.base import AdapterRegistry, RawRecord
from beansnews.utils.time import to_naive_utc, utc_now

logger = logging.getLogger(__name__)

# 重新抓取时允许覆盖的字段（不含 AI / 发布 / 状态字段）
REDERIVABLE_FIELDS = (
    "title",
    "source",
    "domain",
    "published_at",
    "description",
    "image_url",
    "image_width",
    "image_height",
    "category",
)


@dataclass
class IngestResult:
    """单个数据源的入库统计."""

    source: str
    new_count: int = 0
    updated_count: int = 0
    unchanged_count: int = 0  # 已审核的文章，不覆盖
    failed_count: int = 0


def record_fields(record: RawRecord) -> dict[str, Any]:
    """RawRecord -> 可重新推导的 Article 字段."""
    published_at = to_naive_utc(record.published_at) if record.published_at else utc_now()
    return {
        "title": record.title,
        "source": record.source,
        "domain": record.domain,
        "published_at": published_at,
        "description": record.description or "",
        "image_url": record.image_url or None,
        "image_width": record.image_width or None,
        "image_height": record.image_height or None,
        "category": record.category or None,
    }


class IngestionEngine:
    """入库引擎."""

    def __init__(
        self,
        session: AsyncSession,
        registry: AdapterRegistry,
        client: httpx.AsyncClient,
        locks: KeyedLock | None = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        self.session = session
        self.registry = registry
        self.client = client
        self.locks = locks or KeyedLock()
        self.timeout_seconds = timeout_seconds

    async def ingest_by_name(self, source_name: str) -> IngestResult:
        """按名称查找数据源并入库."""
        stmt = select(Source).where(Source.name == source_name)
        result = await self.session.execute(stmt)
        source = result.scalar_one_or_none()
        if source is None:
            msg = f"数据源 '{source_name}' 不存在"
            raise AdapterError(msg, source=source_name)
        return await self.ingest(source)

    async def ingest(self, source: Source) -> IngestResult:
        """调用适配器并逐条入库."""
        # 先取出属性：回滚后 ORM 对象会过期
        name, adapter_key, url = source.name, source.adapter, source.url
        logger.info(f"开始抓取数据源: {name}")

        records = await self._scrape(name, adapter_key, url)
        result = IngestResult(source=name)

        for item in records:
            try:
                record = item if isinstance(item, RawRecord) else RawRecord.model_validate(item)
            except ValidationError as e:
                result.failed_count += 1
                logger.warning(f"[{name}] 跳过无效记录: {e.error_count()} 个字段错误")
                continue
            await self._ingest_record(record, result)

        logger.info(
            f"数据源抓取完成: {name}, 新增={result.new_count}, "
            f"更新={result.updated_count}, 失败={result.failed_count}"
        )
        return result

    async def _scrape(self, name: str, adapter_key: str, url: str) -> list[Any]:
        adapter = self.registry.resolve(name, adapter_key, url, self.client)
        try:
            records = await asyncio.wait_for(adapter.scrape(), timeout=self.timeout_seconds)
        except TimeoutError as e:
            msg = f"数据源 '{name}' 抓取超时 ({self.timeout_seconds}s)"
            raise AdapterError(msg, source=name) from e
        except AdapterError:
            raise
        except Exception as e:
            msg = f"数据源 '{name}' 抓取失败: {type(e).__name__}: {e}"
            raise AdapterError(msg, source=name) from e

        if not isinstance(records, list):
            msg = f"数据源 '{name}' 的适配器必须返回列表，实际为 {type(records).__name__}"
            raise AdapterError(msg, source=name)
        return records

    async def _ingest_record(self, record: RawRecord, result: IngestResult) -> None:
        async with self.locks.hold(record.link):
            try:
                await self._upsert(record, result)
            except IntegrityError as e:
                await self.session.rollback()
                conflict = StorageConflictError(
                    f"link 已存在: {record.link}",
                    stage="ingest",
                    detail=str(e.orig),
                )
                result.failed_count += 1
                logger.warning(f"跳过冲突记录: {conflict.message}")
            except SQLAlchemyError:
                await self.session.rollback()
                result.failed_count += 1
                logger.exception(f"保存文章失败: {record.link}")

    async def _upsert(self, record: RawRecord, result: IngestResult) -> None:
        fields = record_fields(record)
        stmt = select(Article).where(Article.link == record.link)
        existing = (await self.session.execute(stmt)).scalar_one_or_none()

        if existing is None:
            article = Article(
                link=record.link,
                moderation_status=ModerationStatus.SCRAPED,
                **fields,
            )
            self.session.add(article)
            await self.session.commit()
            result.new_count += 1
            logger.info(f"新文章已保存: {article.title} ({article.uuid})")
            return

        if existing.moderation_status != ModerationStatus.SCRAPED:
            # 已审核 / 已处理 / 已拒绝的文章不被后续抓取覆盖
            result.unchanged_count += 1
            return

        for key, value in fields.items():
            setattr(existing, key, value)
        await self.session.commit()
        result.updated_count += 1
        logger.debug(f"已更新待处理文章: {record.link}")
