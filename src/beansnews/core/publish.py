"""Shopify 发布同步 - 把 aiProcessed 文章幂等地同步为 Shopify 元对象."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beansnews.core.editing import apply_edits
from beansnews.core.errors import (
    InvalidStateError,
    PublishConflictError,
    PublishError,
    PublishTransportError,
)
from beansnews.core.locks import KeyedLock
from beansnews.core.moderation import ModerationStatus, apply_transition, ensure_publishable
from beansnews.core.repository import get_article, get_link, require_article, select_keys
from beansnews.models.article import Article
from beansnews.shopify.client import MetaobjectRef, ShopifyClient, is_metaobject_id
from beansnews.shopify.mapping import build_fields, compute_handle
from beansnews.utils.time import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

CREATED = "created"
UPDATED = "updated"
CONFLICT = "conflict"


@dataclass
class PublishFailure:
    """单篇文章发布失败."""

    uuid: str
    title: str
    error: str


@dataclass
class PublishOutcome:
    """单篇文章发布结果."""

    action: str  # created / updated / conflict
    metaobject_id: str | None = None
    handle: str | None = None


@dataclass
class PublishResult:
    """批量发布统计."""

    created: int = 0
    updated: int = 0
    conflicts: int = 0
    skipped: int = 0
    failed: list[PublishFailure] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def count(self, outcome: PublishOutcome) -> None:
        if outcome.action == CREATED:
            self.created += 1
        elif outcome.action == UPDATED:
            self.updated += 1
        else:
            self.conflicts += 1


class PublishSync:
    """Shopify 发布同步器."""

    def __init__(
        self,
        session: AsyncSession,
        client: ShopifyClient,
        brand_suffix: str = "BEANS News",
        default_category: str = "Market",
        timeout_seconds: float = 30.0,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session = session
        self.client = client
        self.brand_suffix = brand_suffix
        self.default_category = default_category
        self.timeout_seconds = timeout_seconds
        self.locks = locks or KeyedLock()
        self.clock = clock

    async def publish(self, source_name: str | None = None) -> PublishResult:
        """发布所有 aiProcessed 文章（可按数据源过滤）."""
        result = PublishResult()
        keys = await select_keys(self.session, ModerationStatus.AI_PROCESSED, source_name)
        if not keys:
            logger.info(f"没有待发布的文章 (source={source_name or '*'})")
            return result

        logger.info(f"开始发布到 Shopify: {len(keys)} 篇 (source={source_name or '*'})")
        for uuid, link in keys:
            title = ""
            try:
                async with self.locks.hold(link):
                    article = await get_article(self.session, uuid)
                    if article is None or article.moderation_status != ModerationStatus.AI_PROCESSED:
                        result.skipped += 1
                        logger.info(f"跳过发布 (状态已变化): {uuid}")
                        continue
                    title = article.title
                    try:
                        outcome = await self._sync(article)
                    except PublishError as e:
                        await self._record_failure(article, e)
                        result.failed.append(PublishFailure(uuid=uuid, title=title, error=e.message))
                        continue
                    except SQLAlchemyError:
                        raise
                    except Exception as e:
                        error = await self._recover(uuid, e)
                        result.failed.append(PublishFailure(uuid=uuid, title=title, error=error.message))
                        continue
            except SQLAlchemyError as e:
                await self.session.rollback()
                result.failed.append(PublishFailure(uuid=uuid, title=title, error=str(e)))
                logger.exception(f"发布结果保存失败: {uuid}")
                continue
            except Exception as e:
                await self.session.rollback()
                error_text = f"{type(e).__name__}: {e}"
                result.failed.append(PublishFailure(uuid=uuid, title=title, error=error_text))
                logger.exception(f"发布失败，跳过文章: {uuid}")
                continue
            result.count(outcome)

        logger.info(
            f"发布完成: 新建={result.created}, 更新={result.updated}, "
            f"冲突={result.conflicts}, 跳过={result.skipped}, 失败={result.failed_count}"
        )
        return result

    async def publish_one(self, uuid: str) -> PublishOutcome:
        """推送单篇文章（aiProcessed 或 sentToShopify），失败时抛出 PublishError."""
        link = await get_link(self.session, uuid, stage="publish")
        async with self.locks.hold(link):
            article = await require_article(self.session, uuid, stage="publish")
            ensure_publishable(article)
            try:
                return await self._sync(article)
            except PublishError as e:
                await self._record_failure(article, e)
                raise
            except Exception as e:
                raise await self._recover(uuid, e) from e

    async def edit_and_resync(self, uuid: str, changes: dict[str, Any]) -> Article:
        """修改已发布文章并同步到 Shopify 上已有的元对象."""
        link = await get_link(self.session, uuid, stage="publish")
        async with self.locks.hold(link):
            article = await require_article(self.session, uuid, stage="publish")
            if article.moderation_status != ModerationStatus.SENT_TO_SHOPIFY:
                msg = "只有已发送到 Shopify 的文章才能在 Shopify 上编辑"
                raise InvalidStateError(
                    msg,
                    stage="publish",
                    article=uuid,
                    detail={"status": article.moderation_status},
                )
            if not is_metaobject_id(article.shopify_metaobject_id):
                msg = "文章没有有效的 Shopify 元对象 ID"
                raise InvalidStateError(
                    msg,
                    stage="publish",
                    article=uuid,
                    detail={"shopify_metaobject_id": article.shopify_metaobject_id},
                )
            if changes.get("moderation_status") not in (None, ModerationStatus.SENT_TO_SHOPIFY):
                msg = "同步编辑不能修改审核状态"
                raise InvalidStateError(msg, stage="publish", article=uuid)

            edits = {k: v for k, v in changes.items() if k != "moderation_status"}
            changed = apply_edits(article, edits, stage="publish")
            # 先保存本地修改，Shopify 失败时下次同步仍会带上
            await self.session.commit()

            fields = build_fields(article, self.brand_suffix, self.default_category, self.clock())
            try:
                ref = await self._call(
                    self.client.update_metaobject(article.shopify_metaobject_id, fields, uuid),
                    uuid,
                )
            except PublishError as e:
                await self._record_failure(article, e)
                raise
            except Exception as e:
                raise await self._recover(uuid, e) from e

            if ref.handle:
                article.shopify_handle = ref.handle
            article.process_error = None
            article.process_stage = None
            await self.session.commit()
            logger.info(f"Shopify 文章已更新: {article.title} (修改字段: {', '.join(changed) or '无'})")
            return article

    async def _sync(self, article: Article) -> PublishOutcome:
        """创建或更新元对象并推进到 sentToShopify，调用方持有文章锁."""
        uuid = article.uuid
        title = article.title
        now = self.clock()
        fields = build_fields(article, self.brand_suffix, self.default_category, now)

        if article.shopify_metaobject_id:
            ref = await self._call(
                self.client.update_metaobject(article.shopify_metaobject_id, fields, uuid), uuid
            )
            if ref.handle:
                article.shopify_handle = ref.handle
            outcome = PublishOutcome(UPDATED, ref.id, article.shopify_handle)
            logger.info(f"Shopify 元对象已更新: {title} ({ref.id})")
        else:
            handle = compute_handle(title, article.published_at, now)
            try:
                ref = await self._call(self.client.create_metaobject(handle, fields, uuid), uuid)
            except PublishConflictError as e:
                logger.warning(f"Shopify 报告重复值，视为已发布: {title} - {e.message}")
                adopted = await self._adopt(uuid, title, handle)
                if adopted is not None:
                    article.shopify_metaobject_id = adopted.id
                    article.shopify_handle = adopted.handle
                outcome = PublishOutcome(CONFLICT, article.shopify_metaobject_id, article.shopify_handle)
            else:
                article.shopify_metaobject_id = ref.id
                article.shopify_handle = ref.handle or handle
                outcome = PublishOutcome(CREATED, ref.id, article.shopify_handle)
                logger.info(f"Shopify 元对象已创建: {title} ({ref.id})")

        apply_transition(article, ModerationStatus.SENT_TO_SHOPIFY, stage="publish")
        article.process_error = None
        article.process_stage = None
        await self.session.commit()
        return outcome

    async def _adopt(self, uuid: str, title: str, handle: str) -> MetaobjectRef | None:
        """按 handle 查找已有元对象，仅当其 uuid 字段与文章一致时采用."""
        try:
            found = await self._call(self.client.find_metaobject_by_handle(handle, uuid), uuid)
        except PublishError as e:
            logger.warning(f"查找已有元对象失败: {title} - {e.message}")
            return None

        if found is None:
            logger.warning(f"未找到 handle 对应的元对象，文章将没有 Shopify ID: {handle}")
            return None
        if found.uuid != uuid:
            logger.warning(
                f"handle 已被其他文章占用 (uuid={found.uuid})，文章将没有 Shopify ID: {handle}"
            )
            return None

        logger.info(f"采用已有 Shopify 元对象: {title} ({found.id})")
        return found

    async def _call(self, call: Awaitable[T], uuid: str) -> T:
        """外部调用统一加超时."""
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except TimeoutError as e:
            msg = f"Shopify 调用超时 ({self.timeout_seconds}s)"
            raise PublishTransportError(msg, article=uuid) from e

    async def _recover(self, uuid: str, exc: Exception) -> PublishError:
        """意外错误：回滚未提交的修改，重新读取文章并记录失败."""
        logger.exception(f"发布出现意外错误: {uuid}")
        await self.session.rollback()
        error = PublishError(f"发布出现意外错误: {type(exc).__name__}: {exc}", article=uuid)
        article = await get_article(self.session, uuid)
        if article is not None:
            await self._record_failure(article, error)
        return error

    async def _record_failure(self, article: Article, error: PublishError) -> None:
        """记录发布失败，状态保持不变，下次调度重试."""
        logger.error(f"发布失败: {article.title} - {error.message}")
        article.process_error = error.message[:500]
        article.process_stage = "publish"
        await self.session.commit()
