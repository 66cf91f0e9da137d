"""文章查询辅助函数."""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from beansnews.core.errors import ArticleNotFoundError
from beansnews.models.article import Article


async def get_article(session: AsyncSession, uuid: str) -> Article | None:
    """按 uuid 读取文章（总是从数据库刷新）."""
    stmt = (
        select(Article)
        .where(Article.uuid == uuid)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def require_article(session: AsyncSession, uuid: str, stage: str) -> Article:
    """按 uuid 读取文章，不存在时抛出 ArticleNotFoundError."""
    article = await get_article(session, uuid)
    if article is None:
        msg = "文章不存在"
        raise ArticleNotFoundError(msg, stage=stage, article=uuid)
    return article


async def get_link(session: AsyncSession, uuid: str, stage: str) -> str:
    """读取文章 link（加锁用的键）."""
    stmt = select(Article.link).where(Article.uuid == uuid)
    link = (await session.execute(stmt)).scalar_one_or_none()
    if link is None:
        msg = "文章不存在"
        raise ArticleNotFoundError(msg, stage=stage, article=uuid)
    return link


async def select_keys(
    session: AsyncSession,
    status: str,
    source_name: str | None = None,
) -> list[tuple[str, str]]:
    """按当前状态选出待处理文章的 (uuid, link)，按发布时间排序."""
    stmt = select(Article.uuid, Article.link).where(Article.moderation_status == status)
    if source_name:
        stmt = stmt.where(Article.source == source_name)
    stmt = stmt.order_by(Article.published_at, Article.id)
    result = await session.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]
