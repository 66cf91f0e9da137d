"""Article 文章模型."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from beansnews.utils.time import utc_now


def _new_uuid() -> str:
    return str(uuid4())


class Article(SQLModel, table=True):
    """新闻文章."""

    __tablename__ = "articles"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    uuid: str = Field(
        default_factory=_new_uuid, unique=True, index=True, description="稳定唯一标识"
    )
    link: str = Field(unique=True, index=True, description="原文链接（去重键）")
    source: str = Field(index=True, description="数据源名称")
    domain: str = Field(description="原文域名")
    published_at: datetime = Field(default_factory=utc_now, description="发布时间")

    title: str = Field(description="标题")
    description: str | None = Field(default=None, description="原始描述")
    improved_description: str | None = Field(default=None, description="AI 改写描述")
    image_url: str | None = Field(default=None, description="图片链接")
    image_width: int | None = Field(default=None)
    image_height: int | None = Field(default=None)
    category: str | None = Field(default=None, description="编辑分类")
    geotag: str | None = Field(default=None, description="国家")
    tags: list[str] | None = Field(
        default=None, sa_column=Column(JSON), description="标签（最多 2 个）"
    )
    seo_title: str | None = Field(default=None)
    seo_description: str | None = Field(default=None)

    moderation_status: str = Field(
        default="scraped",
        index=True,
        description="审核状态: scraped|rejected|aiProcessed|sentToShopify",
    )
    shopify_metaobject_id: str | None = Field(default=None, description="Shopify 元对象 ID")
    shopify_handle: str | None = Field(default=None, description="Shopify handle")

    process_error: str | None = Field(default=None, description="最近一次处理错误")
    process_stage: str | None = Field(default=None, description="失败阶段: ingest|enrich|publish")

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now}
    )
