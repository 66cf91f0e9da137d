"""API 请求模型."""

from datetime import datetime
from typing import Any, Literal

from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from beansnews.utils.time import to_naive_utc

SOURCE_NAME_PATTERN = r"^[A-Za-z]+$"


class ArticleUpdate(BaseModel):
    """文章编辑内容，只包含可编辑字段."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    improved_description: str | None = None
    source: str | None = None
    domain: str | None = None
    published_at: datetime | None = None
    image_url: str | None = None
    image_width: int | None = Field(default=None, ge=0)
    image_height: int | None = Field(default=None, ge=0)
    category: str | None = None
    geotag: str | None = None
    tags: list[str] | None = None
    seo_title: str | None = None
    seo_description: str | None = None
    moderation_status: Literal["scraped", "rejected", "aiProcessed", "sentToShopify"] | None = None

    @model_validator(mode="after")
    def _required_not_null(self) -> "ArticleUpdate":
        for name in ("title", "published_at"):
            if name in self.model_fields_set and getattr(self, name) is None:
                msg = f"{name} 不能为空"
                raise ValueError(msg)
        return self

    @field_validator("published_at")
    @classmethod
    def _naive_utc(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value) if value else value

    def changes(self) -> dict[str, Any]:
        """只返回请求中显式提供的字段."""
        return self.model_dump(exclude_unset=True)


class BulkEditRequest(BaseModel):
    """批量编辑请求."""

    uuids: list[str] = Field(min_length=1)
    changes: ArticleUpdate


class SourceCreate(BaseModel):
    """新建数据源."""

    name: str = Field(pattern=SOURCE_NAME_PATTERN, description="仅字母")
    kind: Literal["rss", "html", "api"] = "rss"
    url: str = Field(min_length=1)
    cron_schedule: str
    adapter: str | None = Field(default=None, description="适配器注册名，默认与 kind 相同")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            msg = "url 必须以 http:// 或 https:// 开头"
            raise ValueError(msg)
        return value

    @field_validator("cron_schedule")
    @classmethod
    def _check_cron(cls, value: str) -> str:
        value = value.strip()
        if len(value.split()) != 5:
            msg = "cron_schedule 必须是 5 段 crontab 表达式"
            raise ValueError(msg)
        CronTrigger.from_crontab(value)
        return value

    @property
    def adapter_key(self) -> str:
        return self.adapter or self.kind
