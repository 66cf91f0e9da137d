"""Source 数据源模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from beansnews.utils.time import utc_now


class Source(SQLModel, table=True):
    """数据源描述（由运维配置，流水线只读）."""

    __tablename__ = "sources"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(
        unique=True, index=True, description="数据源名称（仅字母）"
    )
    kind: str = Field(description="类型: rss|html|api")
    url: str = Field(description="抓取地址")
    cron_schedule: str = Field(description="crontab 表达式")
    adapter: str = Field(description="适配器注册名")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now}
    )
