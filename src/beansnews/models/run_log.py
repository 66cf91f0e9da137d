"""RunLog 运行记录模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from beansnews.utils.time import utc_now


class RunLog(SQLModel, table=True):
    """流水线阶段运行记录."""

    __tablename__ = "run_logs"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    stage: str = Field(description="阶段: ingest|enrich|publish")
    source: str | None = Field(default=None, description="数据源（全局运行为空）")
    trigger: str = Field(default="manual", description="触发方式: schedule|manual")
    status: str = Field(default="running", description="状态: running|success|failed")
    new_count: int = Field(default=0)
    updated_count: int = Field(default=0)
    processed_count: int = Field(default=0)
    failed_count: int = Field(default=0)
    error_message: str | None = Field(default=None)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = Field(default=None)
