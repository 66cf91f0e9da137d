"""流水线错误类型."""

from typing import Any


class PipelineError(Exception):
    """流水线错误基类，携带阶段和文章上下文."""

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        article: str | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.article = article
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        """转换为结构化错误响应."""
        return {
            "error": self.message,
            "stage": self.stage,
            "article": self.article,
            "detail": self.detail,
        }


class AdapterError(PipelineError):
    """数据源抓取或解析失败，跳过该数据源."""

    def __init__(self, message: str, *, source: str | None = None, detail: Any = None) -> None:
        super().__init__(message, stage="ingest", detail=detail)
        self.source = source

    def to_dict(self) -> dict[str, Any]:
        """转换为结构化错误响应."""
        data = super().to_dict()
        data["source"] = self.source
        return data


class StorageConflictError(PipelineError):
    """link 唯一约束冲突，跳过该记录."""


class EnrichmentBoundaryError(PipelineError):
    """AI 服务失败（超时、格式错误、拒绝）."""

    def __init__(self, message: str, *, article: str | None = None, detail: Any = None) -> None:
        super().__init__(message, stage="enrich", article=article, detail=detail)


class PublishError(PipelineError):
    """Shopify 发布失败基类."""

    def __init__(self, message: str, *, article: str | None = None, detail: Any = None) -> None:
        super().__init__(message, stage="publish", article=article, detail=detail)


class PublishValidationError(PublishError):
    """Shopify 返回 schema 错误或 userErrors，下次调度重试."""


class PublishConflictError(PublishError):
    """Shopify 报告 handle 或字段值已被占用."""


class PublishTransportError(PublishError):
    """网络错误、超时或非 2xx 响应."""


class InvalidStateError(PipelineError):
    """不允许的状态转换，不做任何修改."""


class ArticleNotFoundError(PipelineError):
    """文章不存在."""
