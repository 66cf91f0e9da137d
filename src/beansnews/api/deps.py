"""API 公共依赖."""

from typing import Any

from fastapi import Request

from beansnews.core.pipeline import Pipeline
from beansnews.models.article import Article


def get_pipeline(request: Request) -> Pipeline:
    """从应用状态获取流水线."""
    return request.app.state.pipeline


def article_payload(article: Article) -> dict[str, Any]:
    """文章 -> JSON 响应."""
    return article.model_dump(mode="json")
