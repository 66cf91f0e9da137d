"""核心业务逻辑."""

from beansnews.core.errors import (
    AdapterError,
    ArticleNotFoundError,
    EnrichmentBoundaryError,
    InvalidStateError,
    PipelineError,
    PublishConflictError,
    PublishError,
    PublishTransportError,
    PublishValidationError,
    StorageConflictError,
)
from beansnews.core.moderation import ModerationStatus

__all__ = [
    "AdapterError",
    "ArticleNotFoundError",
    "EnrichmentBoundaryError",
    "InvalidStateError",
    "ModerationStatus",
    "PipelineError",
    "PublishConflictError",
    "PublishError",
    "PublishTransportError",
    "PublishValidationError",
    "StorageConflictError",
]
