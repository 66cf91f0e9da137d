"""数据模型."""

from beansnews.models.article import Article
from beansnews.models.database import get_session, init_db
from beansnews.models.run_log import RunLog
from beansnews.models.source import Source

__all__ = [
    "Article",
    "RunLog",
    "Source",
    "get_session",
    "init_db",
]
