"""Article -> Shopify 元对象字段映射."""

import re
from datetime import date, datetime

from beansnews.models.article import Article
from beansnews.utils.time import utc_now

# 字段顺序固定，新增字段只能追加
FIELD_KEYS = (
    "uuid",
    "publishdate",
    "title",
    "description",
    "url",
    "domain",
    "image",
    "tags",
    "attribution",
    "geotag",
    "category",
    "seotitle",
    "seodescription",
)

HANDLE_SLUG_LENGTH = 50
_REVERSE_BASE = 99999999


def reverse_date_token(day: date) -> str:
    """倒序日期标记：越新的日期值越小，按 handle 排序时新文章在前."""
    stamp = int(day.strftime("%Y%m%d"))
    return f"{_REVERSE_BASE - stamp:08d}"


def slugify(title: str, max_length: int = HANDLE_SLUG_LENGTH) -> str:
    """小写，非字母数字串折叠为单个 '-'."""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    slug = slug[:max_length].strip("-")
    return slug or "untitled"


def compute_handle(title: str, published_at: datetime | None, now: datetime | None = None) -> str:
    """计算确定性的 handle: <倒序日期>-<标题 slug>."""
    moment = published_at or now or utc_now()
    return f"{reverse_date_token(moment.date())}-{slugify(title)}"


def _iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        return moment.isoformat(timespec="milliseconds") + "Z"
    return moment.isoformat(timespec="milliseconds")


def build_fields(
    article: Article,
    brand_suffix: str = "BEANS News",
    default_category: str = "Market",
    now: datetime | None = None,
) -> list[dict[str, str]]:
    """构建元对象字段列表，每个字段都有兜底值."""
    title = article.title or "Untitled"
    values = {
        "uuid": article.uuid or "",
        "publishdate": _iso(article.published_at or now or utc_now()),
        "title": title,
        "description": article.improved_description or "No description available.",
        "url": article.link or "",
        "domain": article.domain or "unknown",
        "image": article.image_url or "",
        "tags": ", ".join(article.tags) if article.tags else "",
        "attribution": article.source or "Unknown Source",
        "geotag": article.geotag or "",
        "category": article.category or default_category,
        "seotitle": article.seo_title or f"{title} | {brand_suffix}",
        "seodescription": article.seo_description or "",
    }
    return [{"key": key, "value": values[key]} for key in FIELD_KEYS]
