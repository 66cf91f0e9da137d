"""RSS 条目图片提取策略.

按顺序尝试，返回第一个有效结果；策略之间不共享状态。
"""

from collections.abc import Callable
from typing import Any, NamedTuple

from beansnews.utils.html_parser import extract_first_image


class ImageInfo(NamedTuple):
    """图片地址和尺寸."""

    url: str
    width: int | None = None
    height: int | None = None


ImageStrategy = Callable[[Any], ImageInfo | None]


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _is_valid_url(url: Any) -> bool:
    return isinstance(url, str) and url.startswith(("http://", "https://"))


def from_media_content(entry: Any) -> ImageInfo | None:
    """media:content 中第一张图片."""
    for media in entry.get("media_content") or []:
        url = media.get("url")
        medium = media.get("medium") or media.get("type", "")
        if _is_valid_url(url) and (not medium or "image" in medium):
            return ImageInfo(url, _int_or_none(media.get("width")), _int_or_none(media.get("height")))
    return None


def from_media_thumbnail(entry: Any) -> ImageInfo | None:
    """media:thumbnail."""
    for thumb in entry.get("media_thumbnail") or []:
        url = thumb.get("url")
        if _is_valid_url(url):
            return ImageInfo(url, _int_or_none(thumb.get("width")), _int_or_none(thumb.get("height")))
    return None


def from_enclosure(entry: Any) -> ImageInfo | None:
    """image/* 类型的 enclosure."""
    for link in entry.get("links") or []:
        if link.get("rel") == "enclosure" and str(link.get("type", "")).startswith("image/"):
            url = link.get("href")
            if _is_valid_url(url):
                return ImageInfo(url)
    return None


def from_content_html(entry: Any) -> ImageInfo | None:
    """正文或摘要 HTML 中的第一个 <img>."""
    candidates = [c.get("value", "") for c in entry.get("content") or []]
    candidates.append(entry.get("summary", ""))
    for html in candidates:
        url = extract_first_image(html)
        if _is_valid_url(url):
            return ImageInfo(url)
    return None


DEFAULT_STRATEGIES: tuple[ImageStrategy, ...] = (
    from_media_content,
    from_media_thumbnail,
    from_enclosure,
    from_content_html,
)


def find_image(entry: Any, strategies: tuple[ImageStrategy, ...] = DEFAULT_STRATEGIES) -> ImageInfo | None:
    """依次执行策略，返回第一个有效图片."""
    for strategy in strategies:
        image = strategy(entry)
        if image is not None:
            return image
    return None
