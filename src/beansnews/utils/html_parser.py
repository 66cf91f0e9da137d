"""HTML 解析工具."""

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup


@dataclass
class PageMeta:
    """文章页面的 Open Graph / meta 信息."""

    image_url: str | None = None
    image_width: int | None = None
    image_height: int | None = None
    description: str | None = None


def html_to_text(html: str) -> str:
    """
    将 HTML 转换为纯文本.

    Args:
        html: HTML 内容

    Returns:
        提取的纯文本内容
    """
    if not html:
        return ""

    # 使用 BeautifulSoup 解析
    soup = BeautifulSoup(html, "lxml")

    # 移除 script 和 style 标签
    for element in soup(["script", "style", "nav", "footer", "header"]):
        element.decompose()

    # 获取文本，合并为单段
    text = soup.get_text(separator=" ")
    return re.sub(r"\s+", " ", text).strip()


def extract_first_image(html: str) -> str | None:
    """
    提取 HTML 中的第一张图片 URL.

    Args:
        html: HTML 内容

    Returns:
        图片 URL 或 None
    """
    if not html:
        return None

    soup = BeautifulSoup(html, "lxml")
    img = soup.find("img")

    if img and img.get("src"):
        src = img["src"]
        # 确保是字符串
        if isinstance(src, list):
            src = src[0] if src else None
        return src if src else None

    return None


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if not tag:
        return None
    content = tag.get("content")
    if isinstance(content, list):
        content = content[0] if content else None
    return content.strip() if content and content.strip() else None


def _to_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def extract_page_meta(html: str) -> PageMeta:
    """提取页面的 og:image（含宽高）和 meta description."""
    if not html:
        return PageMeta()

    soup = BeautifulSoup(html, "lxml")
    return PageMeta(
        image_url=_meta_content(soup, property="og:image"),
        image_width=_to_int(_meta_content(soup, property="og:image:width")),
        image_height=_to_int(_meta_content(soup, property="og:image:height")),
        description=_meta_content(soup, name="description")
        or _meta_content(soup, property="og:description"),
    )
