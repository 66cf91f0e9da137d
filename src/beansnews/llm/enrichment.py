"""文章 AI 增强：分类、国家、标签、改写描述、SEO 描述."""

import asyncio
import json
import logging
import re
from typing import Any

from pydantic import BaseModel, field_validator

from beansnews.core.errors import EnrichmentBoundaryError
from beansnews.llm.base import LLMProvider, Message

logger = logging.getLogger(__name__)

CATEGORIES = (
    "Sustainability",
    "Design",
    "Origin",
    "Culture",
    "Market",
    "Innovation",
    "Roasting",
    "Competition",
    "Recipes",
)

MAX_IMPROVED_DESCRIPTION = 300
MAX_SEO_DESCRIPTION = 150
MAX_TAGS = 2
TERMINAL_PUNCTUATION = (".", "!", "?")

ENRICHMENT_SCHEMA: dict[str, Any] = {
    "title": "article_processing",
    "type": "object",
    "properties": {
        "category": {"type": "string", "enum": list(CATEGORIES)},
        "geotag": {"type": ["string", "null"]},
        "tags": {"type": ["array", "null"], "items": {"type": "string"}},
        "improvedDescription": {"type": "string"},
        "seoDescription": {"type": "string"},
    },
    "required": ["category", "geotag", "tags", "improvedDescription", "seoDescription"],
    "additionalProperties": False,
}

SYSTEM_PROMPT = "You are a helpful assistant that processes coffee news articles."

USER_PROMPT_TEMPLATE = """Analyse this coffee news article using its title and description. Focus on the
article's overall purpose rather than incidental names or keywords.

- category: exactly one of {categories}.
  Sustainability = environmental impact and green practices; Design = aesthetics,
  packaging, equipment design; Origin = growing regions and producers; Culture =
  coffee scenes and communities; Market = trends, sales, consumer data;
  Innovation = studies, new techniques; Roasting = roasters and roasting craft;
  Competition = contests and events; Recipes = brew guides and recipes.
- geotag: one official country name in Title Case (no regions, cities or
  continents), or null when no country is clearly mentioned.
- tags: at most two unique Title Case tags naming people, cafes, roasteries or
  companies that are clearly mentioned; null when nothing qualifies. No generic
  words such as "coffee".
- improvedDescription: a refined sentence taken from the article, at most 300
  characters, ending with a full stop. Never write "This article is about".
- seoDescription: a concise SEO description of at most 150 characters without dashes.

Title: "{title}"
Description: "{description}"
Image: "{image_url}"
"""


def ensure_terminal_punctuation(text: str) -> str:
    """去除首尾空白，必要时追加句号."""
    text = text.strip()
    if text and not text.endswith(TERMINAL_PUNCTUATION):
        text += "."
    return text


def truncate(text: str, limit: int, marker: str = "...") -> str:
    """超过 limit 时截断并追加省略标记，结果长度不超过 limit."""
    if len(text) <= limit:
        return text
    return text[: limit - len(marker)].rstrip() + marker


def normalize_improved_description(text: str) -> str:
    """改写描述：≤300 字符，以终止标点结尾."""
    text = text.strip()
    if len(text) > MAX_IMPROVED_DESCRIPTION:
        text = truncate(text, MAX_IMPROVED_DESCRIPTION - 1, marker="")
    return ensure_terminal_punctuation(text)


def normalize_seo_description(text: str) -> str:
    """SEO 描述：连字符替换为空格，超过 150 字符时截断."""
    text = re.sub(r"[-–—]", " ", text or "")
    text = re.sub(r"\s{2,}", " ", text).strip()
    return truncate(text, MAX_SEO_DESCRIPTION)


def normalize_tags(tags: list[str] | None) -> list[str] | None:
    """去重（保持顺序），最多保留 2 个，空列表返回 None."""
    if not tags:
        return None
    unique: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in unique:
            unique.append(tag)
    return unique[:MAX_TAGS] or None


class EnrichmentResult(BaseModel):
    """AI 增强结果（已规范化）."""

    category: str
    geotag: str | None = None
    tags: list[str] | None = None
    improved_description: str
    seo_description: str

    @field_validator("category")
    @classmethod
    def _check_category(cls, value: str) -> str:
        if value not in CATEGORIES:
            msg = f"未知分类: {value}"
            raise ValueError(msg)
        return value

    @field_validator("geotag")
    @classmethod
    def _blank_geotag(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, value: list[str] | None) -> list[str] | None:
        return normalize_tags(value)

    @field_validator("improved_description")
    @classmethod
    def _check_improved(cls, value: str) -> str:
        value = normalize_improved_description(value)
        if not value:
            msg = "improvedDescription 不能为空"
            raise ValueError(msg)
        return value

    @field_validator("seo_description")
    @classmethod
    def _check_seo(cls, value: str) -> str:
        return normalize_seo_description(value)


class ArticleEnricher:
    """AI 增强边界：请求模型并校验结构化结果."""

    def __init__(self, provider: LLMProvider, timeout_seconds: float = 60.0) -> None:
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    async def enrich(
        self,
        title: str,
        description: str | None,
        image_url: str | None,
        article: str | None = None,
    ) -> EnrichmentResult:
        """请求 AI 增强；任何失败都转换为 EnrichmentBoundaryError."""
        messages = self._build_messages(title, description, image_url)
        try:
            response = await asyncio.wait_for(
                self.provider.chat(messages, json_schema=ENRICHMENT_SCHEMA),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as e:
            msg = f"AI 服务超时 ({self.timeout_seconds}s)"
            raise EnrichmentBoundaryError(msg, article=article) from e
        except Exception as e:
            msg = f"AI 服务调用失败: {type(e).__name__}: {e}"
            raise EnrichmentBoundaryError(msg, article=article) from e

        return self._parse_response(response, article)

    def _build_messages(
        self,
        title: str,
        description: str | None,
        image_url: str | None,
    ) -> list[Message]:
        """构建对话消息."""
        user_content = USER_PROMPT_TEMPLATE.format(
            categories=", ".join(CATEGORIES),
            title=title,
            description=description or "No description provided.",
            image_url=image_url or "No image provided.",
        )
        return [
            Message(role="system", content=SYSTEM_PROMPT),
            Message(role="user", content=user_content),
        ]

    def _parse_response(self, response: str, article: str | None) -> EnrichmentResult:
        """解析 LLM 响应，任何解析或校验错误都转换为 EnrichmentBoundaryError."""
        if not isinstance(response, str):
            msg = f"AI 响应类型错误: {type(response).__name__}"
            raise EnrichmentBoundaryError(msg, article=article)
        response = response.strip()

        # 移除可能的 markdown 代码块标记
        if response.startswith("```json"):
            response = response[7:]
        if response.startswith("```"):
            response = response[3:]
        if response.endswith("```"):
            response = response[:-3]
        response = response.strip()

        try:
            data = json.loads(response)
            if not isinstance(data, dict):
                msg = "响应不是 JSON 对象"
                raise ValueError(msg)
            return EnrichmentResult(
                category=data.get("category"),
                geotag=data.get("geotag"),
                tags=data.get("tags"),
                improved_description=data.get("improvedDescription") or "",
                seo_description=data.get("seoDescription") or "",
            )
        except Exception as e:
            # 嵌套过深的 JSON 会抛出 RecursionError
            msg = f"AI 响应格式错误: {type(e).__name__}: {e}"
            raise EnrichmentBoundaryError(msg, article=article, detail=response[:500]) from e
