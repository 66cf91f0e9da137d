"""LLM 抽象层."""

from beansnews.llm.base import LLMConfig, LLMError, LLMProvider, Message
from beansnews.llm.enrichment import ArticleEnricher, EnrichmentResult
from beansnews.llm.factory import create_llm_provider
from beansnews.llm.ollama import OllamaProvider
from beansnews.llm.openai import OpenAIProvider

__all__ = [
    "ArticleEnricher",
    "EnrichmentResult",
    "LLMConfig",
    "LLMError",
    "LLMProvider",
    "Message",
    "OllamaProvider",
    "OpenAIProvider",
    "create_llm_provider",
]
