"""LLM Provider 工厂."""

from beansnews.config import Settings
from beansnews.llm.base import LLMConfig, LLMProvider
from beansnews.llm.ollama import OllamaProvider
from beansnews.llm.openai import OpenAIProvider


def create_llm_provider(settings: Settings) -> LLMProvider:
    """根据配置创建 LLM Provider."""
    if settings.llm_provider == "ollama":
        config = LLMConfig(
            model=settings.ollama_model,
            temperature=settings.llm_temperature,
        )
        return OllamaProvider(
            config=config,
            host=settings.ollama_host,
            timeout=settings.enrichment_timeout_seconds,
        )

    # 默认使用 OpenAI
    config = LLMConfig(
        model=settings.openai_model,
        temperature=settings.llm_temperature,
    )
    return OpenAIProvider(
        config=config,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.enrichment_timeout_seconds,
    )
