"""应用配置管理."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 数据库配置
    database_url: str = "sqlite+aiosqlite:///./beansnews.db"
    db_connect_attempts: int = Field(default=5, ge=1)
    db_connect_delay_seconds: float = Field(default=2.0, ge=0)
    db_connect_backoff: float = Field(default=1.0, ge=1.0)

    # LLM 配置
    llm_provider: Literal["openai", "ollama"] = "openai"
    llm_temperature: float = Field(default=0.7, ge=0, le=2)
    enrichment_timeout_seconds: float = Field(default=60.0, gt=0)

    # OpenAI 配置
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-2024-08-06"

    # Ollama 配置
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"

    # Shopify 配置
    shopify_store_domain: str = ""
    shopify_api_version: str = "2023-04"
    shopify_access_token: str = ""
    shopify_metaobject_type: str = "news_articles"
    shopify_timeout_seconds: float = Field(default=30.0, gt=0)

    # 抓取配置
    adapter_timeout_seconds: float = Field(default=120.0, gt=0)
    http_user_agent: str = "Mozilla/5.0 (compatible; BeansNewsBot/1.0)"

    # 编辑配置
    brand_suffix: str = "BEANS News"
    default_category: str = "Market"

    # 调度配置
    scheduler_enabled: bool = True
    publish_cron: str = "0 8 * * *"

    # 服务配置
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: LogLevel = "INFO"
    log_dir: str | None = None

    @field_validator("publish_cron")
    @classmethod
    def _check_cron(cls, value: str) -> str:
        if len(value.split()) != 5:
            msg = f"无效的 crontab 表达式: {value!r}"
            raise ValueError(msg)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @property
    def shopify_api_url(self) -> str:
        """Shopify Admin GraphQL 地址."""
        domain = self.shopify_store_domain.rstrip("/")
        return f"https://{domain}/admin/api/{self.shopify_api_version}/graphql.json"

    @property
    def shopify_configured(self) -> bool:
        """Shopify 是否已配置."""
        return bool(self.shopify_store_domain and self.shopify_access_token)


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()
