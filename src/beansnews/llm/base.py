"""LLM 抽象基类."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel


class Message(BaseModel):
    """对话消息."""

    role: str  # "system" | "user" | "assistant"
    content: str


class LLMConfig(BaseModel):
    """LLM 配置."""

    model: str
    temperature: float = 0.7
    max_tokens: int = 1000


class LLMError(Exception):
    """LLM 服务返回了不可用的结果（拒绝、空响应）."""


class LLMProvider(ABC):
    """LLM 服务提供者抽象基类."""

    def __init__(self, config: LLMConfig) -> None:
        self.config = config

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        json_schema: dict[str, Any] | None = None,
    ) -> str:
        """对话，返回完整响应；提供 json_schema 时要求结构化输出."""
        ...

    async def close(self) -> None:
        """释放连接."""
        return None
