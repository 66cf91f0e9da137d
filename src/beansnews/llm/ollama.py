"""Ollama LLM Provider."""

from typing import Any

import httpx

from beansnews.llm.base import LLMConfig, LLMProvider, Message


class OllamaProvider(LLMProvider):
    """Ollama 本地模型 Provider."""

    def __init__(
        self,
        config: LLMConfig,
        host: str = "http://localhost:11434",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(config)
        self.host = host.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def chat(
        self,
        messages: list[Message],
        json_schema: dict[str, Any] | None = None,
    ) -> str:
        """对话，返回完整响应."""
        url = f"{self.host}/api/chat"
        payload: dict[str, Any] = {
            "model": self.config.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "stream": False,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }
        if json_schema is not None:
            payload["format"] = json_schema

        response = await self._client.post(url, json=payload)
        response.raise_for_status()

        data = response.json()
        return data.get("message", {}).get("content", "")
