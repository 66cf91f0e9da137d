"""OpenAI LLM Provider."""

from typing import Any

from openai import AsyncOpenAI

from beansnews.llm.base import LLMConfig, LLMError, LLMProvider, Message


class OpenAIProvider(LLMProvider):
    """OpenAI API Provider（支持所有 OpenAI 兼容接口）."""

    def __init__(
        self,
        config: LLMConfig,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
    ) -> None:
        super().__init__(config)
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def close(self) -> None:
        """关闭客户端."""
        await self.client.close()

    async def chat(
        self,
        messages: list[Message],
        json_schema: dict[str, Any] | None = None,
    ) -> str:
        """对话，返回完整响应."""
        openai_messages: list[dict[str, Any]] = [
            {"role": m.role, "content": m.content} for m in messages
        ]
        kwargs: dict[str, Any] = {}
        if json_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": json_schema.get("title", "response"),
                    "schema": {k: v for k, v in json_schema.items() if k != "title"},
                    "strict": True,
                },
            }

        response = await self.client.chat.completions.create(
            model=self.config.model,
            messages=openai_messages,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            **kwargs,
        )

        message = response.choices[0].message
        refusal = getattr(message, "refusal", None)
        if refusal:
            msg = f"模型拒绝处理: {refusal}"
            raise LLMError(msg)
        return message.content or ""
