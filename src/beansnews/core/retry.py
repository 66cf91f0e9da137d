"""有界重试策略."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """重试策略：最大次数 + 固定或指数退避延迟."""

    max_attempts: int = 5
    delay: float = 2.0
    backoff: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = "max_attempts 必须 >= 1"
            raise ValueError(msg)
        if self.delay < 0 or self.backoff < 1:
            msg = "delay 必须 >= 0，backoff 必须 >= 1"
            raise ValueError(msg)

    def delay_for(self, attempt: int) -> float:
        """第 attempt 次失败后的等待时间（attempt 从 1 开始）."""
        return self.delay * (self.backoff ** (attempt - 1))

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        *,
        name: str = "operation",
        sleep: Sleep = asyncio.sleep,
    ) -> T:
        """执行 func，失败时按策略重试，最后一次失败直接抛出."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await func()
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.error(f"{name} 在 {attempt} 次尝试后仍然失败: {e}")
                    raise
                wait = self.delay_for(attempt)
                logger.warning(
                    f"{name} 第 {attempt} 次尝试失败，{wait:.1f} 秒后重试: {e}"
                )
                await sleep(wait)
