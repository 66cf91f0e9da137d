"""测试按文章加锁和重试策略."""

import asyncio

import pytest

from beansnews.core.locks import KeyedLock
from beansnews.core.retry import RetryPolicy


class TestKeyedLock:
    """测试 KeyedLock."""

    async def test_same_key_is_exclusive(self) -> None:
        """同一个键同一时刻只有一个持有者."""
        locks = KeyedLock()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("https://example.com/a"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("first"), worker("second"))
        assert order == ["first-start", "first-end", "second-start", "second-end"]

    async def test_different_keys_run_concurrently(self) -> None:
        """不同键互不阻塞."""
        locks = KeyedLock()
        async with locks.hold("a"):
            async with locks.hold("b"):
                assert locks.is_locked("a")
                assert locks.is_locked("b")

    async def test_locks_are_released(self) -> None:
        """释放后锁表清空."""
        locks = KeyedLock()
        async with locks.hold("a", "b", None, "a"):
            assert len(locks) == 2
        assert len(locks) == 0
        assert not locks.is_locked("a")

    async def test_release_on_error(self) -> None:
        """异常时也释放锁."""
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0

    async def test_cancelled_waiter_does_not_leak(self) -> None:
        """等待中被取消不会释放别人的锁."""
        locks = KeyedLock()
        async with locks.hold("a"):
            waiter = asyncio.create_task(self._hold(locks, "a"))
            await asyncio.sleep(0)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            assert locks.is_locked("a")
        assert len(locks) == 0

    @staticmethod
    async def _hold(locks: KeyedLock, key: str) -> None:
        async with locks.hold(key):
            pass


class TestRetryPolicy:
    """测试 RetryPolicy."""

    async def test_retries_until_success(self) -> None:
        """失败后重试，成功即返回."""
        sleeps: list[float] = []
        calls = {"n": 0}

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)

        async def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 3:
                raise ConnectionError("db down")
            return "ok"

        policy = RetryPolicy(max_attempts=5, delay=2.0)
        assert await policy.run(flaky, sleep=fake_sleep) == "ok"
        assert calls["n"] == 3
        assert sleeps == [2.0, 2.0]

    async def test_raises_after_max_attempts(self) -> None:
        """超过最大次数后抛出最后一次异常."""
        calls = {"n": 0}

        async def fake_sleep(seconds: float) -> None:
            return None

        async def always_fail() -> None:
            calls["n"] += 1
            raise ConnectionError(f"attempt {calls['n']}")

        policy = RetryPolicy(max_attempts=5, delay=2.0)
        with pytest.raises(ConnectionError, match="attempt 5"):
            await policy.run(always_fail, sleep=fake_sleep)
        assert calls["n"] == 5

    async def test_does_not_retry_other_errors(self) -> None:
        """retry_on 之外的异常直接抛出."""
        calls = {"n": 0}

        async def bad() -> None:
            calls["n"] += 1
            raise KeyError("config")

        policy = RetryPolicy(max_attempts=3, delay=0, retry_on=(ConnectionError,))
        with pytest.raises(KeyError):
            await policy.run(bad)
        assert calls["n"] == 1

    def test_backoff(self) -> None:
        """指数退避."""
        policy = RetryPolicy(delay=1.0, backoff=2.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_invalid_policy(self) -> None:
        """无效参数."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
