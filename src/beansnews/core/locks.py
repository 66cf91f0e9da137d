"""按文章加锁，保证同一文章同一时刻只有一个修改在进行."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """以 link / uuid 为键的 asyncio 锁表.

    只在当前进程内生效；跨进程时由数据库 link 唯一约束兜底。
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    def _retain(self, key: str) -> asyncio.Lock:
        self._refs[key] = self._refs.get(key, 0) + 1
        return self._locks.setdefault(key, asyncio.Lock())

    def _release_ref(self, key: str) -> None:
        self._refs[key] -= 1
        if self._refs[key] == 0:
            del self._refs[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, *keys: str | None) -> AsyncIterator[None]:
        """按排序顺序获取多个键的锁，避免死锁."""
        ordered = sorted({k for k in keys if k})
        acquired: list[str] = []
        try:
            for key in ordered:
                lock = self._retain(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._release_ref(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._release_ref(key)

    def is_locked(self, key: str) -> bool:
        """键当前是否被持有."""
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)
