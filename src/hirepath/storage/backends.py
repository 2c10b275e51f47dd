"""
持久化后端：工作流运行、进度记录、保存的结果都以 JSON 字符串存在这里。

未配置 REDIS_URL 时用进程内内存（单机）；配置后用 Redis。
键约定：hirepath:<类别>:<id>[:<子键>]。
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from hirepath.core.config import redis_url
from hirepath.errors import TransientServiceError


class Backend(ABC):
    """键值 + 集合的最小接口；set_many 需原子（同一事务内先删后写）。"""

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    async def delete(self, *keys: str) -> None: ...

    @abstractmethod
    async def set_many(self, values: dict[str, str], delete: Iterable[str] = ()) -> None: ...

    @abstractmethod
    async def sadd(self, key: str, *members: str) -> None: ...

    @abstractmethod
    async def srem(self, key: str, *members: str) -> None: ...

    @abstractmethod
    async def smembers(self, key: str) -> set[str]: ...


class MemoryBackend(Backend):
    """进程内存储；各方法内部无 await，单事件循环内天然原子。"""

    def __init__(self):
        self._values: dict[str, str] = {}
        self._sets: dict[str, set[str]] = {}

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._values.pop(key, None)
            self._sets.pop(key, None)

    async def set_many(self, values: dict[str, str], delete: Iterable[str] = ()) -> None:
        for key in delete:
            self._values.pop(key, None)
        self._values.update(values)

    async def sadd(self, key: str, *members: str) -> None:
        self._sets.setdefault(key, set()).update(members)

    async def srem(self, key: str, *members: str) -> None:
        self._sets.get(key, set()).difference_update(members)

    async def smembers(self, key: str) -> set[str]:
        return set(self._sets.get(key, set()))


class RedisBackend(Backend):
    """Redis 实现（redis.asyncio）；连接错误归为 TransientServiceError，由引擎重试。"""

    def __init__(self, url: str):
        import redis.asyncio as aioredis
        self._redis = aioredis.from_url(url, decode_responses=True)

    async def _call(self, coro):
        from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
        try:
            return await coro
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransientServiceError(f"Redis 不可用: {e}") from e

    async def get(self, key: str) -> str | None:
        return await self._call(self._redis.get(key))

    async def set(self, key: str, value: str) -> None:
        await self._call(self._redis.set(key, value))

    async def delete(self, *keys: str) -> None:
        if keys:
            await self._call(self._redis.delete(*keys))

    async def set_many(self, values: dict[str, str], delete: Iterable[str] = ()) -> None:
        pipe = self._redis.pipeline(transaction=True)
        to_delete = list(delete)
        if to_delete:
            pipe.delete(*to_delete)
        if values:
            pipe.mset(values)
        await self._call(pipe.execute())

    async def sadd(self, key: str, *members: str) -> None:
        if members:
            await self._call(self._redis.sadd(key, *members))

    async def srem(self, key: str, *members: str) -> None:
        if members:
            await self._call(self._redis.srem(key, *members))

    async def smembers(self, key: str) -> set[str]:
        return set(await self._call(self._redis.smembers(key)))


_default_backend: Backend | None = None


def get_backend() -> Backend:
    """按 REDIS_URL 选择后端（进程内单例）。"""
    global _default_backend
    if _default_backend is None:
        url = redis_url()
        _default_backend = RedisBackend(url) if url else MemoryBackend()
    return _default_backend
