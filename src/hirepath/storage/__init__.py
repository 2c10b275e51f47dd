# 持久化后端：内存（默认）或 Redis（配置 REDIS_URL）

from .backends import Backend, MemoryBackend, RedisBackend, get_backend

__all__ = ["Backend", "MemoryBackend", "RedisBackend", "get_backend"]
