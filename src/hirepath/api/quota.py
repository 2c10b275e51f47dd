"""
求职次数配额：按 user_id + tier + 自然月计数。

只在启动求职时扣减一次（HTTP 入口），流水线阶段内不计数，
因此编排器对阶段的重试不会重复扣减。启动失败时退还。
存储：进程内内存。
"""
from datetime import datetime, timezone
from threading import Lock

from hirepath.core.tiers import MONTHLY_JOB_SEARCHES, Tier


def _month_key() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


# 进程内计数：key -> count
_memory: dict[str, int] = {}
_lock = Lock()


def _storage_key(user_id: str) -> str:
    return f"quota:{user_id}:job_search:{_month_key()}"


def monthly_limit(tier: Tier) -> int:
    return MONTHLY_JOB_SEARCHES.get(tier, MONTHLY_JOB_SEARCHES["free"])


def get_remaining(user_id: str, tier: Tier) -> int:
    """本月剩余次数。"""
    with _lock:
        used = _memory.get(_storage_key(user_id), 0)
    return max(0, monthly_limit(tier) - used)


def consume(user_id: str, tier: Tier) -> bool:
    """
    扣减 1 次；已超限则不扣减并返回 False。
    返回 True 表示扣减成功，可继续执行业务。
    """
    key = _storage_key(user_id)
    with _lock:
        used = _memory.get(key, 0)
        if used >= monthly_limit(tier):
            return False
        _memory[key] = used + 1
    return True


def refund(user_id: str) -> None:
    """启动失败时退还本次扣减。"""
    key = _storage_key(user_id)
    with _lock:
        if _memory.get(key, 0) > 0:
            _memory[key] -= 1


def reset() -> None:
    """清空计数（测试用）。"""
    with _lock:
        _memory.clear()
