"""
用户档位及各档位权益：每月求职次数、每次运行保留的职位数。
"""
from typing import Literal

Tier = Literal["free", "pro"]

DEFAULT_TIER: Tier = "free"

# 各档位每月求职次数上限
MONTHLY_JOB_SEARCHES: dict[Tier, int] = {
    "free": 3,
    "pro": 35,
}

# 每次运行最多保留的匹配职位数
MAX_RESULTS_BY_TIER: dict[Tier, int] = {
    "free": 7,
    "pro": 20,
}


def max_results_for(tier: str | None) -> int:
    return MAX_RESULTS_BY_TIER.get(tier, MAX_RESULTS_BY_TIER[DEFAULT_TIER])
