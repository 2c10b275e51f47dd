# 配置、日志、tiktoken 截断

from .config import (
    configure_logging,
    get_default_model,
    job_source_id,
    job_db_path,
    redis_url,
)
from .tokens import count_tokens, truncate_to_tokens

__all__ = [
    "configure_logging",
    "get_default_model",
    "job_source_id",
    "job_db_path",
    "redis_url",
    "count_tokens",
    "truncate_to_tokens",
]
