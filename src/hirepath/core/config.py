"""
配置：从环境变量读取，供流水线各阶段、工作流引擎与 HTTP 入口使用。
"""
import logging
import os
from pathlib import Path

# 可选加载 .env（若存在）：先项目根（与 pyproject.toml 同层），再当前工作目录
_env_paths = [
    Path(__file__).resolve().parents[3] / ".env",  # 从 src/hirepath/core 往上的项目根
    Path.cwd() / ".env",
]
for _p in _env_paths:
    if _p.exists():
        from dotenv import load_dotenv
        load_dotenv(_p)
        break

# src/hirepath/core/config.py -> parents[3] = 项目根
_ROOT = Path(__file__).resolve().parents[3]

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def get_default_model() -> str:
    return os.getenv("HIREPATH_DEFAULT_MODEL", "openai/gpt-4o-mini")


def job_source_id() -> str:
    """职位源：mock（默认）| apify_linkedin | apify_indeed。"""
    return (os.getenv("HIREPATH_JOB_SOURCE") or "mock").strip().lower()


def job_db_path() -> str:
    """
    职位库 SQLite 路径。默认项目根下 .data/job_listings.db；
    可设为 :memory: 便于测试。
    """
    env_path = (os.getenv("HIREPATH_JOB_DB") or "").strip()
    if env_path:
        return env_path
    return str(_ROOT / ".data" / "job_listings.db")


def file_storage_root() -> Path:
    """本地简历文件存储根目录（敏感数据，不提交到仓库）。"""
    env_path = (os.getenv("HIREPATH_FILE_STORAGE") or "").strip()
    if env_path:
        return Path(env_path)
    return _ROOT / ".data" / "uploads"


def file_base_url() -> str | None:
    """配置后下载地址为 <base>/<file_ref>，否则为 file:// URI。"""
    base = (os.getenv("HIREPATH_FILE_BASE_URL") or "").strip().rstrip("/")
    return base or None


def redis_url() -> str | None:
    url = (os.getenv("REDIS_URL") or "").strip()
    return url or None


def step_max_attempts() -> int:
    """工作流每一步的最大尝试次数（含首次）。"""
    return max(1, _int_env("HIREPATH_STEP_MAX_ATTEMPTS", 3))


def step_backoff_seconds() -> float:
    """首次重试前的等待秒数，之后每次翻倍。"""
    return max(0.0, _float_env("HIREPATH_STEP_BACKOFF_SECONDS", 1.0))


def max_results() -> int:
    return max(1, _int_env("HIREPATH_MAX_RESULTS", 20))


def extraction_concurrency() -> int:
    """逐条职位 LLM 调用的并发批大小。"""
    return max(1, _int_env("HIREPATH_EXTRACTION_CONCURRENCY", 10))


def search_limit() -> int:
    """单个关键词单个字段全文检索最多返回条数。"""
    return max(1, _int_env("HIREPATH_SEARCH_LIMIT", 20))


def max_input_tokens() -> int:
    return max(256, _int_env("HIREPATH_MAX_INPUT_TOKENS", 6000))


def service_stale() -> bool:
    """HIREPATH_STATUS=stale 时暂停新的求职流水线。"""
    return (os.getenv("HIREPATH_STATUS") or "").strip().lower() == "stale"


def configure_logging() -> None:
    """HTTP 入口与脚本启动时调用一次；级别取 HIREPATH_LOG_LEVEL。"""
    level_name = (os.getenv("HIREPATH_LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=_LOG_FORMAT)
