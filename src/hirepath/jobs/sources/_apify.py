"""Apify Actor 调用：运行 Actor 并读取默认数据集。"""
import logging
import os
from typing import Any

from hirepath.errors import TransientServiceError

logger = logging.getLogger(__name__)


def apify_api_key(api_key: str | None = None) -> str:
    return (api_key or os.getenv("APIFY_API_KEY") or "").strip()


def run_actor(api_key: str, actor_id: str, run_input: dict[str, Any]) -> list[dict[str, Any]]:
    """同步运行 Actor 并取回全部条目；Apify 调用失败抛 TransientServiceError。"""
    from apify_client import ApifyClient

    client = ApifyClient(api_key)
    try:
        run = client.actor(actor_id).call(run_input=run_input)
        if not run:
            return []
        return list(client.dataset(run["defaultDatasetId"]).iterate_items())
    except Exception as e:
        logger.warning("Apify Actor %s 运行失败: %s", actor_id, e)
        raise TransientServiceError(f"Apify Actor {actor_id} 运行失败") from e
