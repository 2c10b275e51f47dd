"""
Apify Indeed 职位源：通过 Apify Indeed Scraper 拉取职位。
需配置 APIFY_API_KEY；可选 APIFY_INDEED_ACTOR_ID、APIFY_INDEED_COUNTRY。
"""
import logging
import os

from hirepath.jobs.schemas import RawJobPosting
from ._apify import apify_api_key, run_actor
from .base import JobSource

logger = logging.getLogger(__name__)

DEFAULT_ACTOR_ID = "misceres/indeed-scraper"


class ApifyIndeedJobSource(JobSource):
    """从 Apify 拉取 Indeed 职位；关键词拼成 position，取第一个地点。"""

    source_id = "apify_indeed"

    def __init__(self, api_key: str | None = None, actor_id: str | None = None, country: str | None = None):
        self.api_key = apify_api_key(api_key)
        self.actor_id = (actor_id or os.getenv("APIFY_INDEED_ACTOR_ID") or DEFAULT_ACTOR_ID).strip()
        self.country = (country or os.getenv("APIFY_INDEED_COUNTRY") or "US").strip()

    def fetch_jobs(self, keywords=None, locations=None, limit: int = 50) -> list[RawJobPosting]:
        if not self.api_key:
            logger.warning("未配置 APIFY_API_KEY，跳过 Indeed 抓取")
            return []
        run_input = {
            "country": self.country,
            "position": " ".join(keywords or ["software engineer"]),
            "maxItems": limit,
            "parseCompanyDetails": True,
            "saveOnlyUniqueItems": True,
            "followApplyRedirects": False,
        }
        if locations:
            run_input["location"] = locations[0]
        items = run_actor(self.api_key, self.actor_id, run_input)
        return [RawJobPosting(source="indeed", payload=item) for item in items[:limit]]
