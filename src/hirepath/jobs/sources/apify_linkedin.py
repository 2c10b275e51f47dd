"""
Apify LinkedIn 职位源：通过 Apify LinkedIn Jobs Scraper 拉取职位。
需配置 APIFY_API_KEY；可选 APIFY_LINKEDIN_ACTOR_ID 指定 actor。
"""
import logging
import os
from urllib.parse import urlencode

from hirepath.jobs.schemas import RawJobPosting
from ._apify import apify_api_key, run_actor
from .base import JobSource

logger = logging.getLogger(__name__)

# Apify 默认 LinkedIn Jobs Scraper actor（按结果付费）
DEFAULT_ACTOR_ID = "curious_coder/linkedin-jobs-scraper"  # 以 Apify 控制台为准


def build_search_url(keywords: list[str], location: str | None = None) -> str:
    """LinkedIn 公开职位搜索页 URL。"""
    params = {
        "keywords": " ".join(k.strip() for k in keywords if k and k.strip()),
        "trk": "public_jobs_jobs-search-bar_search-submit",
        "position": "1",
        "pageNum": "0",
    }
    if location:
        params["location"] = location
    return "https://www.linkedin.com/jobs/search/?" + urlencode(params)


class ApifyLinkedInJobSource(JobSource):
    """
    从 Apify 拉取 LinkedIn 职位；每个地点一个搜索 URL。
    未配置 APIFY_API_KEY 时 fetch_jobs 返回空列表。
    """

    source_id = "apify_linkedin"

    def __init__(self, api_key: str | None = None, actor_id: str | None = None):
        self.api_key = apify_api_key(api_key)
        self.actor_id = (actor_id or os.getenv("APIFY_LINKEDIN_ACTOR_ID") or DEFAULT_ACTOR_ID).strip()

    def fetch_jobs(self, keywords=None, locations=None, limit: int = 50) -> list[RawJobPosting]:
        if not self.api_key:
            logger.warning("未配置 APIFY_API_KEY，跳过 LinkedIn 抓取")
            return []
        words = list(keywords or ["software engineer"])
        urls = [build_search_url(words, loc) for loc in (locations or [None])]
        run_input = {"urls": urls, "scrapeCompany": True, "count": max(limit, 10)}
        items = run_actor(self.api_key, self.actor_id, run_input)
        return [RawJobPosting(source="linkedin", payload=item) for item in items[:limit]]
