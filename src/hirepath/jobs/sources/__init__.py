"""
职位源：拉取原始职位列表，供入库流程规范化后写入职位库。
- mock：内置几条示例职位，无需 API Key，用于最小闭环与测试。
- apify_linkedin / apify_indeed：Apify Actor 抓取，需 APIFY_API_KEY。
"""
from .base import JobSource
from .mock import MockJobSource
from .registry import get_job_source

__all__ = ["JobSource", "MockJobSource", "get_job_source"]
