"""根据配置返回当前使用的职位源。"""
from hirepath.core.config import job_source_id
from hirepath.jobs.sources.base import JobSource
from hirepath.jobs.sources.mock import MockJobSource


def get_job_source(source_id: str | None = None) -> JobSource:
    """
    返回职位源实例。
    source_id 可选：mock（默认）、apify_linkedin、apify_indeed。
    不传则从环境变量 HIREPATH_JOB_SOURCE 读取。
    """
    sid = (source_id or job_source_id()).strip().lower()
    if sid == "apify_linkedin":
        from hirepath.jobs.sources.apify_linkedin import ApifyLinkedInJobSource
        return ApifyLinkedInJobSource()
    if sid == "apify_indeed":
        from hirepath.jobs.sources.apify_indeed import ApifyIndeedJobSource
        return ApifyIndeedJobSource()
    return MockJobSource()
