"""职位源抽象：按关键词/地点拉取原始职位列表，供入库流程规范化。"""
from abc import ABC, abstractmethod

from hirepath.jobs.schemas import RawJobPosting


class JobSource(ABC):
    """职位源接口：返回原始职位，规范化与去重由入库流程负责。"""

    source_id: str = ""

    @abstractmethod
    def fetch_jobs(
        self,
        keywords: list[str] | None = None,
        locations: list[str] | None = None,
        limit: int = 50,
    ) -> list[RawJobPosting]:
        """拉取职位，最多返回 limit 条。"""
        ...
