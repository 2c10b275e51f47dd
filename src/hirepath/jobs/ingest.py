"""
职位入库：职位源拉取 → 逐条规范化（失败跳过）→ 写入职位库。
由脚本或定时任务调用，不在求职流水线内执行。
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from hirepath.jobs.normalize import Err, Ok, normalize_posting
from hirepath.jobs.sources.base import JobSource
from hirepath.jobs.store import JobListingStore

logger = logging.getLogger(__name__)


@dataclass
class IngestReport:
    fetched: int = 0
    inserted: int = 0
    dropped: int = 0
    drop_reasons: list[str] = field(default_factory=list)


async def ingest_from_source(
    source: JobSource,
    store: JobListingStore,
    keywords: list[str] | None = None,
    locations: list[str] | None = None,
    limit: int = 50,
) -> IngestReport:
    """拉取一次并入库，返回统计；已存在的 (source, source_id) 不重复写入。"""
    raw_jobs = await asyncio.to_thread(source.fetch_jobs, keywords, locations, limit)
    report = IngestReport(fetched=len(raw_jobs))

    listings = []
    for raw in raw_jobs:
        match normalize_posting(raw):
            case Ok(value=listing):
                listings.append(listing)
            case Err(reason=reason):
                report.dropped += 1
                report.drop_reasons.append(reason)

    if listings:
        report.inserted = len(await store.insert_many(listings))
    logger.info(
        "职位源 %s 入库完成: 拉取 %d，新增 %d，丢弃 %d",
        source.source_id or type(source).__name__,
        report.fetched,
        report.inserted,
        report.dropped,
    )
    return report
