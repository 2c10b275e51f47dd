#!/usr/bin/env python3
"""
职位入库：从职位源拉取一批职位，规范化后写入职位库（SQLite FTS5）。
用法: python scripts/ingest_jobs.py [--source mock|apify_linkedin|apify_indeed] [--keywords python react] [--locations Riyadh] [--limit 50]
职位库路径取 HIREPATH_JOB_DB，可用 --db 覆盖。
"""
import argparse
import asyncio
import sys

from hirepath.core.config import configure_logging, job_db_path
from hirepath.jobs import SqliteJobListingStore, ingest_from_source
from hirepath.jobs.sources import get_job_source


def main():
    parser = argparse.ArgumentParser(description="职位源 → 规范化 → 职位库")
    parser.add_argument("--source", default=None, help="职位源，不传用 HIREPATH_JOB_SOURCE")
    parser.add_argument("--keywords", nargs="*", default=None, help="关键词")
    parser.add_argument("--locations", nargs="*", default=None, help="地点")
    parser.add_argument("--limit", type=int, default=50, help="最多拉取条数")
    parser.add_argument("--db", default=None, help="职位库路径")
    args = parser.parse_args()

    configure_logging()
    source = get_job_source(args.source)
    store = SqliteJobListingStore(args.db or job_db_path())
    try:
        report = asyncio.run(
            ingest_from_source(source, store, keywords=args.keywords, locations=args.locations, limit=args.limit)
        )
        total = asyncio.run(store.count())
    finally:
        store.close()

    print(f"职位源: {source.source_id}")
    print(f"拉取 {report.fetched} 条，新增 {report.inserted} 条，丢弃 {report.dropped} 条；职位库共 {total} 条")
    for reason in report.drop_reasons[:10]:
        print(f"  丢弃: {reason}")
    if report.fetched == 0:
        print("提示: 未拉取到职位；Apify 职位源需在 .env 中配置 APIFY_API_KEY。")
        sys.exit(1)


if __name__ == "__main__":
    main()
