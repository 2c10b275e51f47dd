"""
职位库：规范化职位的可检索表。

- 全文检索：SQLite FTS5，索引 title 与 description 两个字段；
- 子串过滤：取样后在内存里按谓词过滤，作为全文检索无结果时的兜底；
- 对流水线只读；写入只发生在入库流程（jobs.ingest）。

SQLite 调用是阻塞的，异步接口统一走 asyncio.to_thread。
"""
from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Literal

from hirepath.errors import TransientServiceError
from hirepath.jobs.schemas import JobListing, NewJobListing

logger = logging.getLogger(__name__)

SearchField = Literal["title", "description"]

# 兜底子串过滤默认取样条数，避免整表扫描
DEFAULT_SAMPLE_SIZE = 50

_WORD_RE = re.compile(r"\w+", re.UNICODE)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS job_listings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    description_html TEXT,
    company TEXT,
    location TEXT,
    salary REAL,
    currency TEXT,
    source TEXT NOT NULL,
    source_id TEXT NOT NULL,
    source_url TEXT NOT NULL,
    posted_at TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (source, source_id)
);
CREATE VIRTUAL TABLE IF NOT EXISTS job_listings_fts USING fts5(
    title, description, content='job_listings', content_rowid='id'
);
CREATE TRIGGER IF NOT EXISTS job_listings_ai AFTER INSERT ON job_listings BEGIN
    INSERT INTO job_listings_fts(rowid, title, description) VALUES (new.id, new.title, new.description);
END;
CREATE TRIGGER IF NOT EXISTS job_listings_ad AFTER DELETE ON job_listings BEGIN
    INSERT INTO job_listings_fts(job_listings_fts, rowid, title, description)
    VALUES ('delete', old.id, old.title, old.description);
END;
CREATE TRIGGER IF NOT EXISTS job_listings_au AFTER UPDATE ON job_listings BEGIN
    INSERT INTO job_listings_fts(job_listings_fts, rowid, title, description)
    VALUES ('delete', old.id, old.title, old.description);
    INSERT INTO job_listings_fts(rowid, title, description) VALUES (new.id, new.title, new.description);
END;
"""


class JobListingStore(ABC):
    """职位库接口。"""

    @abstractmethod
    async def full_text_search(self, field: SearchField, term: str, limit: int = 20) -> list[JobListing]:
        """在单个字段上做全文检索，按相关度排序。"""
        ...

    @abstractmethod
    async def substring_filter(
        self,
        predicate: Callable[[JobListing], bool],
        sample_size: int = DEFAULT_SAMPLE_SIZE,
    ) -> list[JobListing]:
        """取样 sample_size 条后按谓词过滤。"""
        ...

    @abstractmethod
    async def get_by_id(self, listing_id: str) -> JobListing | None:
        ...

    @abstractmethod
    async def insert_many(self, listings: list[NewJobListing]) -> list[str]:
        """批量入库；(source, source_id) 已存在的跳过。返回新插入的 ID。"""
        ...

    @abstractmethod
    async def count(self) -> int:
        ...


def fts_query(field: SearchField, term: str) -> str | None:
    """
    关键词 -> FTS5 查询表达式：按词切分，每个词加引号（转义 FTS 语法字符），词之间 OR。
    无有效词返回 None。
    """
    words = _WORD_RE.findall(term or "")
    if not words:
        return None
    return " OR ".join(f'{field} : "{w.replace(chr(34), chr(34) * 2)}"' for w in words)


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _row_to_listing(row: sqlite3.Row) -> JobListing:
    return JobListing(
        id=str(row["id"]),
        title=row["title"],
        description=row["description"] or "",
        description_html=row["description_html"],
        company=row["company"],
        location=row["location"],
        salary=row["salary"],
        currency=row["currency"],
        source=row["source"],
        source_id=row["source_id"],
        source_url=row["source_url"],
        posted_at=datetime.fromisoformat(row["posted_at"]) if row["posted_at"] else None,
    )


class SqliteJobListingStore(JobListingStore):
    """SQLite + FTS5 实现；path 可为 :memory:（单连接常驻，便于测试）。"""

    def __init__(self, path: str | Path = ":memory:"):
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            self._conn.executescript(_SCHEMA)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as e:
            raise TransientServiceError(f"职位库查询失败: {e}") from e

    def _search_sync(self, field: SearchField, term: str, limit: int) -> list[JobListing]:
        query = fts_query(field, term)
        if query is None:
            return []
        rows = self._query(
            "SELECT l.* FROM job_listings_fts f JOIN job_listings l ON l.id = f.rowid "
            "WHERE job_listings_fts MATCH ? ORDER BY f.rank, l.id LIMIT ?",
            (query, limit),
        )
        return [_row_to_listing(r) for r in rows]

    async def full_text_search(self, field: SearchField, term: str, limit: int = 20) -> list[JobListing]:
        if field not in ("title", "description"):
            raise ValueError(f"不支持的检索字段: {field}")
        return await asyncio.to_thread(self._search_sync, field, term, limit)

    async def substring_filter(self, predicate, sample_size: int = DEFAULT_SAMPLE_SIZE) -> list[JobListing]:
        rows = await asyncio.to_thread(
            self._query, "SELECT * FROM job_listings ORDER BY id LIMIT ?", (sample_size,)
        )
        return [listing for listing in map(_row_to_listing, rows) if predicate(listing)]

    async def get_by_id(self, listing_id: str) -> JobListing | None:
        if not str(listing_id).isdigit():
            return None
        rows = await asyncio.to_thread(
            self._query, "SELECT * FROM job_listings WHERE id = ?", (int(listing_id),)
        )
        return _row_to_listing(rows[0]) if rows else None

    def _insert_sync(self, listings: list[NewJobListing]) -> list[str]:
        now = datetime.now(UTC).isoformat()
        inserted: list[str] = []
        with self._lock:
            for item in listings:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO job_listings (title, description, description_html, company, "
                    "location, salary, currency, source, source_id, source_url, posted_at, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        item.title,
                        item.description,
                        item.description_html,
                        item.company,
                        item.location,
                        item.salary,
                        item.currency,
                        item.source,
                        item.source_id,
                        item.source_url,
                        _iso(item.posted_at),
                        now,
                    ),
                )
                if cur.rowcount:
                    inserted.append(str(cur.lastrowid))
            self._conn.commit()
        return inserted

    async def insert_many(self, listings: list[NewJobListing]) -> list[str]:
        inserted = await asyncio.to_thread(self._insert_sync, listings)
        logger.info("职位入库: 提交 %d 条，新增 %d 条", len(listings), len(inserted))
        return inserted

    async def count(self) -> int:
        rows = await asyncio.to_thread(self._query, "SELECT COUNT(*) AS n FROM job_listings")
        return int(rows[0]["n"])
