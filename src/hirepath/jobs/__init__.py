"""
职位库：职位源 → 规范化 → SQLite FTS5 职位库；求职流水线只读检索。
"""
from .schemas import JobListing, NewJobListing, RawJobPosting
from .normalize import Err, Ok, normalize_posting
from .store import JobListingStore, SqliteJobListingStore
from .ingest import IngestReport, ingest_from_source

__all__ = [
    "JobListing",
    "NewJobListing",
    "RawJobPosting",
    "Err",
    "Ok",
    "normalize_posting",
    "JobListingStore",
    "SqliteJobListingStore",
    "IngestReport",
    "ingest_from_source",
]
