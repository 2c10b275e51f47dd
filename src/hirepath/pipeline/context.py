"""
阶段依赖：各阶段只通过这里拿到外部协作方，便于测试时整体替换。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from hirepath.ai.completion import StructuredCompletionClient
from hirepath.core import config
from hirepath.files import FileStorage
from hirepath.ingest.markitdown_convert import uri_to_markdown
from hirepath.jobs.store import JobListingStore
from hirepath.progress.tracker import ProgressTracker
from hirepath.results.repository import ResultsRepository


@dataclass(frozen=True)
class StageSettings:
    max_results: int = field(default_factory=config.max_results)
    extraction_concurrency: int = field(default_factory=config.extraction_concurrency)
    search_limit: int = field(default_factory=config.search_limit)
    max_input_tokens: int = field(default_factory=config.max_input_tokens)
    model_name: str = field(default_factory=config.get_default_model)


@dataclass
class StageDeps:
    completion: StructuredCompletionClient
    store: JobListingStore
    file_storage: FileStorage
    progress: ProgressTracker
    results: ResultsRepository
    # 下载地址 -> Markdown；阻塞调用，阶段内走 asyncio.to_thread
    load_document: Callable[[str], str] = uri_to_markdown
    settings: StageSettings = field(default_factory=StageSettings)
