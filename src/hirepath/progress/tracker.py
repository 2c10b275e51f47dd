"""
进度追踪：独立于工作流运行 ID 的轻量进度记录，供前端轮询。

每个流水线阶段占 20 个百分点（解析简历 0–20、关键词 20–40、检索 40–60、排序 60–80、保存 80–100），
阶段内按进度线性映射。状态用显式枚举（in_progress / error / completed），
不再靠阶段名里是否含 "error" 来推断：
- in_progress：百分比只增不减，且最多 99；
- completed：百分比恰为 100；
- error：展示百分比归零（display_percentage）。
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, computed_field

from hirepath.errors import AuthorizationError, NotFoundError
from hirepath.storage.backends import Backend

logger = logging.getLogger(__name__)

ProgressStatus = Literal["in_progress", "error", "completed"]

STAGE_QUEUED = "queued"
STAGE_COMPLETED = "completed"


def _now() -> datetime:
    return datetime.now(UTC)


class ProgressRecord(BaseModel):
    """前端轮询的进度记录；只由当前执行的阶段写入。"""
    tracking_id: str = Field(..., description="进度 ID（不同于工作流运行 ID）")
    user_id: str = Field(..., description="所属用户")
    stage: str = Field(STAGE_QUEUED, description="阶段标签，如 parsing_cv、jobs_ranked、completed")
    status: ProgressStatus = Field("in_progress", description="显式状态")
    percentage: int = Field(0, ge=0, le=100, description="0–100")
    updated_by: Optional[str] = Field(None, description="最近一次写入者（阶段名）")
    started_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    completed_at: Optional[datetime] = None

    @computed_field
    @property
    def display_percentage(self) -> int:
        """前端展示用：出错时归零。"""
        return 0 if self.status == "error" else self.percentage


@dataclass(frozen=True)
class StageBand:
    """单个阶段占用的百分比区间 [start, end]。"""
    name: str
    start: int
    end: int
    error_stage: str

    def at(self, fraction: float) -> int:
        """阶段内进度 fraction（0–1）线性映射到区间内的百分比。"""
        fraction = min(max(fraction, 0.0), 1.0)
        return round(self.start + (self.end - self.start) * fraction)


PIPELINE_STAGES: dict[str, StageBand] = {
    "parse_cv": StageBand("parse_cv", 0, 20, "cv_parsing_error"),
    "tune_search": StageBand("tune_search", 20, 40, "keyword_extraction_error"),
    "search_jobs": StageBand("search_jobs", 40, 60, "job_search_error"),
    "combine_and_rank": StageBand("combine_and_rank", 60, 80, "ranking_error"),
    "save_results": StageBand("save_results", 80, 100, "save_error"),
}


def _key(tracking_id: str) -> str:
    return f"hirepath:progress:{tracking_id}"


class ProgressTracker:
    """进度记录的读写；后端为内存或 Redis。"""

    def __init__(self, backend: Backend):
        self.backend = backend

    async def _load(self, tracking_id: str) -> ProgressRecord | None:
        raw = await self.backend.get(_key(tracking_id))
        return ProgressRecord.model_validate_json(raw) if raw else None

    async def _save(self, record: ProgressRecord) -> ProgressRecord:
        await self.backend.set(_key(record.tracking_id), record.model_dump_json())
        return record

    async def _require(self, tracking_id: str) -> ProgressRecord:
        record = await self._load(tracking_id)
        if record is None:
            raise NotFoundError(f"进度记录不存在: {tracking_id}")
        return record

    async def create(self, user_id: str) -> str:
        """每次运行开始时创建一条，返回 tracking_id。"""
        tracking_id = uuid.uuid4().hex
        await self._save(ProgressRecord(tracking_id=tracking_id, user_id=user_id))
        return tracking_id

    async def advance(self, tracking_id: str, stage: str, percentage: int, updated_by: str) -> ProgressRecord:
        """
        阶段推进。记录不存在抛 NotFoundError；
        百分比取 max(当前, 新值) 并限制在 99 以内（100 只留给 complete）。
        """
        record = await self._require(tracking_id)
        pct = min(max(int(percentage), 0), 99)
        if record.status == "in_progress":
            pct = max(pct, record.percentage)
        record.stage = stage
        record.status = "in_progress"
        record.percentage = pct
        record.updated_by = updated_by
        record.updated_at = _now()
        return await self._save(record)

    async def fail(self, tracking_id: str, stage: str, updated_by: str) -> ProgressRecord:
        """标记出错；stage 一般为 StageBand.error_stage。"""
        record = await self._require(tracking_id)
        record.stage = stage
        record.status = "error"
        record.updated_by = updated_by
        record.updated_at = _now()
        logger.warning("进度 %s 标记出错: %s", tracking_id, stage)
        return await self._save(record)

    async def complete(self, tracking_id: str, updated_by: str) -> ProgressRecord:
        record = await self._require(tracking_id)
        now = _now()
        record.stage = STAGE_COMPLETED
        record.status = "completed"
        record.percentage = 100
        record.updated_by = updated_by
        record.updated_at = now
        record.completed_at = now
        return await self._save(record)

    async def read(self, tracking_id: str, user_id: str) -> ProgressRecord | None:
        """仅所属用户可读；尚未创建返回 None（首次轮询时可能还没有）。"""
        record = await self._load(tracking_id)
        if record is None:
            return None
        if record.user_id != user_id:
            raise AuthorizationError("无权读取该进度记录")
        return record
