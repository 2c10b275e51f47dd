"""
保存的求职结果：每次运行一份汇总 + 一组职位结果，按运行 ID 整体替换。

replace 在同一事务内先删后写，因此「保存结果」步骤重试时不会产生重复行。
另外维护每个用户的「已推荐职位」集合，后续运行检索时跳过这些职位。
"""
from __future__ import annotations

import json
import logging
from typing import Iterable

from pydantic import BaseModel, Field, TypeAdapter

from hirepath.errors import AuthorizationError
from hirepath.pipeline.schemas import JobResult, SearchResultsSummary
from hirepath.storage.backends import Backend

logger = logging.getLogger(__name__)

_jobs_adapter = TypeAdapter(list[JobResult])


class SavedResults(BaseModel):
    """某次运行保存的结果，供结果接口读取。"""
    run_id: str
    user_id: str
    summary: SearchResultsSummary
    jobs: list[JobResult] = Field(default_factory=list)


def _summary_key(run_id: str) -> str:
    return f"hirepath:results:{run_id}:summary"


def _jobs_key(run_id: str) -> str:
    return f"hirepath:results:{run_id}:jobs"


def _seen_key(user_id: str) -> str:
    return f"hirepath:seen:{user_id}"


class ResultsRepository:

    def __init__(self, backend: Backend):
        self.backend = backend

    async def replace(
        self,
        run_id: str,
        user_id: str,
        summary: SearchResultsSummary,
        jobs: list[JobResult],
    ) -> int:
        """整体替换该运行的结果；返回写入的职位条数。"""
        envelope = {"user_id": user_id, "summary": summary.model_dump(mode="json")}
        values = {
            _summary_key(run_id): json.dumps(envelope, ensure_ascii=False),
            _jobs_key(run_id): _jobs_adapter.dump_json(jobs).decode("utf-8"),
        }
        await self.backend.set_many(values, delete=values.keys())
        logger.info("运行 %s 保存 %d 条职位结果", run_id, len(jobs))
        return len(jobs)

    async def get(self, run_id: str, user_id: str) -> SavedResults | None:
        """仅所属用户可读；尚未保存返回 None。"""
        raw_summary = await self.backend.get(_summary_key(run_id))
        if raw_summary is None:
            return None
        envelope = json.loads(raw_summary)
        if envelope.get("user_id") != user_id:
            raise AuthorizationError("无权读取该运行的结果")
        raw_jobs = await self.backend.get(_jobs_key(run_id))
        jobs = _jobs_adapter.validate_json(raw_jobs) if raw_jobs else []
        return SavedResults(
            run_id=run_id,
            user_id=user_id,
            summary=SearchResultsSummary.model_validate(envelope["summary"]),
            jobs=jobs,
        )

    async def mark_seen(self, user_id: str, listing_ids: Iterable[str]) -> None:
        ids = [i for i in listing_ids if i]
        if ids:
            await self.backend.sadd(_seen_key(user_id), *ids)

    async def seen_listing_ids(self, user_id: str) -> set[str]:
        return await self.backend.smembers(_seen_key(user_id))
