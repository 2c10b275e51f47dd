"""
求职编排器：把五个阶段注册为一个持久化工作流，并提供对外的启动 / 状态 / 进度 / 结果接口。

阶段 N 的输出原样作为阶段 N+1 的输入；每步输出都先写入运行日志再进入下一步。
任一步骤最终失败时，进度记录切到该阶段的 *_error 标签，运行置为 failed。
同一份简历重复提交会创建相互独立的运行，这里不做去重。
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Any

from pydantic import BaseModel

from hirepath.core.config import job_db_path, service_stale
from hirepath.core.tiers import DEFAULT_TIER, Tier
from hirepath.errors import AuthorizationError, HirepathError, NotFoundError, TransientServiceError, WorkflowCanceled
from hirepath.pipeline.context import StageDeps
from hirepath.pipeline.schemas import (
    CombineInput,
    CVProfile,
    JobSearchOutcome,
    ParseCVInput,
    RankedResults,
    SavedResultsRef,
    SaveResultsInput,
    SearchJobsInput,
    SearchParameters,
    TuneSearchInput,
)
from hirepath.pipeline.stages import combine_and_rank, parse_cv, save_results, search_jobs, tune_search
from hirepath.progress.tracker import PIPELINE_STAGES, ProgressRecord
from hirepath.results.repository import SavedResults
from hirepath.workflow.engine import StepContext, WorkflowEngine, WorkflowStatus

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "job_search"
STAGE_CANCELED = "canceled"


class StartedWorkflow(BaseModel):
    workflow_run_id: str
    tracking_id: str


class JobSearchOrchestrator:

    def __init__(self, engine: WorkflowEngine, deps: StageDeps):
        self.engine = engine
        self.deps = deps
        engine.register(WORKFLOW_NAME, self._job_search)

    async def _job_search(self, ctx: StepContext, args: dict[str, Any]) -> SavedResultsRef:
        deps = self.deps
        run_id = ctx.workflow_id
        cv_ref, user_id, tracking_id = args["cv_ref"], args["user_id"], args["tracking_id"]
        # 早期运行的参数里没有 tier
        tier = args.get("tier") or DEFAULT_TIER
        ids = {"user_id": user_id, "tracking_id": tracking_id}
        try:
            profile = await ctx.run(
                "parse_cv", partial(parse_cv, deps), ParseCVInput(cv_ref=cv_ref, **ids), CVProfile
            )
            params = await ctx.run(
                "tune_search", partial(tune_search, deps), TuneSearchInput(profile=profile, **ids), SearchParameters
            )
            outcome = await ctx.run(
                "search_jobs",
                partial(search_jobs, deps),
                SearchJobsInput(params=params, profile=profile, tier=tier, **ids),
                JobSearchOutcome,
            )
            ranked = await ctx.run(
                "combine_and_rank",
                partial(combine_and_rank, deps),
                CombineInput(
                    workflow_run_id=run_id, cv_ref=cv_ref, outcome=outcome, params=params, profile=profile, **ids
                ),
                RankedResults,
            )
            return await ctx.run(
                "save_results",
                partial(save_results, deps),
                SaveResultsInput(workflow_run_id=run_id, cv_ref=cv_ref, results=ranked, **ids),
                SavedResultsRef,
            )
        except WorkflowCanceled:
            raise
        except Exception:
            band = PIPELINE_STAGES.get(ctx.current_step or "")
            if band is not None:
                await self._mark_failed(tracking_id, band.error_stage, band.name)
            raise

    async def _mark_failed(self, tracking_id: str, stage: str, updated_by: str) -> None:
        try:
            await self.deps.progress.fail(tracking_id, stage, updated_by)
        except HirepathError as e:
            logger.warning("进度 %s 无法标记为 %s: %s", tracking_id, stage, e)

    async def start_workflow(self, cv_ref: str, user_id: str, tier: Tier = DEFAULT_TIER) -> StartedWorkflow:
        """先建进度记录，再创建运行；两个 ID 一起返回给前端。tier 决定本次保留的职位数。"""
        if not user_id:
            raise AuthorizationError("未登录")
        if service_stale():
            raise TransientServiceError("求职服务维护中，暂不接受新的请求，请稍后再试")
        tracking_id = await self.deps.progress.create(user_id)
        run_id = await self.engine.start(
            WORKFLOW_NAME,
            user_id,
            {"cv_ref": cv_ref, "user_id": user_id, "tracking_id": tracking_id, "tier": tier},
        )
        return StartedWorkflow(workflow_run_id=run_id, tracking_id=tracking_id)

    async def start(self, cv_ref: str, user_id: str, tier: Tier = DEFAULT_TIER) -> str:
        return (await self.start_workflow(cv_ref, user_id, tier)).workflow_run_id

    async def _owned_run(self, run_id: str, user_id: str | None):
        run = await self.engine.get_run(run_id)
        if run is None:
            raise NotFoundError(f"运行不存在: {run_id}")
        if user_id is not None and run.user_id != user_id:
            raise AuthorizationError("无权访问该运行")
        return run

    async def status(self, run_id: str, user_id: str | None = None) -> WorkflowStatus:
        """只读；传 user_id 时校验归属。"""
        await self._owned_run(run_id, user_id)
        return await self.engine.status(run_id)

    async def cancel(self, run_id: str, user_id: str | None = None) -> bool:
        run = await self._owned_run(run_id, user_id)
        canceled = await self.engine.cancel(run_id)
        if canceled:
            tracking_id = run.args.get("tracking_id")
            if isinstance(tracking_id, str):
                await self._mark_failed(tracking_id, STAGE_CANCELED, WORKFLOW_NAME)
            logger.info("运行 %s 已被用户取消", run_id)
        return canceled

    async def get_progress(self, tracking_id: str, user_id: str) -> ProgressRecord | None:
        return await self.deps.progress.read(tracking_id, user_id)

    async def get_saved_results(self, run_id: str, user_id: str) -> SavedResults | None:
        return await self.deps.results.get(run_id, user_id)

    async def wait(self, run_id: str, timeout: float | None = None) -> WorkflowStatus:
        return await self.engine.wait(run_id, timeout)

    async def resume_incomplete(self) -> list[str]:
        resumed = await self.engine.resume_incomplete()
        if resumed:
            logger.info("恢复未完成的运行 %d 个", len(resumed))
        return resumed


def create_default_orchestrator() -> JobSearchOrchestrator:
    """按环境配置组装：存储后端、职位库、本地文件存储、LLM 补全客户端、本地工作流引擎。"""
    from hirepath.ai.completion import get_completion_client
    from hirepath.files import LocalFileStorage
    from hirepath.jobs.store import SqliteJobListingStore
    from hirepath.progress.tracker import ProgressTracker
    from hirepath.results.repository import ResultsRepository
    from hirepath.storage.backends import get_backend
    from hirepath.workflow.engine import LocalWorkflowEngine

    backend = get_backend()
    deps = StageDeps(
        completion=get_completion_client(),
        store=SqliteJobListingStore(job_db_path()),
        file_storage=LocalFileStorage(),
        progress=ProgressTracker(backend),
        results=ResultsRepository(backend),
    )
    return JobSearchOrchestrator(LocalWorkflowEngine(backend), deps)
