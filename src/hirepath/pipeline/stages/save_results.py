"""
阶段 5：保存结果。按运行 ID 整体替换（先删后写），重试不会产生重复行。
"""
from __future__ import annotations

import logging

from hirepath.pipeline.context import StageDeps
from hirepath.pipeline.schemas import SavedResultsRef, SaveResultsInput
from hirepath.progress.tracker import PIPELINE_STAGES

logger = logging.getLogger(__name__)

BAND = PIPELINE_STAGES["save_results"]


async def save_results(deps: StageDeps, data: SaveResultsInput) -> SavedResultsRef:
    results = data.results
    await deps.progress.advance(data.tracking_id, "saving_results", 82, BAND.name)
    await deps.progress.advance(
        data.tracking_id, "saving_job_results", 88 if results.jobs else 98, BAND.name
    )

    saved = await deps.results.replace(data.workflow_run_id, data.user_id, results.summary, results.jobs)
    await deps.results.mark_seen(data.user_id, [job.listing_id for job in results.jobs])
    await deps.progress.advance(data.tracking_id, "saving_job_results", 98, BAND.name)

    await deps.progress.complete(data.tracking_id, BAND.name)
    logger.info("运行 %s 结果已保存（%d 条职位）", data.workflow_run_id, saved)
    return SavedResultsRef(workflow_run_id=data.workflow_run_id, saved_jobs=saved)
