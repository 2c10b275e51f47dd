"""
求职编排器端到端（脚本化补全 + 内存后端 + 本地引擎）。

覆盖：完整流水线成功且进度单调递增到 100、简历不存在时运行失败且不进入后续阶段、
越权读取进度、服务维护模式拒绝新请求、重复提交产生独立运行、取消已结束的运行、
档位决定保留的职位数、无法转换的简历不重试。
"""
import asyncio

import pytest

from conftest import listing
from hirepath.errors import AuthorizationError, NotFoundError, SchemaViolationError, TransientServiceError
from hirepath.pipeline.schemas import JobFitAnalysis, SearchParameters
from hirepath.progress.tracker import ProgressTracker
from hirepath.workflow import JobSearchOrchestrator, LocalWorkflowEngine, RetryPolicy


class RecordingTracker(ProgressTracker):
    """记录每次写入的 (status, percentage)。"""

    def __init__(self, backend):
        super().__init__(backend)
        self.history: list[tuple[str, str, int]] = []

    async def _save(self, record):
        self.history.append((record.stage, record.status, record.percentage))
        return await super()._save(record)


@pytest.fixture
def tracker(backend):
    return RecordingTracker(backend)


@pytest.fixture
def orchestrator(make_deps, backend, tracker):
    engine = LocalWorkflowEngine(backend, RetryPolicy(max_attempts=2, initial_backoff=0))
    return JobSearchOrchestrator(engine, make_deps(progress=tracker))


def test_pipeline_end_to_end(orchestrator, store, file_storage, tracker, completion):
    asyncio.run(store.insert_many([
        listing("React Developer", "React and TypeScript", location="Riyadh"),
        listing("Frontend Engineer", "Vue and TypeScript", location="Jeddah"),
    ]))
    ref = file_storage.save(b"%PDF fake", "cv.pdf")

    async def main():
        started = await orchestrator.start_workflow(ref, "u1")
        status = await orchestrator.wait(started.workflow_run_id, timeout=10)
        progress = await orchestrator.get_progress(started.tracking_id, "u1")
        saved = await orchestrator.get_saved_results(started.workflow_run_id, "u1")
        return started, status, progress, saved

    started, status, progress, saved = asyncio.run(main())
    assert status.type == "completed"
    assert status.result == {"workflow_run_id": started.workflow_run_id, "saved_jobs": 2}
    assert progress.status == "completed"
    assert progress.percentage == 100

    percentages = [pct for _, state, pct in tracker.history if state == "in_progress"]
    assert percentages == sorted(percentages)
    assert max(percentages) <= 99
    assert tracker.history[-1] == ("completed", "completed", 100)

    assert saved.summary.total_found == 2
    assert {j.listing.title for j in saved.jobs} == {"React Developer", "Frontend Engineer"}
    react = next(j for j in saved.jobs if j.listing.title == "React Developer")
    assert react.matched_skills == ["React", "TypeScript"]
    assert react.location_match == "location_match"
    assert completion.count(JobFitAnalysis) == 2


def test_unresolvable_cv_fails_without_later_stages(orchestrator, completion):
    async def main():
        started = await orchestrator.start_workflow("does-not-exist.pdf", "u1")
        status = await orchestrator.wait(started.workflow_run_id, timeout=10)
        progress = await orchestrator.get_progress(started.tracking_id, "u1")
        return status, progress

    status, progress = asyncio.run(main())
    assert status.type == "failed"
    assert "NotFoundError" in status.error
    assert progress.stage == "cv_parsing_error"
    assert progress.status == "error"
    assert progress.display_percentage == 0
    assert completion.count(SearchParameters) == 0
    assert completion.count() == 0


def test_progress_of_other_user_is_forbidden(orchestrator, file_storage):
    ref = file_storage.save(b"x", "cv.pdf")

    async def main():
        started = await orchestrator.start_workflow(ref, "owner")
        await orchestrator.wait(started.workflow_run_id, timeout=10)
        with pytest.raises(AuthorizationError):
            await orchestrator.get_progress(started.tracking_id, "intruder")
        with pytest.raises(AuthorizationError):
            await orchestrator.status(started.workflow_run_id, "intruder")
        with pytest.raises(AuthorizationError):
            await orchestrator.get_saved_results(started.workflow_run_id, "intruder")

    asyncio.run(main())


def test_stale_service_rejects_new_runs(orchestrator, monkeypatch):
    monkeypatch.setenv("HIREPATH_STATUS", "stale")
    with pytest.raises(TransientServiceError):
        asyncio.run(orchestrator.start_workflow("cv.pdf", "u1"))


def test_anonymous_start_rejected(orchestrator):
    with pytest.raises(AuthorizationError):
        asyncio.run(orchestrator.start_workflow("cv.pdf", ""))


def test_duplicate_submissions_are_independent(orchestrator, file_storage):
    ref = file_storage.save(b"x", "cv.pdf")

    async def main():
        a = await orchestrator.start_workflow(ref, "u1")
        b = await orchestrator.start_workflow(ref, "u1")
        await orchestrator.wait(a.workflow_run_id, timeout=10)
        await orchestrator.wait(b.workflow_run_id, timeout=10)
        return a, b

    a, b = asyncio.run(main())
    assert a.workflow_run_id != b.workflow_run_id
    assert a.tracking_id != b.tracking_id


def test_transient_stage_failure_marks_stage_error(make_deps, backend, completion, file_storage):
    completion.responses[JobFitAnalysis] = TransientServiceError("down")
    completion.responses[SearchParameters] = TransientServiceError("down")
    engine = LocalWorkflowEngine(backend, RetryPolicy(max_attempts=2, initial_backoff=0))
    orchestrator = JobSearchOrchestrator(engine, make_deps())
    ref = file_storage.save(b"x", "cv.pdf")

    async def main():
        started = await orchestrator.start_workflow(ref, "u1")
        status = await orchestrator.wait(started.workflow_run_id, timeout=10)
        return status, await orchestrator.get_progress(started.tracking_id, "u1")

    status, progress = asyncio.run(main())
    assert status.type == "failed"
    assert progress.stage == "keyword_extraction_error"
    assert completion.count(SearchParameters) == 2


def test_cancel_finished_run_and_missing_run(orchestrator, file_storage):
    ref = file_storage.save(b"x", "cv.pdf")

    async def main():
        started = await orchestrator.start_workflow(ref, "u1")
        await orchestrator.wait(started.workflow_run_id, timeout=10)
        assert await orchestrator.cancel(started.workflow_run_id, "u1") is False
        with pytest.raises(NotFoundError):
            await orchestrator.status("missing", "u1")

    asyncio.run(main())


def test_tier_is_recorded_and_caps_saved_jobs(orchestrator, store, file_storage):
    asyncio.run(store.insert_many([listing(f"React Developer {i}", "React", source_id=f"r{i}") for i in range(9)]))
    ref = file_storage.save(b"x", "cv.pdf")

    async def main():
        free = await orchestrator.start_workflow(ref, "u-free")
        pro = await orchestrator.start_workflow(ref, "u-pro", "pro")
        counts = {}
        for user_id, started in (("u-free", free), ("u-pro", pro)):
            await orchestrator.wait(started.workflow_run_id, timeout=10)
            run = await orchestrator.engine.get_run(started.workflow_run_id)
            saved = await orchestrator.get_saved_results(started.workflow_run_id, user_id)
            counts[run.args["tier"]] = len(saved.jobs)
        return counts

    assert asyncio.run(main()) == {"free": 7, "pro": 9}


def test_unconvertible_cv_is_not_retried(make_deps, backend, file_storage):
    calls = []

    def load_document(url):
        calls.append(url)
        raise SchemaViolationError("简历文件无法转换: UnsupportedFormatException")

    engine = LocalWorkflowEngine(backend, RetryPolicy(max_attempts=3, initial_backoff=0))
    orchestrator = JobSearchOrchestrator(engine, make_deps(load_document=load_document))
    ref = file_storage.save(b"x", "cv.xyz")

    async def main():
        started = await orchestrator.start_workflow(ref, "u1")
        status = await orchestrator.wait(started.workflow_run_id, timeout=10)
        return status, await orchestrator.get_progress(started.tracking_id, "u1")

    status, progress = asyncio.run(main())
    assert status.type == "failed"
    assert "SchemaViolationError" in status.error
    assert len(calls) == 1
    assert progress.stage == "cv_parsing_error"
