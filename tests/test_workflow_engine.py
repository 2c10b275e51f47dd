"""
工作流引擎：瞬时错误重试、永久错误不重试、重试用尽失败、resume 回放已完成步骤、取消。
"""
import asyncio
from datetime import UTC, datetime

import pytest
from pydantic import BaseModel

from hirepath.errors import NotFoundError, TransientServiceError
from hirepath.storage import MemoryBackend
from hirepath.workflow.engine import LocalWorkflowEngine, RetryPolicy, StepRecord, WorkflowRun

NO_WAIT = RetryPolicy(max_attempts=3, initial_backoff=0)


class Value(BaseModel):
    value: int


class Calls:
    """记录每个步骤被调用的次数；fail_times 指定前几次抛出的异常。"""

    def __init__(self, failures: dict[str, list[Exception]] | None = None):
        self.counts: dict[str, int] = {}
        self.failures = failures or {}

    def step(self, name: str, delta: int):
        async def _fn(value: Value) -> Value:
            self.counts[name] = self.counts.get(name, 0) + 1
            pending = self.failures.get(name)
            if pending:
                raise pending.pop(0)
            return Value(value=value.value + delta)

        return _fn


def _two_step_workflow(calls: Calls):
    async def workflow(ctx, args):
        first = await ctx.run("add_one", calls.step("add_one", 1), Value(value=args["start"]), Value)
        return await ctx.run("add_ten", calls.step("add_ten", 10), first, Value)

    return workflow


def _engine(calls: Calls, backend=None) -> LocalWorkflowEngine:
    engine = LocalWorkflowEngine(backend or MemoryBackend(), NO_WAIT)
    engine.register("demo", _two_step_workflow(calls))
    return engine


# ----- 重试 -----


def test_transient_errors_are_retried():
    calls = Calls({"add_one": [TransientServiceError("503"), TransientServiceError("timeout")]})

    async def main():
        engine = _engine(calls)
        run_id = await engine.start("demo", "u1", {"start": 1})
        status = await engine.wait(run_id, timeout=5)
        return status, await engine.get_run(run_id)

    status, run = asyncio.run(main())
    assert status.type == "completed"
    assert status.result == {"value": 12}
    assert calls.counts == {"add_one": 3, "add_ten": 1}
    assert [(s.name, s.attempts) for s in run.steps] == [("add_one", 3), ("add_ten", 1)]


def test_permanent_error_is_not_retried():
    calls = Calls({"add_one": [NotFoundError("missing cv")]})

    async def main():
        engine = _engine(calls)
        run_id = await engine.start("demo", "u1", {"start": 1})
        return await engine.wait(run_id, timeout=5)

    status = asyncio.run(main())
    assert status.type == "failed"
    assert "NotFoundError" in status.error
    assert calls.counts == {"add_one": 1}


def test_exhausted_retries_fail_run_and_skip_later_steps():
    calls = Calls({"add_one": [TransientServiceError("down")] * 5})

    async def main():
        engine = _engine(calls)
        run_id = await engine.start("demo", "u1", {"start": 1})
        status = await engine.wait(run_id, timeout=5)
        return status, await engine.get_run(run_id)

    status, run = asyncio.run(main())
    assert status.type == "failed"
    assert calls.counts == {"add_one": 3}
    assert [(s.name, s.status) for s in run.steps] == [("add_one", "failed")]


def test_retry_policy_backoff_is_exponential_and_capped():
    policy = RetryPolicy(max_attempts=5, initial_backoff=1.0, factor=2.0, max_backoff=5.0)
    assert [policy.delay(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]


# ----- 恢复 -----


def _seeded_run(output) -> WorkflowRun:
    now = datetime.now(UTC)
    return WorkflowRun(
        id="run-seeded",
        workflow="demo",
        user_id="u1",
        args={"start": 1},
        steps=[
            StepRecord(name="add_one", status="completed", output=output, started_at=now, finished_at=now),
            StepRecord(name="add_ten", status="failed", error="TransientServiceError: down", started_at=now, finished_at=now),
        ],
    )


def test_resume_replays_completed_steps_without_calling_them():
    calls = Calls()

    async def main():
        engine = _engine(calls)
        await engine.store.save(_seeded_run({"value": 100}))
        assert await engine.resume_incomplete() == ["run-seeded"]
        status = await engine.wait("run-seeded", timeout=5)
        return status, await engine.get_run("run-seeded")

    status, run = asyncio.run(main())
    assert status.type == "completed"
    # add_one 的输出来自日志（100），没有重新计算
    assert status.result == {"value": 110}
    assert calls.counts == {"add_ten": 1}
    assert [(s.name, s.status) for s in run.steps] == [("add_one", "completed"), ("add_ten", "completed")]


def test_resume_with_invalid_journal_output_fails():
    calls = Calls()

    async def main():
        engine = _engine(calls)
        await engine.store.save(_seeded_run({"unexpected": "shape"}))
        await engine.resume("run-seeded")
        return await engine.wait("run-seeded", timeout=5)

    status = asyncio.run(main())
    assert status.type == "failed"
    assert "SchemaViolationError" in status.error
    assert calls.counts == {}


def test_resume_ignores_terminal_runs():
    async def main():
        engine = _engine(Calls())
        run_id = await engine.start("demo", "u1", {"start": 0})
        await engine.wait(run_id, timeout=5)
        return await engine.resume(run_id), await engine.store.active_ids()

    resumed, active = asyncio.run(main())
    assert resumed is False
    assert active == set()


# ----- 取消 -----


def test_cancel_stops_run_before_next_step():
    calls = Calls()
    entered = asyncio.Event()

    async def blocking(value: Value) -> Value:
        entered.set()
        await asyncio.Event().wait()
        return value

    async def workflow(ctx, args):
        first = await ctx.run("block", blocking, Value(value=0), Value)
        return await ctx.run("add_ten", calls.step("add_ten", 10), first, Value)

    async def main():
        engine = LocalWorkflowEngine(MemoryBackend(), NO_WAIT)
        engine.register("blocking", workflow)
        run_id = await engine.start("blocking", "u1", {})
        await asyncio.wait_for(entered.wait(), timeout=5)
        first = await engine.cancel(run_id)
        status = await engine.wait(run_id, timeout=5)
        second = await engine.cancel(run_id)
        return first, status, second

    first, status, second = asyncio.run(main())
    assert first is True
    assert status.type == "canceled"
    assert second is False
    assert calls.counts == {}


def test_unknown_workflow_and_missing_run():
    async def main():
        engine = _engine(Calls())
        with pytest.raises(ValueError):
            await engine.start("nope", "u1", {})
        with pytest.raises(NotFoundError):
            await engine.status("missing")
        with pytest.raises(NotFoundError):
            await engine.cancel("missing")

    asyncio.run(main())


def test_duplicate_starts_create_independent_runs():
    async def main():
        engine = _engine(Calls())
        a = await engine.start("demo", "u1", {"start": 1})
        b = await engine.start("demo", "u1", {"start": 1})
        return a, b, await engine.wait(a, timeout=5), await engine.wait(b, timeout=5)

    a, b, sa, sb = asyncio.run(main())
    assert a != b
    assert sa.type == sb.type == "completed"
