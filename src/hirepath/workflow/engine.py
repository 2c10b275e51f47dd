"""
工作流引擎：按步骤执行、每步完成即落盘的持久化运行。

- 每个步骤的输出写入运行日志（StepRecord），进程重启后 resume 时已完成的步骤直接回放日志里的输出，
  不会再次调用；回放时按声明的输出类型重新校验；
- 步骤失败按 RetryPolicy 重试（指数退避），PermanentError 不重试；重试用尽则整个运行失败，后续步骤不执行；
- 运行可被外部取消：状态先置为 canceled，再取消对应的 asyncio 任务，进行中的补全调用被放弃。

WorkflowEngine 是注入给编排器的接口；LocalWorkflowEngine 是基于 asyncio 任务 + storage 后端的实现。
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, JsonValue

from hirepath.core.config import step_backoff_seconds, step_max_attempts
from hirepath.errors import NotFoundError, PermanentError, SchemaViolationError, WorkflowCanceled
from hirepath.storage.backends import Backend

logger = logging.getLogger(__name__)

RunStatus = Literal["running", "completed", "failed", "canceled"]
TERMINAL_STATUSES = ("completed", "failed", "canceled")

InT = TypeVar("InT")
OutT = TypeVar("OutT", bound=BaseModel)


def _now() -> datetime:
    return datetime.now(UTC)


class StepRecord(BaseModel):
    """运行日志中的一条；completed 的 output 不再改变。"""
    name: str
    status: Literal["completed", "failed"]
    attempts: int = Field(1, ge=1)
    output: JsonValue = None
    error: Optional[str] = None
    started_at: datetime
    finished_at: datetime


class WorkflowRun(BaseModel):
    id: str
    workflow: str
    user_id: str
    args: dict[str, JsonValue] = Field(default_factory=dict)
    status: RunStatus = "running"
    result: JsonValue = None
    error: Optional[str] = None
    steps: list[StepRecord] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def completed_step(self, name: str) -> StepRecord | None:
        for step in self.steps:
            if step.name == name and step.status == "completed":
                return step
        return None


class WorkflowStatus(BaseModel):
    """对外只读的运行状态。"""
    type: RunStatus
    result: JsonValue = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_backoff: float = 1.0
    factor: float = 2.0
    max_backoff: float = 30.0

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(max_attempts=step_max_attempts(), initial_backoff=step_backoff_seconds())

    def delay(self, attempt: int) -> float:
        """第 attempt 次失败后的等待秒数（attempt 从 1 开始）。"""
        return min(self.initial_backoff * self.factor ** (attempt - 1), self.max_backoff)


class RunStore:
    """运行的持久化：hirepath:run:<id>，未结束的运行 ID 另存一个集合，供重启后恢复。"""

    ACTIVE_KEY = "hirepath:runs:active"

    def __init__(self, backend: Backend):
        self.backend = backend

    @staticmethod
    def _key(run_id: str) -> str:
        return f"hirepath:run:{run_id}"

    async def save(self, run: WorkflowRun) -> None:
        run.updated_at = _now()
        await self.backend.set(self._key(run.id), run.model_dump_json())
        if run.status in TERMINAL_STATUSES:
            await self.backend.srem(self.ACTIVE_KEY, run.id)
        else:
            await self.backend.sadd(self.ACTIVE_KEY, run.id)

    async def load(self, run_id: str) -> WorkflowRun | None:
        raw = await self.backend.get(self._key(run_id))
        return WorkflowRun.model_validate_json(raw) if raw else None

    async def active_ids(self) -> set[str]:
        return await self.backend.smembers(self.ACTIVE_KEY)


WorkflowFn = Callable[["StepContext", dict[str, Any]], Awaitable[BaseModel]]


class StepContext:
    """传给工作流函数：通过 run() 执行带日志、重试的步骤。"""

    def __init__(self, run: WorkflowRun, store: RunStore, policy: RetryPolicy):
        self.run_record = run
        self.store = store
        self.policy = policy
        self.current_step: str | None = None

    @property
    def workflow_id(self) -> str:
        return self.run_record.id

    async def _check_canceled(self) -> None:
        stored = await self.store.load(self.run_record.id)
        if stored is not None and stored.status == "canceled":
            raise WorkflowCanceled(f"运行已取消: {self.run_record.id}")

    async def run(
        self,
        name: str,
        fn: Callable[[InT], Awaitable[OutT]],
        arg: InT,
        output_type: type[OutT],
    ) -> OutT:
        self.current_step = name
        recorded = self.run_record.completed_step(name)
        if recorded is not None:
            logger.info("运行 %s 步骤 %s 已完成，回放日志输出", self.workflow_id, name)
            try:
                return output_type.model_validate(recorded.output)
            except ValueError as e:
                raise SchemaViolationError(f"步骤 {name} 的日志输出不符合 {output_type.__name__}: {e}") from e

        started = _now()
        attempt = 0
        while True:
            attempt += 1
            await self._check_canceled()
            try:
                output = await fn(arg)
                if not isinstance(output, output_type):
                    output = output_type.model_validate(output)
                break
            except PermanentError as e:
                await self._record_failure(name, attempt, started, e)
                raise
            except Exception as e:
                if attempt >= self.policy.max_attempts:
                    await self._record_failure(name, attempt, started, e)
                    raise
                delay = self.policy.delay(attempt)
                logger.warning(
                    "运行 %s 步骤 %s 第 %d 次失败，%.1fs 后重试: %s",
                    self.workflow_id, name, attempt, delay, e,
                )
                await asyncio.sleep(delay)

        # 步骤执行期间被取消时不落盘，避免覆盖 canceled 状态
        await self._check_canceled()
        self.run_record.steps.append(
            StepRecord(
                name=name,
                status="completed",
                attempts=attempt,
                output=output.model_dump(mode="json"),
                started_at=started,
                finished_at=_now(),
            )
        )
        await self.store.save(self.run_record)
        return output

    async def _record_failure(self, name: str, attempts: int, started: datetime, error: Exception) -> None:
        logger.error("运行 %s 步骤 %s 失败（共 %d 次）: %s", self.workflow_id, name, attempts, error)
        self.run_record.steps.append(
            StepRecord(
                name=name,
                status="failed",
                attempts=attempts,
                error=f"{type(error).__name__}: {error}",
                started_at=started,
                finished_at=_now(),
            )
        )
        await self.store.save(self.run_record)


class WorkflowEngine(ABC):
    """持久化执行引擎接口，由编排器注入使用。"""

    @abstractmethod
    def register(self, name: str, fn: WorkflowFn) -> None: ...

    @abstractmethod
    async def start(self, name: str, user_id: str, args: dict[str, Any]) -> str:
        """创建运行并调度执行，返回运行 ID；不做去重。"""

    @abstractmethod
    async def get_run(self, run_id: str) -> WorkflowRun | None: ...

    @abstractmethod
    async def status(self, run_id: str) -> WorkflowStatus: ...

    @abstractmethod
    async def cancel(self, run_id: str) -> bool: ...

    @abstractmethod
    async def resume(self, run_id: str) -> bool: ...

    @abstractmethod
    async def resume_incomplete(self) -> list[str]: ...

    @abstractmethod
    async def wait(self, run_id: str, timeout: float | None = None) -> WorkflowStatus: ...


class LocalWorkflowEngine(WorkflowEngine):
    """单进程实现：每个运行一个 asyncio 任务，运行日志经 storage 后端持久化。"""

    def __init__(self, backend: Backend, policy: RetryPolicy | None = None):
        self.store = RunStore(backend)
        self.policy = policy or RetryPolicy.from_config()
        self._workflows: dict[str, WorkflowFn] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._cancel_requested: set[str] = set()

    def register(self, name: str, fn: WorkflowFn) -> None:
        self._workflows[name] = fn

    async def start(self, name: str, user_id: str, args: dict[str, Any]) -> str:
        if name not in self._workflows:
            raise ValueError(f"未注册的工作流: {name}")
        run = WorkflowRun(id=uuid.uuid4().hex, workflow=name, user_id=user_id, args=args)
        await self.store.save(run)
        logger.info("启动运行 %s（%s）user=%s", run.id, name, user_id)
        self._schedule(run)
        return run.id

    def _schedule(self, run: WorkflowRun) -> None:
        task = asyncio.create_task(self._execute(run), name=f"workflow-{run.id}")
        self._tasks[run.id] = task
        task.add_done_callback(lambda _t, run_id=run.id: self._forget(run_id))

    def _forget(self, run_id: str) -> None:
        self._tasks.pop(run_id, None)
        self._cancel_requested.discard(run_id)

    async def _execute(self, run: WorkflowRun) -> None:
        fn = self._workflows[run.workflow]
        ctx = StepContext(run, self.store, self.policy)
        try:
            result = await fn(ctx, dict(run.args))
            run.status = "completed"
            run.result = result.model_dump(mode="json")
            logger.info("运行 %s 完成", run.id)
        except WorkflowCanceled:
            run.status = "canceled"
            logger.info("运行 %s 已取消（步骤 %s）", run.id, ctx.current_step)
        except asyncio.CancelledError:
            if run.id not in self._cancel_requested:
                # 进程退出等情况：保持 running，重启后可 resume
                raise
            run.status = "canceled"
            logger.info("运行 %s 已取消（步骤 %s）", run.id, ctx.current_step)
        except Exception as e:
            run.status = "failed"
            run.error = f"{type(e).__name__}: {e}"
            logger.error("运行 %s 失败于步骤 %s: %s", run.id, ctx.current_step, e)
        await self.store.save(run)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        return await self.store.load(run_id)

    async def status(self, run_id: str) -> WorkflowStatus:
        run = await self.store.load(run_id)
        if run is None:
            raise NotFoundError(f"运行不存在: {run_id}")
        return WorkflowStatus(type=run.status, result=run.result, error=run.error)

    async def cancel(self, run_id: str) -> bool:
        """已结束的运行返回 False。"""
        run = await self.store.load(run_id)
        if run is None:
            raise NotFoundError(f"运行不存在: {run_id}")
        if run.status in TERMINAL_STATUSES:
            return False
        run.status = "canceled"
        await self.store.save(run)
        task = self._tasks.get(run_id)
        if task is not None and not task.done():
            self._cancel_requested.add(run_id)
            task.cancel()
        return True

    async def resume(self, run_id: str) -> bool:
        """重新调度未结束且当前未在执行的运行；已完成的步骤回放日志。"""
        if run_id in self._tasks:
            return False
        run = await self.store.load(run_id)
        if run is None:
            raise NotFoundError(f"运行不存在: {run_id}")
        if run.status in TERMINAL_STATUSES or run.workflow not in self._workflows:
            return False
        logger.info("恢复运行 %s（已完成 %d 步）", run_id, sum(s.status == "completed" for s in run.steps))
        # 上次中断时失败的步骤记录不保留，重新执行
        run.steps = [s for s in run.steps if s.status == "completed"]
        self._schedule(run)
        return True

    async def resume_incomplete(self) -> list[str]:
        resumed = []
        for run_id in sorted(await self.store.active_ids()):
            if await self.resume(run_id):
                resumed.append(run_id)
        return resumed

    async def wait(self, run_id: str, timeout: float | None = None) -> WorkflowStatus:
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return await self.status(run_id)
