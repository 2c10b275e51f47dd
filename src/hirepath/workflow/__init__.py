# 持久化工作流引擎与求职编排器

from .engine import (
    LocalWorkflowEngine,
    RetryPolicy,
    StepContext,
    StepRecord,
    WorkflowEngine,
    WorkflowRun,
    WorkflowStatus,
)
from .orchestrator import JobSearchOrchestrator, StartedWorkflow, create_default_orchestrator

__all__ = [
    "LocalWorkflowEngine",
    "RetryPolicy",
    "StepContext",
    "StepRecord",
    "WorkflowEngine",
    "WorkflowRun",
    "WorkflowStatus",
    "JobSearchOrchestrator",
    "StartedWorkflow",
    "create_default_orchestrator",
]
