# 前端轮询用的进度记录

from .tracker import (
    PIPELINE_STAGES,
    ProgressRecord,
    ProgressTracker,
    StageBand,
)

__all__ = ["PIPELINE_STAGES", "ProgressRecord", "ProgressTracker", "StageBand"]
