"""
HTTP 接口的请求与响应模型。
"""
from typing import Optional

from pydantic import BaseModel, Field

from hirepath.pipeline.schemas import JobResult, SearchResultsSummary


class CVUploadResponse(BaseModel):
    """简历上传结果；file_ref 用于发起求职。"""
    file_ref: str = Field(..., description="文件引用")
    filename: Optional[str] = Field(None, description="原始文件名")
    size: int = Field(..., description="字节数")


class JobSearchRequest(BaseModel):
    cv_ref: str = Field(..., min_length=1, description="上传简历返回的 file_ref")


class JobSearchStartedResponse(BaseModel):
    workflow_run_id: str = Field(..., description="工作流运行 ID，用于查询状态与结果")
    tracking_id: str = Field(..., description="进度 ID，用于轮询进度")
    remaining_searches: int = Field(..., description="本月剩余求职次数")


class CancelResponse(BaseModel):
    workflow_run_id: str
    canceled: bool = Field(..., description="已结束的运行不会被取消")


class SavedResultsResponse(BaseModel):
    summary: SearchResultsSummary
    jobs: list[JobResult] = Field(default_factory=list, description="按匹配分降序")
