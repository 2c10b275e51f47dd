"""
hirepath HTTP 入口：上传简历、发起求职、轮询进度、查询运行状态与结果。

所有 /v1 接口需 Bearer 鉴权（见 auth.py）；发起求职按档位扣减月度配额（见 quota.py）。
求职流水线在后台运行，接口立即返回 workflow_run_id 与 tracking_id，前端据此轮询。
"""
import asyncio
import io
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from hirepath.core.config import configure_logging
from hirepath.errors import (
    AuthorizationError,
    HirepathError,
    NotFoundError,
    QuotaExceededError,
    SchemaViolationError,
    TransientServiceError,
)
from hirepath.files import LocalFileStorage
from hirepath.ingest.markitdown_convert import stream_to_markdown
from hirepath.progress.tracker import ProgressRecord
from hirepath.workflow.engine import WorkflowStatus
from hirepath.workflow.orchestrator import JobSearchOrchestrator, create_default_orchestrator

from .auth import AuthContext, get_auth
from .quota import consume, get_remaining, refund
from .schemas import (
    CancelResponse,
    CVUploadResponse,
    JobSearchRequest,
    JobSearchStartedResponse,
    SavedResultsResponse,
)

logger = logging.getLogger(__name__)

# 上传大小上限：10 MB
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    yield


app = FastAPI(
    title="hirepath API",
    description="上传简历 → 解析画像 → 提取关键词 → 检索职位库 → 排序 → 保存结果",
    version="0.1.0",
    lifespan=lifespan,
)

_STATUS_CODES: list[tuple[type[HirepathError], int, str]] = [
    (NotFoundError, 404, "not_found"),
    (AuthorizationError, 403, "forbidden"),
    (QuotaExceededError, 429, "quota_exceeded"),
    (SchemaViolationError, 422, "schema_violation"),
    (TransientServiceError, 503, "service_unavailable"),
]


@app.exception_handler(HirepathError)
async def hirepath_error_handler(_request: Request, exc: HirepathError):
    for exc_type, status_code, code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            break
    else:
        status_code, code = 500, "internal_error"
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"code": code, "message": str(exc)}},
    )


_orchestrator: JobSearchOrchestrator | None = None


async def get_orchestrator() -> JobSearchOrchestrator:
    """依赖项：首次使用时按配置组装编排器，并恢复上次未完成的运行。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = create_default_orchestrator()
        await _orchestrator.resume_incomplete()
    return _orchestrator


def get_file_storage() -> LocalFileStorage:
    return LocalFileStorage()


@app.get("/health")
def health():
    """探活。"""
    return {"status": "ok", "service": "hirepath"}


@app.post("/v1/cv/upload", response_model=CVUploadResponse)
async def cv_upload(
    file: UploadFile = File(..., description="简历文件（PDF / Word 等）"),
    auth: AuthContext = Depends(get_auth),
    storage: LocalFileStorage = Depends(get_file_storage),
):
    """保存简历并返回 file_ref；保存前用 MarkItDown 预检，读不出文字的文件直接拒绝。"""
    content = await file.read()
    if not content:
        raise HTTPException(status_code=422, detail="文件为空")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="文件超过 10 MB")
    try:
        markdown = await asyncio.to_thread(
            stream_to_markdown, io.BytesIO(content), filename=file.filename or None
        )
    except Exception as e:
        logger.warning("简历预检转换失败 user=%s: %s", auth.user_id, e)
        raise HTTPException(status_code=422, detail=f"无法解析该文件: {type(e).__name__}") from e
    if not markdown.strip():
        raise HTTPException(status_code=422, detail="简历无可读文字内容（可能是扫描件）")
    file_ref = storage.save(content, file.filename)
    return CVUploadResponse(file_ref=file_ref, filename=file.filename, size=len(content))


@app.post("/v1/job-search", response_model=JobSearchStartedResponse)
async def job_search_start(
    body: JobSearchRequest,
    auth: AuthContext = Depends(get_auth),
    orchestrator: JobSearchOrchestrator = Depends(get_orchestrator),
):
    """发起求职：扣减月度配额后启动后台运行。超配额返回 429。"""
    if not consume(auth.user_id, auth.tier):
        raise QuotaExceededError("本月求职次数已用尽，请升级后继续使用。")
    try:
        started = await orchestrator.start_workflow(body.cv_ref, auth.user_id, auth.tier)
    except Exception:
        refund(auth.user_id)
        raise
    return JobSearchStartedResponse(
        workflow_run_id=started.workflow_run_id,
        tracking_id=started.tracking_id,
        remaining_searches=get_remaining(auth.user_id, auth.tier),
    )


@app.get("/v1/job-search/progress/{tracking_id}", response_model=ProgressRecord | None)
async def job_search_progress(
    tracking_id: str,
    auth: AuthContext = Depends(get_auth),
    orchestrator: JobSearchOrchestrator = Depends(get_orchestrator),
):
    """进度轮询：记录尚未创建时返回 null；非本人记录返回 403。"""
    return await orchestrator.get_progress(tracking_id, auth.user_id)


@app.get("/v1/job-search/{run_id}/status", response_model=WorkflowStatus)
async def job_search_status(
    run_id: str,
    auth: AuthContext = Depends(get_auth),
    orchestrator: JobSearchOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.status(run_id, auth.user_id)


@app.get("/v1/job-search/{run_id}/results", response_model=SavedResultsResponse | None)
async def job_search_results(
    run_id: str,
    auth: AuthContext = Depends(get_auth),
    orchestrator: JobSearchOrchestrator = Depends(get_orchestrator),
):
    """保存的结果；运行尚未完成时返回 null。"""
    saved = await orchestrator.get_saved_results(run_id, auth.user_id)
    if saved is None:
        return None
    return SavedResultsResponse(summary=saved.summary, jobs=saved.jobs)


@app.post("/v1/job-search/{run_id}/cancel", response_model=CancelResponse)
async def job_search_cancel(
    run_id: str,
    auth: AuthContext = Depends(get_auth),
    orchestrator: JobSearchOrchestrator = Depends(get_orchestrator),
):
    canceled = await orchestrator.cancel(run_id, auth.user_id)
    return CancelResponse(workflow_run_id=run_id, canceled=canceled)
