"""
阶段 1：解析简历。file_ref → 下载地址 → Markdown → CVProfile。

下载地址解析不到视为永久错误（NotFoundError），不重试；
补全服务不可用由引擎按步骤策略重试。
"""
from __future__ import annotations

import asyncio
import logging

from hirepath.core.tokens import count_tokens, truncate_to_tokens
from hirepath.errors import NotFoundError, SchemaViolationError
from hirepath.pipeline.context import StageDeps
from hirepath.pipeline.prompts import CV_PROFILE_PROMPT
from hirepath.pipeline.schemas import CVProfile, ParseCVInput
from hirepath.progress.tracker import PIPELINE_STAGES

logger = logging.getLogger(__name__)

BAND = PIPELINE_STAGES["parse_cv"]


async def parse_cv(deps: StageDeps, data: ParseCVInput) -> CVProfile:
    url = deps.file_storage.resolve_to_download_url(data.cv_ref)
    if not url:
        raise NotFoundError(f"简历文件不存在: {data.cv_ref}")

    logger.info("开始解析简历 cv_ref=%s user=%s", data.cv_ref, data.user_id)
    await deps.progress.advance(data.tracking_id, "parsing_cv", 5, BAND.name)

    markdown = await asyncio.to_thread(deps.load_document, url)
    if not (markdown or "").strip():
        raise SchemaViolationError("简历无可读文字内容（可能是扫描件）")

    cap = deps.settings.max_input_tokens
    # 字符数不超过上限时 token 数也不会超
    if len(markdown) > cap and count_tokens(markdown, deps.settings.model_name) > cap:
        logger.info("简历超过 %d token，截断后再解析", cap)
        markdown = truncate_to_tokens(markdown, cap, deps.settings.model_name)

    await deps.progress.advance(data.tracking_id, "parsing_cv", 15, BAND.name)
    profile = await deps.completion.complete(
        CV_PROFILE_PROMPT, f"【简历】\n{markdown}", CVProfile
    )

    logger.info(
        "简历解析完成: 技能 %d，职位 %d，行业 %d，年限 %s，级别 %s",
        len(profile.skills),
        len(profile.job_titles),
        len(profile.industries),
        profile.years_of_experience,
        profile.experience_level,
    )
    await deps.progress.advance(data.tracking_id, "cv_parsed", BAND.end, BAND.name)
    return profile
