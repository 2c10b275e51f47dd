"""
阶段 2：由求职画像推导检索关键词（SearchParameters）。

关键词只能来自画像内容；模型返回的空列表用画像里对应的字段补齐。
"""
from __future__ import annotations

import logging
import re

from hirepath.pipeline.context import StageDeps
from hirepath.pipeline.prompts import KEYWORD_EXTRACTION_PROMPT
from hirepath.pipeline.schemas import CVProfile, SearchParameters, TuneSearchInput
from hirepath.progress.tracker import PIPELINE_STAGES

logger = logging.getLogger(__name__)

BAND = PIPELINE_STAGES["tune_search"]

_TOKEN_RE = re.compile(r"[\w+#.]+", re.UNICODE)


def profile_to_text(profile: CVProfile) -> str:
    return (
        f"技能: {', '.join(profile.skills)}\n"
        f"经验级别: {profile.experience_level}\n"
        f"曾任职位: {', '.join(profile.job_titles)}\n"
        f"行业: {', '.join(profile.industries)}\n"
        f"关键词: {', '.join(profile.keywords)}\n"
        f"教育背景: {profile.education}\n"
        f"工作年限: {profile.years_of_experience}\n"
        f"期望地点: {', '.join(profile.preferred_locations)}"
    )


def allowed_vocabulary(profile: CVProfile) -> set[str]:
    """
    画像可派生出的词表（小写）：每个条目整体，以及条目切分出的单词。
    用于检查关键词是否都来自画像。
    """
    entries = [
        *profile.skills,
        *profile.job_titles,
        *profile.industries,
        *profile.keywords,
        *profile.preferred_locations,
        profile.education,
        profile.experience_level,
    ]
    vocab: set[str] = set()
    for entry in entries:
        lowered = entry.strip().lower()
        if not lowered:
            continue
        vocab.add(lowered)
        vocab.update(t.strip(".") for t in _TOKEN_RE.findall(lowered))
    vocab.discard("")
    return vocab


def _fill_empty(params: SearchParameters, profile: CVProfile) -> SearchParameters:
    fallback = {
        "primary_keywords": profile.skills[:5],
        "secondary_keywords": profile.industries,
        "search_terms": profile.job_titles,
        "job_title_keywords": profile.job_titles,
        "technical_skills": profile.skills,
    }
    empty = [name for name in fallback if not getattr(params, name)]
    if not empty:
        return params
    logger.warning("关键词列表为空，用画像补齐: %s", ", ".join(empty))
    return params.model_copy(update={name: list(fallback[name]) for name in empty})


async def tune_search(deps: StageDeps, data: TuneSearchInput) -> SearchParameters:
    profile = data.profile
    logger.info(
        "开始提取关键词: 技能 %d，职位 %d，年限 %s",
        len(profile.skills),
        len(profile.job_titles),
        profile.years_of_experience,
    )
    await deps.progress.advance(data.tracking_id, "extracting_keywords", 22, BAND.name)
    await deps.progress.advance(data.tracking_id, "extracting_keywords", 30, BAND.name)

    params = await deps.completion.complete(
        KEYWORD_EXTRACTION_PROMPT, f"【求职画像】\n{profile_to_text(profile)}", SearchParameters
    )
    params = _fill_empty(params, profile)

    logger.info(
        "关键词提取完成: 主 %d，辅 %d，检索词 %d，职位 %d，技术 %d",
        len(params.primary_keywords),
        len(params.secondary_keywords),
        len(params.search_terms),
        len(params.job_title_keywords),
        len(params.technical_skills),
    )
    await deps.progress.advance(data.tracking_id, "keywords_extracted", BAND.end, BAND.name)
    return params
