"""
阶段 3：检索职位库并逐条做匹配分析。

1. 检索词：至多 3 个技术技能 + 2 个职位名 + 3 个主关键词，去重后不超过 8 个；
2. 每个检索词分别在 description、title 上全文检索，按职位 ID 去重（保持发现顺序）；
3. 跳过该用户以往运行已推荐过的职位；剩余为空时退回子串过滤（同样跳过已推荐过的）；
4. 技能重叠（命中 / 缺失）本地计算，经验与地点分析每条职位调用一次补全，按批并发；
5. 地点分类按期望地点对职位地点做不区分大小写的子串匹配；
6. 按发现顺序保留前 N 条成功分析的结果，此处不排序（排序在下一阶段）；
   N 由档位决定（free 7，pro 20），且不超过 HIREPATH_MAX_RESULTS。

单条职位分析失败只丢弃该职位并记录日志，不影响整个阶段。
"""
from __future__ import annotations

import asyncio
import logging
import math

from hirepath.core.tiers import max_results_for
from hirepath.jobs.schemas import JobListing
from hirepath.pipeline.context import StageDeps
from hirepath.pipeline.prompts import JOB_FIT_PROMPT
from hirepath.pipeline.schemas import (
    CVProfile,
    JobFitAnalysis,
    JobResult,
    JobSearchOutcome,
    LocationMatch,
    SearchJobsInput,
    SearchParameters,
)
from hirepath.pipeline.stages.tune_search import profile_to_text
from hirepath.progress.tracker import PIPELINE_STAGES

logger = logging.getLogger(__name__)

BAND = PIPELINE_STAGES["search_jobs"]

MAX_TECHNICAL_SKILLS = 3
MAX_JOB_TITLES = 2
MAX_PRIMARY_KEYWORDS = 3
# 全文检索单次只接受有限个词，检索词总数上限
MAX_SEARCH_TERMS = MAX_TECHNICAL_SKILLS + MAX_JOB_TITLES + MAX_PRIMARY_KEYWORDS
MIN_TERM_LENGTH = 3

SEARCH_FIELDS = ("description", "title")

_EXPERIENCE_LEVELS = {
    "excellent": "excellent_match",
    "good": "good_match",
    "partial": "partial_match",
    "mismatch": "mismatch",
}
_WORK_TYPES = {"remote", "hybrid", "onsite"}


def build_search_terms(params: SearchParameters) -> list[str]:
    """组合检索词：去首尾空白，丢弃过短的词，不区分大小写去重，总数不超过 8。"""
    candidates = [
        *params.technical_skills[:MAX_TECHNICAL_SKILLS],
        *params.job_title_keywords[:MAX_JOB_TITLES],
        *params.primary_keywords[:MAX_PRIMARY_KEYWORDS],
    ]
    terms: list[str] = []
    seen: set[str] = set()
    for raw in candidates:
        term = (raw or "").strip()
        if len(term) < MIN_TERM_LENGTH or term.lower() in seen:
            continue
        seen.add(term.lower())
        terms.append(term)
    return terms[:MAX_SEARCH_TERMS]


def fallback_words(terms: list[str]) -> list[str]:
    """子串兜底用的词：按空白切分，长度大于 2，小写。"""
    return [w.lower() for term in terms for w in term.split() if len(w) > 2]


def _haystack(listing: JobListing) -> str:
    return " ".join(
        part or ""
        for part in (listing.title, listing.description, listing.company, listing.source, listing.location)
    ).lower()


def skill_overlap(listing: JobListing, skills: list[str]) -> tuple[list[str], list[str]]:
    """技能在 title+description 中出现即视为命中。"""
    text = f"{listing.title} {listing.description}".lower()
    matched = [s for s in skills if s.lower() in text]
    missing = [s for s in skills if s.lower() not in text]
    return matched, missing


def classify_location(listing: JobListing, preferred_locations: list[str]) -> LocationMatch:
    wanted = [loc.strip().lower() for loc in preferred_locations if loc and loc.strip()]
    if not wanted:
        return "no_location_provided"
    where = (listing.location or "").lower()
    return "location_match" if any(loc in where for loc in wanted) else "location_mismatch"


async def find_candidates(deps: StageDeps, terms: list[str], exclude: set[str] | None = None) -> list[JobListing]:
    """
    全文检索所有 (检索词, 字段) 组合，合并去重并去掉 exclude 中的职位；
    没有剩余结果时退回子串过滤（同样去掉 exclude）。
    """
    exclude = exclude or set()
    limit = deps.settings.search_limit
    queries = [deps.store.full_text_search(field, term, limit) for term in terms for field in SEARCH_FIELDS]
    hits = [listing for batch in await asyncio.gather(*queries) for listing in batch]
    unseen = _unique(hits, exclude)

    if not unseen and terms:
        words = fallback_words(terms)
        logger.info("全文检索没有未推荐过的职位（原始命中 %d 条），退回子串过滤: %s", len(hits), words)
        if words:
            hits = await deps.store.substring_filter(lambda listing: any(w in _haystack(listing) for w in words))
            unseen = _unique(hits, exclude)
    return unseen


def _unique(listings: list[JobListing], exclude: set[str]) -> list[JobListing]:
    """按 ID 去重，保持发现顺序。"""
    unique: dict[str, JobListing] = {}
    for listing in listings:
        if listing.id not in exclude:
            unique.setdefault(listing.id, listing)
    return list(unique.values())


def _job_text(listing: JobListing) -> str:
    return (
        f"职位: {listing.title}\n"
        f"公司: {listing.company or '未知'}\n"
        f"地点: {listing.location or '未注明'}\n"
        f"描述: {(listing.description or '')[:4000]}"
    )


async def analyze_listing(
    deps: StageDeps,
    listing: JobListing,
    profile: CVProfile,
    params: SearchParameters,
) -> JobResult:
    matched, missing = skill_overlap(listing, params.technical_skills)
    user_content = (
        f"【候选人画像】\n{profile_to_text(profile)}\n\n"
        f"【职位】\n{_job_text(listing)}\n"
        f"已命中技能: {', '.join(matched) or '无'}；缺失技能: {', '.join(missing) or '无'}"
    )
    analysis = await deps.completion.complete(JOB_FIT_PROMPT, user_content, JobFitAnalysis)
    return JobResult(
        listing_id=listing.id,
        listing=listing,
        matched_skills=matched,
        missing_skills=missing,
        experience_match=_EXPERIENCE_LEVELS[analysis.experience.level],
        experience_match_score=analysis.experience.score,
        experience_match_reasons=analysis.experience.reasons,
        experience_gaps=analysis.experience.gaps,
        location_match=classify_location(listing, profile.preferred_locations),
        location_match_score=analysis.location.score,
        location_match_reasons=analysis.location.reasons,
        work_type_match=analysis.location.work_type in _WORK_TYPES,
        benefits=analysis.benefits[:3],
        requirements=analysis.requirements[:3],
    )


async def search_jobs(deps: StageDeps, data: SearchJobsInput) -> JobSearchOutcome:
    params, profile = data.params, data.profile
    terms = build_search_terms(params)
    logger.info(
        "开始检索职位: 检索词 %d 个（%s），年限 %s",
        len(terms),
        ", ".join(terms),
        profile.years_of_experience,
    )
    await deps.progress.advance(data.tracking_id, "searching_jobs", 42, BAND.name)

    seen = await deps.results.seen_listing_ids(data.user_id)
    candidates = await find_candidates(deps, terms, exclude=seen)
    total_found = len(candidates)
    await deps.progress.advance(data.tracking_id, "searching_jobs", 52, BAND.name)

    # 档位上限与全局配置取小
    max_results = min(deps.settings.max_results, max_results_for(data.tier))
    batch_size = deps.settings.extraction_concurrency
    total_batches = max(1, math.ceil(total_found / batch_size))
    results: list[JobResult] = []
    for index, start in enumerate(range(0, total_found, batch_size)):
        if len(results) >= max_results:
            break
        chunk = candidates[start:start + batch_size]
        outcomes = await asyncio.gather(
            *(analyze_listing(deps, listing, profile, params) for listing in chunk),
            return_exceptions=True,
        )
        for listing, outcome in zip(chunk, outcomes):
            if isinstance(outcome, JobResult):
                results.append(outcome)
            elif isinstance(outcome, Exception):
                logger.warning("职位 %s 分析失败，已丢弃: %s", listing.id, outcome)
            else:
                raise outcome
        pct = 52 + round(6 * (index + 1) / total_batches)
        await deps.progress.advance(data.tracking_id, "processing_jobs", min(pct, 58), BAND.name)

    results = results[:max_results]
    logger.info(
        "检索完成: 去重后 %d 条，分析成功保留 %d 条（%s 档上限 %d）",
        total_found, len(results), data.tier, max_results,
    )
    await deps.progress.advance(data.tracking_id, "jobs_processed", BAND.end, BAND.name)
    return JobSearchOutcome(jobs=results, total_found=total_found)
