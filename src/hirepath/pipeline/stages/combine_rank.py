"""
阶段 4：合并排序并生成汇总。

- 输入为空时直接返回固定的空汇总，不调用补全；
- 整批一次排序补全：逐职位理由 / 顾虑 + 市场洞察；
- 逐职位抽取薪资、公司、职位类型（按批并发），单条失败视为「未抽取到」；
- 推荐档位只由经验匹配分决定：>=0.8 / >=0.6 / >=0.4 / 其余；
- 按匹配分稳定降序，同分保持原顺序，批内完成先后不影响结果顺序。
"""
from __future__ import annotations

import asyncio
import logging
from collections import Counter

from hirepath.pipeline.context import StageDeps
from hirepath.pipeline.prompts import JOB_DATA_PROMPT, JOB_RANKING_PROMPT
from hirepath.pipeline.schemas import (
    CombineInput,
    EchoedSearchParameters,
    JobDataExtraction,
    JobRanking,
    JobResult,
    RankedResults,
    Recommendation,
    SalaryRange,
    SearchResultsSummary,
)
from hirepath.pipeline.stages.search_jobs import build_search_terms
from hirepath.pipeline.stages.tune_search import profile_to_text
from hirepath.progress.tracker import PIPELINE_STAGES

logger = logging.getLogger(__name__)

BAND = PIPELINE_STAGES["combine_and_rank"]

MAX_TARGET_COMPANIES = 10
MAX_PREFERRED_JOB_TYPES = 3
DEFAULT_CURRENCY = "USD"

EMPTY_SALARY_INSIGHTS = "没有找到匹配的职位，暂无薪资信息。"
EMPTY_MARKET_OBSERVATIONS = "职位库中暂无与该简历匹配的职位，可稍后重试或调整简历内容。"


def recommendation_for(score: float) -> Recommendation:
    if score >= 0.8:
        return "highly_recommended"
    if score >= 0.6:
        return "recommended"
    if score >= 0.4:
        return "consider"
    return "not_recommended"


def aggregate_salary(extractions: list[JobDataExtraction | None]) -> SalaryRange | None:
    """合并各职位薪资为一个区间；缺失或非正的边界、min > max 的条目忽略。"""
    lows: list[float] = []
    highs: list[float] = []
    currencies: Counter[str] = Counter()
    for item in extractions:
        if item is None or not item.salary.is_salary_mentioned:
            continue
        low = item.salary.min if item.salary.min is not None else item.salary.max
        high = item.salary.max if item.salary.max is not None else item.salary.min
        if low is None or high is None or low <= 0 or high <= 0 or low > high:
            continue
        lows.append(low)
        highs.append(high)
        if item.salary.currency:
            currencies[item.salary.currency.strip().upper()] += 1
    if not lows:
        return None
    currency = currencies.most_common(1)[0][0] if currencies else DEFAULT_CURRENCY
    return SalaryRange(min=min(lows), max=max(highs), currency=currency)


def aggregate_companies(extractions: list[JobDataExtraction | None]) -> list[str]:
    """去重（不区分大小写）后保留前 10 个公司名，按出现顺序。"""
    names: list[str] = []
    seen: set[str] = set()
    for item in extractions:
        if item is None or not item.company.is_company_mentioned or not item.company.name:
            continue
        name = item.company.name.strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            names.append(name)
    return names[:MAX_TARGET_COMPANIES]


def aggregate_job_types(extractions: list[JobDataExtraction | None]) -> list[str]:
    """按出现频次取前 3 个职位类型；同频按首次出现顺序。"""
    counts = Counter(item.job_type for item in extractions if item is not None and item.job_type)
    return [job_type for job_type, _ in counts.most_common(MAX_PREFERRED_JOB_TYPES)]


def _ranking_input(data: CombineInput) -> str:
    lines = [
        f"{job.listing_id} | {job.listing.title} @{job.listing.location or '未注明'} | "
        f"经验匹配 {job.experience_match_score:.2f} | 命中 {', '.join(job.matched_skills) or '无'} | "
        f"缺失 {', '.join(job.missing_skills) or '无'}"
        for job in data.outcome.jobs
    ]
    return f"【候选人画像】\n{profile_to_text(data.profile)}\n\n【职位（ID | 标题 | 分数 | 技能）】\n" + "\n".join(lines)


def _job_data_input(job: JobResult) -> str:
    listing = job.listing
    return (
        f"职位: {listing.title}\n"
        f"公司: {listing.company or ''}\n"
        f"地点: {listing.location or ''}\n"
        f"描述: {(listing.description or '')[:4000]}"
    )


async def _extract_all(deps: StageDeps, data: CombineInput) -> list[JobDataExtraction | None]:
    jobs = data.outcome.jobs
    batch_size = deps.settings.extraction_concurrency
    extractions: list[JobDataExtraction | None] = []
    for start in range(0, len(jobs), batch_size):
        chunk = jobs[start:start + batch_size]
        outcomes = await asyncio.gather(
            *(deps.completion.complete(JOB_DATA_PROMPT, _job_data_input(job), JobDataExtraction) for job in chunk),
            return_exceptions=True,
        )
        for job, outcome in zip(chunk, outcomes):
            if isinstance(outcome, JobDataExtraction):
                extractions.append(outcome)
            elif isinstance(outcome, Exception):
                logger.warning("职位 %s 信息抽取失败，按未抽取处理: %s", job.listing_id, outcome)
                extractions.append(None)
            else:
                raise outcome
        done = min(start + batch_size, len(jobs))
        await deps.progress.advance(
            data.tracking_id, "extracting_job_data", 70 + round(8 * done / len(jobs)), BAND.name
        )
    return extractions


def _strategy(data: CombineInput) -> str:
    terms = build_search_terms(data.params)
    return f"按 {len(terms)} 个检索词在职位标题与描述中全文检索：{', '.join(terms)}"


async def combine_and_rank(deps: StageDeps, data: CombineInput) -> RankedResults:
    jobs = data.outcome.jobs
    locations = list(data.profile.preferred_locations)

    if not jobs:
        logger.info("无可排序的职位，返回空汇总")
        await deps.progress.advance(data.tracking_id, "jobs_ranked", BAND.end, BAND.name)
        summary = SearchResultsSummary(
            workflow_run_id=data.workflow_run_id,
            user_id=data.user_id,
            cv_ref=data.cv_ref,
            total_found=0,
            total_relevant=0,
            avg_match_score=0.0,
            salary_insights=EMPTY_SALARY_INSIGHTS,
            market_observations=EMPTY_MARKET_OBSERVATIONS,
            search_parameters=EchoedSearchParameters(
                optimized_keywords=list(data.params.primary_keywords),
                target_job_titles=list(data.params.job_title_keywords),
                locations=locations,
                search_strategy=_strategy(data),
            ),
        )
        return RankedResults(jobs=[], summary=summary)

    logger.info("开始排序 %d 条职位", len(jobs))
    await deps.progress.advance(data.tracking_id, "ranking_jobs", 62, BAND.name)
    ranking = await deps.completion.complete(JOB_RANKING_PROMPT, _ranking_input(data), JobRanking)
    notes = {note.id: note for note in ranking.ranked_jobs}
    await deps.progress.advance(data.tracking_id, "ranking_jobs", 70, BAND.name)

    extractions = await _extract_all(deps, data)

    final: list[JobResult] = []
    for job, extraction in zip(jobs, extractions):
        note = notes.get(job.listing_id)
        score = job.experience_match_score
        update = {
            "match_score": score,
            "ai_match_reasons": note.match_reasons if note else [],
            "ai_concerns": note.concerns if note else [],
            "ai_recommendation": recommendation_for(score),
        }
        if extraction is not None:
            update["extracted_salary"] = extraction.salary if extraction.salary.is_salary_mentioned else None
            update["extracted_company"] = extraction.company.name if extraction.company.is_company_mentioned else None
            update["extracted_job_type"] = extraction.job_type
        final.append(job.model_copy(update=update))

    # sorted 是稳定排序，同分保持检索阶段的发现顺序
    final = sorted(final, key=lambda j: j.match_score or 0.0, reverse=True)
    avg = sum(j.match_score or 0.0 for j in final) / len(final)

    insights = ranking.insights
    summary = SearchResultsSummary(
        workflow_run_id=data.workflow_run_id,
        user_id=data.user_id,
        cv_ref=data.cv_ref,
        total_found=data.outcome.total_found,
        total_relevant=min(insights.total_relevant, len(final)),
        avg_match_score=round(avg, 4),
        top_skills_in_demand=insights.top_skills_in_demand,
        salary_insights=insights.salary_insights,
        market_observations=insights.market_observations,
        search_parameters=EchoedSearchParameters(
            optimized_keywords=list(dict.fromkeys([*data.params.primary_keywords, *data.params.search_terms])),
            target_job_titles=list(data.params.job_title_keywords),
            target_companies=aggregate_companies(extractions),
            salary_range=aggregate_salary(extractions),
            preferred_job_types=aggregate_job_types(extractions),
            locations=locations,
            search_strategy=_strategy(data),
        ),
    )
    logger.info("排序完成: %d 条，平均匹配分 %.2f", len(final), summary.avg_match_score)
    await deps.progress.advance(data.tracking_id, "jobs_ranked", BAND.end, BAND.name)
    return RankedResults(jobs=final, summary=summary)
