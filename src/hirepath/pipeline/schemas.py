"""
求职流水线的数据模型：阶段间传递的类型、结构化补全的输出类型、最终保存的结果。

阶段间只传这些显式类型（CVProfile → SearchParameters → JobSearchOutcome → RankedResults），
从运行日志回放时会重新校验，格式不符的中间状态立即被拒绝。
"""
from datetime import UTC, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from hirepath.core.tiers import DEFAULT_TIER, Tier
from hirepath.jobs.schemas import JobListing

ExperienceLevel = Literal["entry", "mid", "senior", "executive"]
ExperienceMatch = Literal["excellent_match", "good_match", "partial_match", "mismatch"]
LocationMatch = Literal["location_match", "location_mismatch", "no_location_provided"]
Recommendation = Literal["highly_recommended", "recommended", "consider", "not_recommended"]
WorkType = Literal["remote", "hybrid", "onsite", "unknown"]
JobType = Literal["full_time", "part_time", "contract", "internship", "temporary", "remote"]


# ---------- 结构化补全的输出 ----------


class CVProfile(BaseModel):
    """简历结构化结果；所有列表至少一项，后续阶段依赖这一点。"""
    skills: list[str] = Field(..., min_length=1, description="技能")
    experience_level: ExperienceLevel = Field(..., description="经验级别")
    job_titles: list[str] = Field(..., min_length=1, description="曾任职位")
    industries: list[str] = Field(..., min_length=1, description="所在行业")
    keywords: list[str] = Field(..., min_length=1, description="相关关键词")
    education: str = Field(..., min_length=1, description="教育背景")
    years_of_experience: float = Field(..., ge=0, description="工作年限")
    preferred_locations: list[str] = Field(..., min_length=1, description="期望工作地点")


class SearchParameters(BaseModel):
    """由简历推导的检索关键词；只能来自简历内容（或其合理同义词）。"""
    primary_keywords: list[str] = Field(..., description="主关键词（技能与经历）")
    secondary_keywords: list[str] = Field(..., description="辅助关键词与相关术语")
    search_terms: list[str] = Field(..., description="用于职位库检索的具体检索词")
    job_title_keywords: list[str] = Field(..., description="职位名称")
    technical_skills: list[str] = Field(..., description="技术技能")


class ExperienceAssessment(BaseModel):
    level: Literal["excellent", "good", "partial", "mismatch"] = Field(..., description="经验匹配档位")
    score: float = Field(..., ge=0, le=1, description="经验匹配分 0–1")
    reasons: list[str] = Field(default_factory=list, description="匹配理由")
    gaps: list[str] = Field(default_factory=list, description="经验差距")


class LocationAssessment(BaseModel):
    score: float = Field(..., ge=0, le=1, description="地点匹配分 0–1")
    reasons: list[str] = Field(default_factory=list, description="理由")
    work_type: WorkType = Field("unknown", description="远程 / 混合 / 现场")


class JobFitAnalysis(BaseModel):
    """单个职位与简历的匹配分析（检索阶段逐条调用）。"""
    experience: ExperienceAssessment
    location: LocationAssessment
    benefits: list[str] = Field(default_factory=list, description="福利（至多 3 条）")
    requirements: list[str] = Field(default_factory=list, description="要求（至多 3 条）")


class RankedJobNote(BaseModel):
    id: str = Field(..., description="职位库 ID")
    match_reasons: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)


class RankingInsights(BaseModel):
    total_relevant: int = Field(..., ge=0)
    avg_match_score: float = Field(0.0, ge=0, le=1)
    top_skills_in_demand: list[str] = Field(default_factory=list)
    salary_insights: str = ""
    market_observations: str = ""


class JobRanking(BaseModel):
    """整批排序：逐职位的理由与顾虑，以及市场层面的洞察。"""
    ranked_jobs: list[RankedJobNote] = Field(default_factory=list)
    insights: RankingInsights


class SalaryExtraction(BaseModel):
    is_salary_mentioned: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    currency: Optional[str] = None


class CompanyExtraction(BaseModel):
    is_company_mentioned: bool = False
    name: Optional[str] = None


class JobDataExtraction(BaseModel):
    """只从职位文本中抽取明确写出的信息；未提及的字段为空。"""
    salary: SalaryExtraction = Field(default_factory=SalaryExtraction)
    company: CompanyExtraction = Field(default_factory=CompanyExtraction)
    job_type: Optional[JobType] = None


# ---------- 职位结果与汇总 ----------


class JobResult(BaseModel):
    """某次运行中单个职位的标注结果；检索阶段填匹配分析，排序阶段补推荐与抽取信息。"""
    listing_id: str = Field(..., description="职位库 ID")
    listing: JobListing = Field(..., description="职位快照")
    matched_skills: list[str] = Field(default_factory=list)
    missing_skills: list[str] = Field(default_factory=list)
    experience_match: ExperienceMatch
    experience_match_score: float = Field(..., ge=0, le=1)
    experience_match_reasons: list[str] = Field(default_factory=list)
    experience_gaps: list[str] = Field(default_factory=list)
    location_match: LocationMatch
    location_match_score: float = Field(0.0, ge=0, le=1)
    location_match_reasons: list[str] = Field(default_factory=list)
    work_type_match: bool = False
    benefits: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    # 排序阶段填充
    match_score: Optional[float] = Field(None, ge=0, le=1)
    ai_match_reasons: list[str] = Field(default_factory=list)
    ai_concerns: list[str] = Field(default_factory=list)
    ai_recommendation: Optional[Recommendation] = None
    extracted_salary: Optional[SalaryExtraction] = None
    extracted_company: Optional[str] = None
    extracted_job_type: Optional[JobType] = None


class JobSearchOutcome(BaseModel):
    jobs: list[JobResult] = Field(default_factory=list)
    total_found: int = Field(0, ge=0, description="截断前去重后的职位数")


class SalaryRange(BaseModel):
    min: float
    max: float
    currency: str


class EchoedSearchParameters(BaseModel):
    optimized_keywords: list[str] = Field(default_factory=list)
    target_job_titles: list[str] = Field(default_factory=list)
    target_companies: list[str] = Field(default_factory=list)
    salary_range: Optional[SalaryRange] = None
    preferred_job_types: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    search_strategy: str = ""


class SearchResultsSummary(BaseModel):
    """每次运行一份，排序阶段生成、保存阶段落库，之后不再修改。"""
    workflow_run_id: str
    user_id: str
    cv_ref: str
    total_found: int = Field(0, ge=0)
    total_relevant: int = Field(0, ge=0)
    avg_match_score: float = Field(0.0, ge=0, le=1)
    top_skills_in_demand: list[str] = Field(default_factory=list)
    salary_insights: str = ""
    market_observations: str = ""
    search_parameters: EchoedSearchParameters = Field(default_factory=EchoedSearchParameters)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RankedResults(BaseModel):
    jobs: list[JobResult] = Field(default_factory=list)
    summary: SearchResultsSummary


class SavedResultsRef(BaseModel):
    workflow_run_id: str
    saved_jobs: int = Field(..., ge=0)


# ---------- 各阶段输入 ----------


class StageInput(BaseModel):
    user_id: str
    tracking_id: str


class ParseCVInput(StageInput):
    cv_ref: str = Field(..., min_length=1)


class TuneSearchInput(StageInput):
    profile: CVProfile


class SearchJobsInput(StageInput):
    params: SearchParameters
    profile: CVProfile
    tier: Tier = Field(DEFAULT_TIER, description="用户档位，决定本次保留的职位数")


class CombineInput(StageInput):
    workflow_run_id: str
    cv_ref: str
    outcome: JobSearchOutcome
    params: SearchParameters
    profile: CVProfile


class SaveResultsInput(StageInput):
    workflow_run_id: str
    cv_ref: str
    results: RankedResults
