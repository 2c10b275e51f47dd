"""
测试公用：脚本化补全客户端、示例画像与关键词、内存依赖组装。测试中不调用真实 LLM。
"""
from __future__ import annotations

from typing import Any, Callable

import pytest

from hirepath.ai.completion import StructuredCompletionClient
from hirepath.errors import SchemaViolationError
from hirepath.files import LocalFileStorage
from hirepath.jobs.schemas import NewJobListing
from hirepath.jobs.store import SqliteJobListingStore
from hirepath.pipeline.context import StageDeps, StageSettings
from hirepath.pipeline.schemas import (
    CVProfile,
    ExperienceAssessment,
    JobDataExtraction,
    JobFitAnalysis,
    JobRanking,
    LocationAssessment,
    RankingInsights,
    SearchParameters,
)
from hirepath.progress.tracker import ProgressTracker
from hirepath.results.repository import ResultsRepository
from hirepath.storage.backends import MemoryBackend

CV_MARKDOWN = "# Jane Doe\nFrontend developer, 4 years of React and TypeScript. Based in Riyadh."


class ScriptedCompletionClient(StructuredCompletionClient):
    """
    按输出类型返回预置结果并记录调用。
    预置值可以是模型实例、异常实例，或接收 user_content 的函数（返回模型或抛异常）。
    """

    def __init__(self, responses: dict[type, Any] | None = None):
        self.responses: dict[type, Any] = dict(responses or {})
        self.calls: list[tuple[type, str]] = []

    def count(self, output_type: type | None = None) -> int:
        return sum(1 for t, _ in self.calls if output_type is None or t is output_type)

    async def complete(self, system_prompt, user_content, output_type):
        self.calls.append((output_type, user_content))
        response = self.responses.get(output_type)
        if response is None:
            raise SchemaViolationError(f"测试未预置 {output_type.__name__}")
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(user_content)
        return response


def fit(score: float = 0.7, level: str = "good", work_type: str = "remote") -> JobFitAnalysis:
    return JobFitAnalysis(
        experience=ExperienceAssessment(level=level, score=score, reasons=["技能吻合"], gaps=[]),
        location=LocationAssessment(score=0.8, reasons=["同城"], work_type=work_type),
        benefits=["医疗保险"],
        requirements=["3 年以上经验"],
    )


def ranking(total_relevant: int = 1) -> JobRanking:
    return JobRanking(
        ranked_jobs=[],
        insights=RankingInsights(
            total_relevant=total_relevant,
            avg_match_score=0.5,
            top_skills_in_demand=["React"],
            salary_insights="薪资区间稳定",
            market_observations="前端岗位需求旺盛",
        ),
    )


def listing(title: str, description: str = "", location: str | None = "Riyadh", **kwargs) -> NewJobListing:
    source_id = kwargs.pop("source_id", title.lower().replace(" ", "-"))
    return NewJobListing(
        title=title,
        description=description,
        location=location,
        source="Mock",
        source_id=source_id,
        source_url=f"https://example.com/jobs/{source_id}",
        **kwargs,
    )


@pytest.fixture
def profile() -> CVProfile:
    return CVProfile(
        skills=["React", "TypeScript"],
        experience_level="mid",
        job_titles=["Frontend Developer"],
        industries=["Software"],
        keywords=["web"],
        education="BSc Computer Science",
        years_of_experience=4,
        preferred_locations=["Riyadh"],
    )


@pytest.fixture
def params() -> SearchParameters:
    return SearchParameters(
        primary_keywords=["React", "TypeScript"],
        secondary_keywords=["Software"],
        search_terms=["React"],
        job_title_keywords=["Frontend Developer"],
        technical_skills=["React", "TypeScript"],
    )


@pytest.fixture
def completion(profile, params) -> ScriptedCompletionClient:
    return ScriptedCompletionClient({
        CVProfile: profile,
        SearchParameters: params,
        JobFitAnalysis: fit(),
        JobRanking: ranking(),
        JobDataExtraction: JobDataExtraction(),
    })


@pytest.fixture
def store():
    s = SqliteJobListingStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def file_storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(root=tmp_path / "uploads", base_url="")


@pytest.fixture
def make_deps(completion, store, file_storage, backend) -> Callable[..., StageDeps]:
    """组装阶段依赖；可按需覆盖任意一项。"""

    def _make(**overrides) -> StageDeps:
        values = dict(
            completion=completion,
            store=store,
            file_storage=file_storage,
            progress=ProgressTracker(backend),
            results=ResultsRepository(backend),
            load_document=lambda url: CV_MARKDOWN,
            settings=StageSettings(
                max_results=20,
                extraction_concurrency=10,
                search_limit=20,
                max_input_tokens=6000,
                model_name="openai/gpt-4o-mini",
            ),
        )
        values.update(overrides)
        return StageDeps(**values)

    return _make
