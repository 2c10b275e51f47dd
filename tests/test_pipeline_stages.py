"""
流水线五个阶段（脚本化补全客户端 + 内存职位库）。

覆盖：解析简历（文件不存在、确定性）、关键词不编造、检索词上限、检索 / 兜底 / 单条失败丢弃 / 截断 / 按档位保留、
合并排序（空输入短路、稳定降序、推荐档位、薪资公司类型汇总）、保存结果幂等。
"""
import asyncio

import pytest

from conftest import ScriptedCompletionClient, fit, listing, ranking
from hirepath.errors import NotFoundError, SchemaViolationError, TransientServiceError
from hirepath.jobs.schemas import JobListing
from hirepath.pipeline.schemas import (
    CombineInput,
    CompanyExtraction,
    CVProfile,
    JobDataExtraction,
    JobFitAnalysis,
    JobRanking,
    JobResult,
    JobSearchOutcome,
    ParseCVInput,
    RankedJobNote,
    SalaryExtraction,
    SaveResultsInput,
    SearchJobsInput,
    SearchParameters,
    TuneSearchInput,
)
from hirepath.pipeline.stages import (
    allowed_vocabulary,
    build_search_terms,
    combine_and_rank,
    parse_cv,
    recommendation_for,
    save_results,
    search_jobs,
    tune_search,
)


def _tracking(deps, user_id="u1"):
    return asyncio.run(deps.progress.create(user_id))


def _seed(store, *items):
    return asyncio.run(store.insert_many(list(items)))


def _job_result(listing_id: str, score: float, title: str | None = None) -> JobResult:
    return JobResult(
        listing_id=listing_id,
        listing=JobListing(
            id=listing_id,
            title=title or f"Job {listing_id}",
            description="",
            source="Mock",
            source_id=listing_id,
            source_url=f"https://example.com/{listing_id}",
        ),
        experience_match="good_match",
        experience_match_score=score,
        location_match="location_match",
    )


# ----- ParseCV -----


def test_parse_cv_unresolvable_ref_is_not_found(make_deps, completion):
    deps = make_deps()
    tid = _tracking(deps)
    with pytest.raises(NotFoundError):
        asyncio.run(parse_cv(deps, ParseCVInput(cv_ref="missing.pdf", user_id="u1", tracking_id=tid)))
    assert completion.count() == 0


def test_parse_cv_is_deterministic(make_deps, file_storage, profile):
    deps = make_deps()
    tid = _tracking(deps)
    ref = file_storage.save(b"%PDF-1.4 fake", "cv.pdf")
    data = ParseCVInput(cv_ref=ref, user_id="u1", tracking_id=tid)
    first = asyncio.run(parse_cv(deps, data))
    second = asyncio.run(parse_cv(deps, data))
    assert first == profile
    assert first.model_dump_json() == second.model_dump_json()
    record = asyncio.run(deps.progress.read(tid, "u1"))
    assert (record.stage, record.percentage) == ("cv_parsed", 20)


def test_parse_cv_passes_markdown_to_completion(make_deps, file_storage, completion):
    deps = make_deps(load_document=lambda url: "# CV\nKotlin engineer")
    ref = file_storage.save(b"x", "cv.docx")
    asyncio.run(parse_cv(deps, ParseCVInput(cv_ref=ref, user_id="u1", tracking_id=_tracking(deps))))
    output_type, content = completion.calls[0]
    assert output_type is CVProfile
    assert "Kotlin engineer" in content


def test_parse_cv_empty_document_is_schema_violation(make_deps, file_storage):
    deps = make_deps(load_document=lambda url: "   ")
    ref = file_storage.save(b"x", "cv.pdf")
    with pytest.raises(SchemaViolationError):
        asyncio.run(parse_cv(deps, ParseCVInput(cv_ref=ref, user_id="u1", tracking_id=_tracking(deps))))


def test_cv_profile_requires_non_empty_lists(profile):
    data = profile.model_dump()
    data["skills"] = []
    with pytest.raises(ValueError):
        CVProfile.model_validate(data)


# ----- TuneSearch -----


def test_tune_search_only_uses_profile_vocabulary(make_deps, profile):
    deps = make_deps()
    params = asyncio.run(tune_search(deps, TuneSearchInput(profile=profile, user_id="u1", tracking_id=_tracking(deps))))
    vocab = allowed_vocabulary(profile)
    keywords = [
        *params.primary_keywords,
        *params.secondary_keywords,
        *params.search_terms,
        *params.job_title_keywords,
        *params.technical_skills,
    ]
    assert keywords
    for keyword in keywords:
        assert keyword.lower() in vocab or all(w in vocab for w in keyword.lower().split())


def test_tune_search_fills_empty_lists_from_profile(make_deps, profile):
    completion = ScriptedCompletionClient({
        SearchParameters: SearchParameters(
            primary_keywords=["React"],
            secondary_keywords=[],
            search_terms=["React"],
            job_title_keywords=[],
            technical_skills=[],
        )
    })
    deps = make_deps(completion=completion)
    tid = _tracking(deps)
    params = asyncio.run(tune_search(deps, TuneSearchInput(profile=profile, user_id="u1", tracking_id=tid)))
    assert params.technical_skills == ["React", "TypeScript"]
    assert params.job_title_keywords == ["Frontend Developer"]
    assert params.secondary_keywords == ["Software"]
    assert asyncio.run(deps.progress.read(tid, "u1")).percentage == 40


def test_tune_search_is_deterministic(make_deps, profile):
    deps = make_deps()
    data = TuneSearchInput(profile=profile, user_id="u1", tracking_id=_tracking(deps))
    assert asyncio.run(tune_search(deps, data)).model_dump_json() == asyncio.run(tune_search(deps, data)).model_dump_json()


# ----- SearchJobs -----


def test_build_search_terms_never_exceeds_eight():
    params = SearchParameters(
        primary_keywords=[f"primary{i}" for i in range(10)],
        secondary_keywords=[],
        search_terms=[],
        job_title_keywords=[f"title{i}" for i in range(10)],
        technical_skills=[f"skill{i}" for i in range(10)],
    )
    terms = build_search_terms(params)
    assert len(terms) == 8
    assert terms == [
        "skill0", "skill1", "skill2", "title0", "title1", "primary0", "primary1", "primary2",
    ]


def test_build_search_terms_drops_short_and_duplicate_terms():
    params = SearchParameters(
        primary_keywords=["react", " Go ", "Python"],
        secondary_keywords=[],
        search_terms=[],
        job_title_keywords=["  React  "],
        technical_skills=["React", "C", "js"],
    )
    assert build_search_terms(params) == ["React", "Python"]


def test_search_jobs_scenario_single_react_listing(make_deps, store, profile, params):
    _seed(store, listing("React Developer", "We use React and TypeScript daily", location="Riyadh, Saudi Arabia"))
    deps = make_deps()
    tid = _tracking(deps)
    outcome = asyncio.run(search_jobs(deps, SearchJobsInput(params=params, profile=profile, user_id="u1", tracking_id=tid)))
    assert outcome.total_found == 1
    assert len(outcome.jobs) == 1
    job = outcome.jobs[0]
    assert job.listing.title == "React Developer"
    assert job.matched_skills == ["React", "TypeScript"]
    assert job.missing_skills == []
    assert job.location_match == "location_match"
    assert job.experience_match == "good_match"
    assert job.work_type_match is True
    record = asyncio.run(deps.progress.read(tid, "u1"))
    assert (record.stage, record.percentage) == ("jobs_processed", 60)


def test_search_jobs_empty_store(make_deps, profile, params, completion):
    deps = make_deps()
    outcome = asyncio.run(
        search_jobs(deps, SearchJobsInput(params=params, profile=profile, user_id="u1", tracking_id=_tracking(deps)))
    )
    assert outcome.jobs == []
    assert outcome.total_found == 0
    assert completion.count(JobFitAnalysis) == 0


def test_search_jobs_falls_back_to_substring_match(make_deps, store, profile, params):
    # 全文检索按整词匹配，"Reactive" 不会命中 "React"；子串兜底可以
    _seed(store, listing("Reactive Systems Engineer", "Event driven services", location="Cairo"))
    deps = make_deps()
    outcome = asyncio.run(
        search_jobs(deps, SearchJobsInput(params=params, profile=profile, user_id="u1", tracking_id=_tracking(deps)))
    )
    assert [j.listing.title for j in outcome.jobs] == ["Reactive Systems Engineer"]
    assert outcome.jobs[0].location_match == "location_mismatch"


def test_search_jobs_drops_failed_analysis(make_deps, store, profile, params):
    _seed(store, listing("React Developer", "React"), listing("React Broken Role", "React"))

    def analyze(content):
        if "Broken" in content:
            raise TransientServiceError("timeout")
        return fit()

    completion = ScriptedCompletionClient({JobFitAnalysis: analyze})
    deps = make_deps(completion=completion)
    outcome = asyncio.run(
        search_jobs(deps, SearchJobsInput(params=params, profile=profile, user_id="u1", tracking_id=_tracking(deps)))
    )
    assert [j.listing.title for j in outcome.jobs] == ["React Developer"]
    assert outcome.total_found == 2


def test_search_jobs_stops_after_max_results(make_deps, store, profile, params):
    from hirepath.pipeline.context import StageSettings

    _seed(store, *(listing(f"React Developer {i}", "React", source_id=f"r{i}") for i in range(5)))
    completion = ScriptedCompletionClient({JobFitAnalysis: fit()})
    settings = StageSettings(max_results=2, extraction_concurrency=1, search_limit=20, max_input_tokens=6000, model_name="x")
    deps = make_deps(completion=completion, settings=settings)
    outcome = asyncio.run(
        search_jobs(deps, SearchJobsInput(params=params, profile=profile, user_id="u1", tracking_id=_tracking(deps)))
    )
    assert outcome.total_found == 5
    assert [j.listing.title for j in outcome.jobs] == ["React Developer 0", "React Developer 1"]
    assert completion.count(JobFitAnalysis) == 2


def test_search_jobs_skips_listings_seen_in_earlier_runs(make_deps, store, profile, params):
    ids = _seed(store, listing("React Developer", "React"), listing("React Lead", "React"))
    deps = make_deps()
    asyncio.run(deps.results.mark_seen("u1", [ids[0]]))
    outcome = asyncio.run(
        search_jobs(deps, SearchJobsInput(params=params, profile=profile, user_id="u1", tracking_id=_tracking(deps)))
    )
    assert [j.listing_id for j in outcome.jobs] == [ids[1]]


def test_search_jobs_without_preferred_locations(make_deps, store, params):
    _seed(store, listing("React Developer", "React"))
    nowhere = CVProfile.model_construct(
        skills=["React"],
        experience_level="mid",
        job_titles=["Dev"],
        industries=["Software"],
        keywords=["web"],
        education="BSc",
        years_of_experience=1,
        preferred_locations=[],
    )
    deps = make_deps()
    outcome = asyncio.run(
        search_jobs(deps, SearchJobsInput.model_construct(params=params, profile=nowhere, user_id="u1", tracking_id=_tracking(deps)))
    )
    assert outcome.jobs[0].location_match == "no_location_provided"


# ----- CombineAndRank -----


def _combine_input(profile, params, jobs, total_found=None):
    return CombineInput(
        workflow_run_id="run-1",
        cv_ref="cv.pdf",
        outcome=JobSearchOutcome(jobs=jobs, total_found=len(jobs) if total_found is None else total_found),
        params=params,
        profile=profile,
        user_id="u1",
        tracking_id="t1",
    )


def test_combine_empty_input_short_circuits(make_deps, profile, params, completion):
    deps = make_deps()
    tid = _tracking(deps)
    data = _combine_input(profile, params, []).model_copy(update={"tracking_id": tid})
    result = asyncio.run(combine_and_rank(deps, data))
    assert result.jobs == []
    assert result.summary.total_found == 0
    assert result.summary.avg_match_score == 0
    assert result.summary.market_observations
    assert completion.count() == 0
    assert asyncio.run(deps.progress.read(tid, "u1")).percentage == 80


def test_combine_sorts_descending_and_is_stable(make_deps, profile, params):
    completion = ScriptedCompletionClient({
        JobRanking: JobRanking(
            ranked_jobs=[RankedJobNote(id="2", match_reasons=["强匹配"], concerns=["薪资未知"])],
            insights=ranking(total_relevant=10).insights,
        ),
        JobDataExtraction: JobDataExtraction(),
    })
    deps = make_deps(completion=completion)
    jobs = [_job_result("1", 0.5), _job_result("2", 0.9), _job_result("3", 0.5), _job_result("4", 0.3)]
    data = _combine_input(profile, params, jobs, total_found=7).model_copy(update={"tracking_id": _tracking(deps)})
    result = asyncio.run(combine_and_rank(deps, data))

    assert [j.listing_id for j in result.jobs] == ["2", "1", "3", "4"]
    scores = [j.match_score for j in result.jobs]
    assert all(scores[i] >= scores[i + 1] for i in range(len(scores) - 1))
    assert [j.ai_recommendation for j in result.jobs] == ["highly_recommended", "consider", "consider", "not_recommended"]
    assert result.jobs[0].ai_match_reasons == ["强匹配"]
    assert result.jobs[0].ai_concerns == ["薪资未知"]
    assert result.summary.total_found == 7
    assert result.summary.total_relevant == 4
    assert result.summary.avg_match_score == pytest.approx(0.55)
    assert completion.count(JobRanking) == 1
    assert completion.count(JobDataExtraction) == 4


def test_recommendation_thresholds():
    assert recommendation_for(0.8) == "highly_recommended"
    assert recommendation_for(0.79) == "recommended"
    assert recommendation_for(0.6) == "recommended"
    assert recommendation_for(0.4) == "consider"
    assert recommendation_for(0.39) == "not_recommended"


def test_combine_aggregates_extracted_data(make_deps, profile, params):
    extractions = {
        "Job A": JobDataExtraction(
            salary=SalaryExtraction(is_salary_mentioned=True, min=5000, max=8000, currency="usd"),
            company=CompanyExtraction(is_company_mentioned=True, name="Acme"),
            job_type="full_time",
        ),
        "Job B": JobDataExtraction(
            salary=SalaryExtraction(is_salary_mentioned=True, min=-1, max=0, currency="EUR"),
            company=CompanyExtraction(is_company_mentioned=True, name="acme"),
            job_type="contract",
        ),
        "Job C": JobDataExtraction(
            salary=SalaryExtraction(is_salary_mentioned=True, min=6000, max=12000, currency="USD"),
            company=CompanyExtraction(is_company_mentioned=True, name="Globex"),
            job_type="full_time",
        ),
    }

    def extract(content):
        for title, extraction in extractions.items():
            if f"职位: {title}\n" in content:
                return extraction
        raise TransientServiceError("timeout")

    completion = ScriptedCompletionClient({JobRanking: ranking(), JobDataExtraction: extract})
    deps = make_deps(completion=completion)
    jobs = [
        _job_result("1", 0.7, "Job A"),
        _job_result("2", 0.6, "Job B"),
        _job_result("3", 0.65, "Job C"),
        _job_result("4", 0.2, "Job D"),
    ]
    data = _combine_input(profile, params, jobs).model_copy(update={"tracking_id": _tracking(deps)})
    result = asyncio.run(combine_and_rank(deps, data))

    echoed = result.summary.search_parameters
    assert echoed.salary_range is not None
    assert (echoed.salary_range.min, echoed.salary_range.max, echoed.salary_range.currency) == (5000, 12000, "USD")
    assert echoed.target_companies == ["Acme", "Globex"]
    assert echoed.preferred_job_types == ["full_time", "contract"]
    assert echoed.locations == ["Riyadh"]
    by_id = {j.listing_id: j for j in result.jobs}
    assert by_id["1"].extracted_company == "Acme"
    assert by_id["4"].extracted_company is None
    assert len(result.jobs) == 4


# ----- SaveResults -----


def test_save_results_is_idempotent(make_deps, profile, params):
    deps = make_deps()
    tid = _tracking(deps)
    jobs = [_job_result("1", 0.9), _job_result("2", 0.4)]
    ranked = asyncio.run(
        combine_and_rank(deps, _combine_input(profile, params, jobs).model_copy(update={"tracking_id": tid}))
    )
    data = SaveResultsInput(workflow_run_id="run-1", cv_ref="cv.pdf", results=ranked, user_id="u1", tracking_id=tid)

    first = asyncio.run(save_results(deps, data))
    second = asyncio.run(save_results(deps, data))
    assert first.saved_jobs == second.saved_jobs == 2

    saved = asyncio.run(deps.results.get("run-1", "u1"))
    assert [j.listing_id for j in saved.jobs] == ["1", "2"]
    assert saved.summary.workflow_run_id == "run-1"
    assert asyncio.run(deps.results.seen_listing_ids("u1")) == {"1", "2"}
    record = asyncio.run(deps.progress.read(tid, "u1"))
    assert (record.stage, record.status, record.percentage) == ("completed", "completed", 100)


def test_search_jobs_falls_back_when_all_hits_were_seen(make_deps, store, profile, params):
    # 全文检索只命中已推荐过的职位时，仍应退回子串过滤找新的职位
    ids = _seed(
        store,
        listing("React Developer", "React"),
        listing("Reactive Systems Engineer", "Event driven services"),
    )
    deps = make_deps()
    asyncio.run(deps.results.mark_seen("u1", [ids[0]]))
    outcome = asyncio.run(
        search_jobs(deps, SearchJobsInput(params=params, profile=profile, user_id="u1", tracking_id=_tracking(deps)))
    )
    assert [j.listing.title for j in outcome.jobs] == ["Reactive Systems Engineer"]
    assert outcome.total_found == 1


@pytest.mark.parametrize("tier, kept", [("free", 7), ("pro", 9)])
def test_search_jobs_result_count_depends_on_tier(make_deps, store, profile, params, tier, kept):
    _seed(store, *(listing(f"React Developer {i}", "React", source_id=f"r{i}") for i in range(9)))
    deps = make_deps()
    outcome = asyncio.run(
        search_jobs(
            deps,
            SearchJobsInput(params=params, profile=profile, tier=tier, user_id="u1", tracking_id=_tracking(deps)),
        )
    )
    assert outcome.total_found == 9
    assert len(outcome.jobs) == kept
    assert len({j.listing_id for j in outcome.jobs}) == kept
