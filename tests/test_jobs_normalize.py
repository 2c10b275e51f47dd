"""
职位规范化：各来源字段映射、缺标题 / 链接的条目丢弃、薪资解析。
"""
from hirepath.jobs.normalize import Err, Ok, normalize_posting, parse_salary
from hirepath.jobs.schemas import RawJobPosting


def _normalize(source: str, payload: dict):
    return normalize_posting(RawJobPosting(source=source, payload=payload))


def test_linkedin_posting_normalized():
    result = _normalize("linkedin", {
        "id": "3901",
        "title": "React Developer",
        "link": "https://www.linkedin.com/jobs/view/3901",
        "companyName": "TechCorp",
        "location": "Riyadh",
        "descriptionText": "React and TypeScript",
        "salaryInfo": ["$100,000 - $150,000"],
        "postedAt": "2024-05-01",
    })
    assert isinstance(result, Ok)
    job = result.value
    assert job.source == "LinkedIn"
    assert job.source_id == "3901"
    assert job.company == "TechCorp"
    assert job.salary == 125000
    assert job.currency == "USD"
    assert job.posted_at is not None and job.posted_at.year == 2024


def test_linkedin_posting_without_link_dropped():
    result = _normalize("linkedin", {"id": "1", "title": "React Developer"})
    assert isinstance(result, Err)
    assert "link" in result.reason


def test_indeed_posting_uses_last_url_segment_as_id():
    result = _normalize("indeed", {
        "positionName": "Data Engineer",
        "url": "https://www.indeed.com/viewjob/abc123",
        "jobType": ["Full-time", "Remote"],
    })
    assert isinstance(result, Ok)
    assert result.value.source_id == "abc123"
    assert result.value.description == "Full-time, Remote"


def test_indeed_single_job_type_string_kept_whole():
    result = _normalize("indeed", {
        "positionName": "Data Engineer",
        "url": "https://www.indeed.com/viewjob/xyz",
        "jobType": "Full-time",
    })
    assert isinstance(result, Ok)
    assert result.value.description == "Full-time"


def test_posting_without_title_dropped():
    """title 与 source_url 必填，缺任一条目被丢弃。"""
    assert isinstance(_normalize("indeed", {"url": "https://x/1"}), Err)
    assert isinstance(_normalize("mock", {"title": "   ", "url": "https://x/1"}), Err)
    assert isinstance(_normalize("mock", {"title": "Dev"}), Err)


def test_unknown_source_is_err():
    result = _normalize("glassdoor", {"title": "Dev", "url": "https://x/1"})
    assert isinstance(result, Err)
    assert "glassdoor" in result.reason


def test_parse_salary_single_value_and_currency():
    assert parse_salary("€70,000 per year") == (70000.0, "EUR")
    assert parse_salary("15,000 - 25,000 SAR") == (20000.0, "SAR")
    assert parse_salary("negotiable") == (None, None)
