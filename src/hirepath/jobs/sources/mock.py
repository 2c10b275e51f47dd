"""Mock 职位源：返回固定示例职位，无需外部 API，用于最小闭环与测试。"""
from hirepath.jobs.schemas import RawJobPosting
from .base import JobSource

_MOCK_JOBS = [
    {
        "id": "mock-1",
        "title": "Senior Frontend Developer",
        "company": "TechCorp",
        "url": "https://example.com/jobs/1",
        "location": "Riyadh, Saudi Arabia",
        "salary": "15,000 - 25,000 SAR",
        "description": "Build web apps with React, TypeScript and CSS. Remote friendly, health insurance.",
    },
    {
        "id": "mock-2",
        "title": "Full Stack Engineer",
        "company": "StartupXYZ",
        "url": "https://example.com/jobs/2",
        "location": "Dubai, UAE",
        "salary": "12,000 - 20,000 AED",
        "description": "Node.js, React and MongoDB on AWS. Flexible hours and stock options.",
    },
    {
        "id": "mock-3",
        "title": "Backend Developer",
        "company": "Enterprise Solutions",
        "url": "https://example.com/jobs/3",
        "location": "Jeddah, Saudi Arabia",
        "description": "Python, Django, PostgreSQL and Docker. Annual bonus, training programs.",
    },
    {
        "id": "mock-4",
        "title": "Data Engineer",
        "company": "DataWorks",
        "url": "https://example.com/jobs/4",
        "location": "Remote",
        "salary": "$120,000",
        "description": "Data pipelines with SQL, Spark and Python. Fully remote contract role.",
    },
    {
        "id": "mock-5",
        "title": "Machine Learning Engineer",
        "company": "AI Lab",
        "url": "https://example.com/jobs/5",
        "location": "Berlin, Germany",
        "salary": "€70,000 - €90,000",
        "description": "NLP and LLM products with PyTorch and Python. Hybrid, learning budget.",
    },
]


class MockJobSource(JobSource):
    """内置 5 条示例职位；关键词过滤为简单子串匹配，不传关键词返回全部。"""

    source_id = "mock"

    def fetch_jobs(self, keywords=None, locations=None, limit: int = 50) -> list[RawJobPosting]:
        words = [k.lower() for k in (keywords or []) if k and k.strip()]
        jobs = []
        for item in _MOCK_JOBS:
            text = f"{item['title']} {item['description']}".lower()
            if words and not any(w in text for w in words):
                continue
            jobs.append(RawJobPosting(source="mock", payload=dict(item)))
        return jobs[: max(0, limit)]
