"""
原始职位 -> NewJobListing。

每条原始职位的规范化都可能失败（缺标题/链接、字段类型不对），
结果用 Ok / Err 显式表达，调用方必须处理失败分支，失败的条目跳过不入库。
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar, Union

from pydantic import ValidationError

from hirepath.jobs.schemas import NewJobListing, RawJobPosting

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str


NormalizeResult = Union[Ok[NewJobListing], Err]

_RANGE_RE = re.compile(r"([\d,]+)(?:\.\d+)?\S*\s*-\s*[^\d\s]*\s*([\d,]+)")
_NUMBER_RE = re.compile(r"[\d,]+")
_CURRENCY_RE = re.compile(r"(\$|USD|EUR|£|GBP|AED|SAR|€)", re.IGNORECASE)
_CURRENCY_SYMBOLS = {"$": "USD", "£": "GBP", "€": "EUR"}


def _to_int(raw: str) -> int | None:
    digits = raw.replace(",", "")
    return int(digits) if digits.isdigit() else None


def parse_salary(text: str) -> tuple[float | None, str | None]:
    """
    从薪资文本解析 (金额, 币种)。区间如 "100,000 - 150,000" 取均值（向下取整），
    否则取第一个数字；币种识别 $ / £ / € 与常见代码。
    """
    salary: float | None = None
    range_match = _RANGE_RE.search(text)
    if range_match:
        low, high = _to_int(range_match.group(1)), _to_int(range_match.group(2))
        if low is not None and high is not None:
            salary = float((low + high) // 2)
    else:
        single = _NUMBER_RE.search(text)
        if single:
            value = _to_int(single.group(0))
            salary = float(value) if value is not None else None

    currency: str | None = None
    currency_match = _CURRENCY_RE.search(text)
    if currency_match:
        token = currency_match.group(0)
        currency = _CURRENCY_SYMBOLS.get(token, token.upper())
    return salary, currency


def _parse_date(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _normalize_linkedin(item: dict[str, Any]) -> NormalizeResult:
    title, link, job_id = _text(item.get("title")), _text(item.get("link")), _text(item.get("id"))
    if not title or not link or not job_id:
        return Err("LinkedIn 职位缺少 id / title / link")
    salary = currency = None
    salary_info = item.get("salaryInfo")
    if isinstance(salary_info, list) and salary_info and isinstance(salary_info[0], str):
        salary, currency = parse_salary(salary_info[0])
    location = _text(item.get("location"))
    return Ok(NewJobListing(
        title=title,
        description=item.get("descriptionText") or "",
        description_html=_text(item.get("descriptionHtml")),
        company=_text(item.get("companyName")),
        location=location,
        salary=salary,
        currency=currency,
        source="LinkedIn",
        source_id=job_id,
        source_url=link,
        posted_at=_parse_date(item.get("postedAt")),
    ))


def _normalize_indeed(item: dict[str, Any]) -> NormalizeResult:
    title, url = _text(item.get("positionName")), _text(item.get("url"))
    if not title or not url:
        return Err("Indeed 职位缺少 positionName / url")
    salary = currency = None
    if isinstance(item.get("salary"), str):
        salary, currency = parse_salary(item["salary"])
    description = _text(item.get("description"))
    if description is None:
        job_types = item.get("jobType") or []
        # 单个类型时 Actor 直接返回字符串
        if isinstance(job_types, str):
            job_types = [job_types]
        description = ", ".join(t for t in job_types if isinstance(t, str))
    return Ok(NewJobListing(
        title=title,
        description=description,
        company=_text(item.get("company")),
        location=_text(item.get("location")),
        salary=salary,
        currency=currency,
        source="Indeed",
        # Indeed 无稳定 ID，用链接末段
        source_id=url.rstrip("/").split("/")[-1] or url,
        source_url=url,
    ))


def _normalize_mock(item: dict[str, Any]) -> NormalizeResult:
    title, url = _text(item.get("title")), _text(item.get("url"))
    if not title or not url:
        return Err("mock 职位缺少 title / url")
    salary = currency = None
    if isinstance(item.get("salary"), str):
        salary, currency = parse_salary(item["salary"])
    return Ok(NewJobListing(
        title=title,
        description=item.get("description") or "",
        company=_text(item.get("company")),
        location=_text(item.get("location")),
        salary=salary,
        currency=currency,
        source="Mock",
        source_id=_text(item.get("id")) or url,
        source_url=url,
        posted_at=_parse_date(item.get("posted_at")),
    ))


_NORMALIZERS = {
    "linkedin": _normalize_linkedin,
    "indeed": _normalize_indeed,
    "mock": _normalize_mock,
}


def normalize_posting(raw: RawJobPosting) -> NormalizeResult:
    """按来源规范化单条原始职位；未知来源或字段不合法返回 Err。"""
    normalizer = _NORMALIZERS.get(raw.source.strip().lower())
    if normalizer is None:
        return Err(f"未知职位来源: {raw.source}")
    try:
        return normalizer(raw.payload)
    except ValidationError as e:
        return Err(f"字段校验失败: {e.error_count()} 处")
