"""
职位库的数据模型：职位源返回的原始职位、规范化后的职位（写入职位库）。
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class RawJobPosting(BaseModel):
    """职位源（Mock / Apify LinkedIn / Apify Indeed）返回的原始条目，字段因来源而异。"""
    source: str = Field(..., description="来源标识：mock、linkedin、indeed")
    payload: dict[str, Any] = Field(default_factory=dict, description="原始字段")


class NewJobListing(BaseModel):
    """规范化后待入库的职位；title 与 source_url 必填，缺失的原始条目在规范化阶段被丢弃。"""
    title: str = Field(..., min_length=1, description="职位名称")
    description: str = Field("", description="纯文本职位描述，用于全文检索与打分")
    description_html: Optional[str] = Field(None, description="富文本职位描述")
    company: Optional[str] = Field(None, description="公司名称")
    location: Optional[str] = Field(None, description="工作地点")
    salary: Optional[float] = Field(None, description="薪资（区间取均值）")
    currency: Optional[str] = Field(None, description="币种，如 USD、EUR、SAR")
    source: str = Field(..., description="来源名称，如 LinkedIn、Indeed")
    source_id: str = Field(..., description="来源内唯一 ID")
    source_url: str = Field(..., min_length=1, description="原始职位链接")
    posted_at: Optional[datetime] = Field(None, description="发布时间")


class JobListing(NewJobListing):
    """职位库中的职位（入库后不可变，仅由批量刷新替换）。"""
    id: str = Field(..., description="职位库内 ID")
