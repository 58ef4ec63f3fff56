from pydantic import BaseModel, Field
from typing import Optional


class AnalyzedNewsResponse(BaseModel):
    """Schema for a classified article"""
    id: str
    task_id: str
    article_id: str
    title: str
    summary: str
    is_soft_news: bool
    industry_type: str
    news_type: str
    confidence: float
    keywords: list[str]
    original_url: str
    analyzed_at: int


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(..., min_length=1)


class BulkDeleteResponse(BaseModel):
    deleted: int
    missing: list[str]


class RecentStatsResponse(BaseModel):
    days: int
    task_count: int
    news_count: int
    since: Optional[int] = None
