from pydantic import BaseModel
from typing import Any, Literal, Optional

from news_analyzer.domain import LogEntry, TaskSnapshot


class AnalysisRequest(BaseModel):
    """Request to analyze a batch of articles"""
    article_ids: list[str]
    prompt_template: str = ""


class TaskSubmitResponse(BaseModel):
    task_id: str


class AnalysisTaskResponse(BaseModel):
    """Schema for an analysis task snapshot"""
    id: str
    status: Literal['pending', 'running', 'completed', 'failed']
    total_articles: int
    processed_articles: int
    success_count: int
    failed_count: int
    start_time: int
    end_time: Optional[int] = None
    error_message: Optional[str] = None
    created_at: int
    updated_at: int

    @classmethod
    def from_snapshot(cls, snapshot: TaskSnapshot) -> "AnalysisTaskResponse":
        return cls(
            id=snapshot.id,
            status=snapshot.status.value,
            total_articles=snapshot.total_articles,
            processed_articles=snapshot.processed_articles,
            success_count=snapshot.success_count,
            failed_count=snapshot.failed_count,
            start_time=snapshot.start_time,
            end_time=snapshot.end_time,
            error_message=snapshot.error_message,
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
        )


class AnalysisLogResponse(BaseModel):
    """Schema for a single analysis log entry"""
    task_id: str
    seq: int
    level: Literal['debug', 'info', 'warn', 'error']
    message: str
    timestamp: float
    context: Optional[dict[str, Any]] = None

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "AnalysisLogResponse":
        return cls(
            task_id=entry.task_id,
            seq=entry.seq,
            level=entry.level.value,
            message=entry.message,
            timestamp=entry.timestamp,
            context=entry.context,
        )


class LogStatsResponse(BaseModel):
    total: int
    debug: int
    info: int
    warn: int
    error: int


class PurgeResponse(BaseModel):
    deleted: int
