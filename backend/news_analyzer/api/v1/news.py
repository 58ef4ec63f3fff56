from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from news_analyzer.api.deps import ERROR_RESPONSES, get_orchestrator
from news_analyzer.schemas import (
    AnalyzedNewsResponse,
    BulkDeleteRequest,
    BulkDeleteResponse,
    MessageResponse,
    RecentStatsResponse,
)
from news_analyzer.services.orchestrator import TaskOrchestrator

router = APIRouter(prefix="/news", tags=["news"], responses=ERROR_RESPONSES)


@router.get("", response_model=List[AnalyzedNewsResponse])
async def list_news(
    limit: Optional[int] = Query(100, ge=1, le=1000),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Classified articles across all tasks, newest first"""
    return orchestrator.results.list_all(limit=limit)


@router.get("/stats/recent", response_model=RecentStatsResponse)
async def recent_stats(
    days: int = Query(30, ge=1, le=365),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Number of tasks created and articles classified in the last `days` days"""
    task_count, news_count, since = orchestrator.results.recent_stats(days)
    return RecentStatsResponse(days=days, task_count=task_count, news_count=news_count, since=since)


@router.post("/delete", response_model=BulkDeleteResponse)
async def delete_news_bulk(
    request: BulkDeleteRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Delete several classified articles; unknown ids are reported back"""
    deleted, missing = orchestrator.results.delete_many(request.ids)
    return BulkDeleteResponse(deleted=deleted, missing=missing)


@router.delete("/{news_id}", response_model=MessageResponse)
async def delete_news(news_id: str, orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """Delete one classified article"""
    orchestrator.results.delete(news_id)
    return MessageResponse(message=f"Analyzed news {news_id} deleted")
