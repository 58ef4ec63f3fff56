from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from typing import List, Literal, Optional
import json

from news_analyzer.api.deps import ERROR_RESPONSES, get_orchestrator
from news_analyzer.domain import LogEntry, LogLevel, StreamGap, TaskStatus
from news_analyzer.schemas import (
    AnalysisRequest,
    AnalysisTaskResponse,
    AnalysisLogResponse,
    AnalyzedNewsResponse,
    LogStatsResponse,
    PurgeResponse,
    TaskSubmitResponse,
)
from news_analyzer.services.orchestrator import TaskOrchestrator

router = APIRouter(prefix="/analysis", tags=["analysis"], responses=ERROR_RESPONSES)

TaskStatusName = Literal['pending', 'running', 'completed', 'failed']
LogLevelName = Literal['debug', 'info', 'warn', 'error']


def _sse(event: str, payload: dict, event_id: Optional[int] = None) -> str:
    lines = [f"event: {event}"]
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"data: {json.dumps(payload, ensure_ascii=False)}")
    return "\n".join(lines) + "\n\n"


@router.post("/tasks", response_model=TaskSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_analysis(
    request: AnalysisRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """
    Submit a batch of articles for analysis

    Duplicate and blank ids are dropped. The task is stored as pending before
    this returns; poll `/analysis/tasks/{id}` or stream its logs for progress.
    """
    task_id = await orchestrator.submit(request.article_ids, request.prompt_template)
    return TaskSubmitResponse(task_id=task_id)


@router.get("/tasks", response_model=List[AnalysisTaskResponse])
async def list_tasks(
    limit: int = Query(50, ge=1, le=500),
    status: Optional[TaskStatusName] = None,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """List analysis tasks, newest first"""
    tasks = orchestrator.list_tasks(limit=limit, status=TaskStatus(status) if status else None)
    return [AnalysisTaskResponse.from_snapshot(task) for task in tasks]


@router.get("/tasks/{task_id}", response_model=AnalysisTaskResponse)
async def get_task(task_id: str, orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """Get the current snapshot of a task"""
    return AnalysisTaskResponse.from_snapshot(orchestrator.get_status(task_id))


@router.post("/tasks/{task_id}/cancel", response_model=AnalysisTaskResponse)
async def cancel_task(task_id: str, orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """
    Cancel a task

    Dispatch stops at once; the task turns failed with "cancelled" after
    in-flight articles finish. Cancelling a finished task is a no-op.
    """
    return AnalysisTaskResponse.from_snapshot(await orchestrator.cancel(task_id))


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: str,
    purge: bool = False,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Delete a finished task; `purge=true` also deletes its logs and results"""
    deleted = orchestrator.delete_task(task_id, purge=purge)
    return {"message": f"Task {task_id} deleted", "purged": deleted}


@router.get("/tasks/{task_id}/logs/stream")
async def stream_task_logs(
    task_id: str,
    from_offset: int = Query(0, ge=0),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """
    Stream a task's log entries as Server-Sent Events

    Events: `log` (one entry, `id` is its offset), `gap` (entries dropped for
    a slow reader; reconnect with `from_offset=resume_offset` to replay them)
    and a final `end` carrying the task snapshot.
    """
    entries = orchestrator.subscribe_logs(task_id, from_offset)

    async def generate():
        async for item in entries:
            if isinstance(item, StreamGap):
                yield _sse("gap", {"missed": item.missed, "resume_offset": item.resume_offset})
            elif isinstance(item, LogEntry):
                yield _sse("log", AnalysisLogResponse.from_entry(item).model_dump(), event_id=item.seq)
        snapshot = orchestrator.get_status(task_id)
        yield _sse("end", AnalysisTaskResponse.from_snapshot(snapshot).model_dump())

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )


@router.get("/tasks/{task_id}/news", response_model=List[AnalyzedNewsResponse])
async def get_task_news(
    task_id: str,
    limit: Optional[int] = Query(None, ge=1),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Classified articles produced by a task"""
    orchestrator.get_status(task_id)
    return orchestrator.results.list_for_task(task_id, limit=limit)


@router.get("/logs", response_model=List[AnalysisLogResponse])
async def list_logs(
    task_id: Optional[str] = None,
    level: Optional[LogLevelName] = None,
    limit: int = Query(200, ge=1, le=5000),
    from_offset: int = Query(0, ge=0),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """
    Persisted log entries

    With `task_id`: that task's entries in order from `from_offset`.
    Without: the most recent entries across all tasks.
    """
    entries = orchestrator.logs.history(
        task_id=task_id,
        level=LogLevel(level) if level else None,
        limit=limit,
        from_offset=from_offset,
    )
    return [AnalysisLogResponse.from_entry(entry) for entry in entries]


@router.get("/logs/stats", response_model=LogStatsResponse)
async def log_stats(
    task_id: Optional[str] = None,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Log entry counts by level"""
    return LogStatsResponse(**orchestrator.logs.stats(task_id))


@router.delete("/logs", response_model=PurgeResponse)
async def purge_logs(
    task_id: Optional[str] = None,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Delete log entries of one task, or all of them"""
    return PurgeResponse(deleted=orchestrator.logs.purge(task_id))
