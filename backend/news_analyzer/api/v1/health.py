from fastapi import APIRouter, Depends
from sqlalchemy import text

from news_analyzer.api.deps import get_orchestrator
from news_analyzer.database import session_scope
from news_analyzer.schemas import HealthCheckResponse, SystemStatusResponse
from news_analyzer.services.orchestrator import TaskOrchestrator
from news_analyzer.utils.timeutils import epoch_now

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """Health check endpoint"""
    # Check database
    try:
        with session_scope(orchestrator.session_factory) as db:
            db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception:
        db_status = "error"

    # Check LLM provider
    llm_status = await orchestrator.llm.check_health()

    overall_status = "healthy" if db_status == "healthy" and llm_status == "healthy" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        timestamp=epoch_now(),
        database=db_status,
        llm=llm_status
    )


@router.get("/status", response_model=SystemStatusResponse)
async def system_status(orchestrator: TaskOrchestrator = Depends(get_orchestrator)):
    """Get system status"""
    return SystemStatusResponse(
        tasks_by_status=orchestrator.store.counts_by_status(),
        active_runs=orchestrator.active_runs,
        total_articles=orchestrator.articles.count(),
        total_analyzed_news=orchestrator.results.count(),
    )
