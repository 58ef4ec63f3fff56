from fastapi import Request

from news_analyzer.schemas import ErrorResponse
from news_analyzer.services.feeds import FeedService
from news_analyzer.services.llm_client import LLMClient
from news_analyzer.services.orchestrator import TaskOrchestrator

# Documented error bodies, see the NewsAnalyzerError handler in main.py
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    404: {"model": ErrorResponse, "description": "Not found"},
    409: {"model": ErrorResponse, "description": "Conflict"},
    503: {"model": ErrorResponse, "description": "Database unavailable"},
}


def get_orchestrator(request: Request) -> TaskOrchestrator:
    """The orchestrator created in the application lifespan"""
    return request.app.state.orchestrator


def get_llm_client(request: Request) -> LLMClient:
    return request.app.state.orchestrator.llm


def get_feed_service(request: Request) -> FeedService:
    return request.app.state.feeds
