from news_analyzer.services.task_store import TaskStore
from news_analyzer.services.log_stream import LogStream
from news_analyzer.services.results import ResultStore
from news_analyzer.services.article_source import ArticleSource, PageFetcher
from news_analyzer.services.llm_client import LLMClient
from news_analyzer.services.orchestrator import TaskOrchestrator, build_orchestrator
from news_analyzer.services.rss import rss_service

__all__ = [
    "TaskStore",
    "LogStream",
    "ResultStore",
    "ArticleSource",
    "PageFetcher",
    "LLMClient",
    "TaskOrchestrator",
    "build_orchestrator",
    "rss_service",
]
