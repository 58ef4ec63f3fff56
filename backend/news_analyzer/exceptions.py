"""
Error taxonomy for the analysis service

Article-level errors are absorbed by the orchestrator and only show up in task
counters and logs. Everything else can reach an API caller and carries the
HTTP status it maps to.
"""
from typing import Optional


class NewsAnalyzerError(Exception):
    """Base class for all application errors"""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = {"code": self.code, "detail": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidRequest(NewsAnalyzerError):
    """Rejected submission; nothing was persisted"""

    code = "invalid_request"
    status_code = 400


class NotFound(NewsAnalyzerError):
    code = "not_found"
    status_code = 404


class TaskConflict(NewsAnalyzerError):
    """A task update lost a race or targeted a task that is already terminal"""

    code = "conflict"
    status_code = 409


class TaskInfrastructureError(NewsAnalyzerError):
    """State store or log backend unavailable; fatal to the task it happens in"""

    code = "infrastructure_error"
    status_code = 503


class ArticleProcessingError(NewsAnalyzerError):
    """Failure of a single article; recorded per article, never propagated"""

    code = "article_failed"
    status_code = 500

    def __init__(self, article_id: str, message: str, title: Optional[str] = None):
        self.article_id = article_id
        self.title = title
        super().__init__(message, details={"article_id": article_id})


class LLMError(NewsAnalyzerError):
    """Base class for classification call failures; all of them are retryable"""

    code = "llm_error"
    status_code = 502


class RateLimited(LLMError):
    code = "llm_rate_limited"

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message)


class LLMTimeout(LLMError):
    code = "llm_timeout"
    status_code = 504


class InvalidResponse(LLMError):
    code = "llm_invalid_response"


class LLMUnavailable(LLMError):
    code = "llm_unavailable"
    status_code = 503


class FeedUnavailable(NewsAnalyzerError):
    """RSS feed could not be fetched or parsed"""

    code = "feed_unavailable"
    status_code = 502


class AlreadyExists(NewsAnalyzerError):
    code = "already_exists"
    status_code = 409
