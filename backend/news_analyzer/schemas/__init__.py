from news_analyzer.schemas.common import ErrorResponse, MessageResponse
from news_analyzer.schemas.analysis import (
    AnalysisRequest,
    TaskSubmitResponse,
    AnalysisTaskResponse,
    AnalysisLogResponse,
    LogStatsResponse,
    PurgeResponse,
)
from news_analyzer.schemas.news import (
    AnalyzedNewsResponse,
    BulkDeleteRequest,
    BulkDeleteResponse,
    RecentStatsResponse,
)
from news_analyzer.schemas.article import (
    WeChatArticleIn,
    RSSArticleIn,
    ArticleIn,
    ArticleUpsertRequest,
    ArticleResponse,
    ArticleUpsertResponse,
    RSSImportRequest,
    RSSImportResponse,
    FeedCreate,
    FeedUpdate,
    FeedResponse,
    FeedValidationResponse,
    FeedRefreshResponse,
    FeedRefreshAllResponse,
)
from news_analyzer.schemas.config import (
    LLMConfig,
    LLMConfigResponse,
    PromptTemplateBody,
    LLMProfileCreate,
    LLMProfileResponse,
    PromptTemplateCreate,
    PromptTemplateResponse,
    LLMTestResponse,
    HealthCheckResponse,
    SystemStatusResponse,
)

__all__ = [
    # Common
    "ErrorResponse",
    "MessageResponse",
    # Analysis
    "AnalysisRequest",
    "TaskSubmitResponse",
    "AnalysisTaskResponse",
    "AnalysisLogResponse",
    "LogStatsResponse",
    "PurgeResponse",
    # News
    "AnalyzedNewsResponse",
    "BulkDeleteRequest",
    "BulkDeleteResponse",
    "RecentStatsResponse",
    # Article
    "WeChatArticleIn",
    "RSSArticleIn",
    "ArticleIn",
    "ArticleUpsertRequest",
    "ArticleResponse",
    "ArticleUpsertResponse",
    "RSSImportRequest",
    "RSSImportResponse",
    "FeedCreate",
    "FeedUpdate",
    "FeedResponse",
    "FeedValidationResponse",
    "FeedRefreshResponse",
    "FeedRefreshAllResponse",
    # Config
    "LLMConfig",
    "LLMConfigResponse",
    "PromptTemplateBody",
    "LLMProfileCreate",
    "LLMProfileResponse",
    "PromptTemplateCreate",
    "PromptTemplateResponse",
    "LLMTestResponse",
    "HealthCheckResponse",
    "SystemStatusResponse",
]
