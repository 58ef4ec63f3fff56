from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "News Analyzer API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./data/news_analyzer.db"

    # LLM provider defaults (used while no stored LLM configuration is enabled)
    LLM_PROVIDER: str = "openai"  # 'openai' or 'ollama'
    LLM_ENDPOINT: str = "https://api.openai.com/v1/chat/completions"
    LLM_API_KEY: Optional[str] = None
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_TOKENS: int = 2000
    LLM_HTTP_TIMEOUT: int = 300  # seconds
    LLM_MAX_CONTENT_CHARS: int = 8000

    # Ollama
    OLLAMA_HOST: str = "http://localhost:11434"

    # Analysis
    ANALYSIS_CONCURRENCY: int = 3
    ANALYSIS_GLOBAL_CONCURRENCY: int = 0  # 0 disables the cross-task limit
    LLM_CALL_TIMEOUT: float = 120.0  # seconds per classification call
    ARTICLE_MAX_RETRIES: int = 2
    RETRY_DELAY_SECONDS: float = 2.0
    RETRY_BACKOFF: float = 2.0
    LOG_SUBSCRIBER_WINDOW: int = 1000

    # Article fetching
    FETCH_TIMEOUT: int = 30
    FETCH_MAX_ATTEMPTS: int = 3
    FETCH_RETRY_DELAY: float = 2.0
    RSS_REQUEST_TIMEOUT: int = 30

    # CORS (for local development)
    CORS_ORIGINS: list = ["http://localhost:1420", "http://localhost:5173"]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
