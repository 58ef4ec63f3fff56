from pydantic import BaseModel, Field
from typing import Literal, Optional


class LLMConfig(BaseModel):
    """LLM provider configuration used for classification calls"""
    provider: Literal['openai', 'ollama'] = 'openai'
    endpoint: str
    api_key: Optional[str] = None
    model: str
    temperature: float = Field(0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(2000, ge=1)


class LLMConfigResponse(BaseModel):
    """LLM configuration as returned to clients (api key masked)"""
    provider: Literal['openai', 'ollama']
    endpoint: str
    api_key_set: bool
    model: str
    temperature: float
    max_tokens: int


class PromptTemplateBody(BaseModel):
    template: str


class LLMProfileCreate(LLMConfig):
    """A named LLM configuration; on update an omitted api_key keeps the stored one"""
    name: str = Field(..., min_length=1)
    enabled: bool = True


class LLMProfileResponse(LLMConfigResponse):
    id: str
    name: str
    enabled: bool
    created_at: float
    updated_at: float


class PromptTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1)
    template: str = Field(..., min_length=1)
    is_default: bool = False


class PromptTemplateResponse(PromptTemplateCreate):
    id: str
    created_at: float
    updated_at: float


class LLMTestResponse(BaseModel):
    """Outcome of a one-off connection test against an LLM endpoint"""
    ok: bool
    message: str
    latency_ms: Optional[int] = None


class HealthCheckResponse(BaseModel):
    """Schema for health check response"""
    status: str
    timestamp: int
    database: str
    llm: str


class SystemStatusResponse(BaseModel):
    """Schema for system status"""
    tasks_by_status: dict[str, int]
    active_runs: int
    total_articles: int
    total_analyzed_news: int
