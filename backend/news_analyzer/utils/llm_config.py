"""
Utility functions for LLM configuration and prompt template management

Several named LLM configurations can be stored; the most recently updated
enabled one is active. Without any enabled configuration the environment
settings are used. Prompt templates work the same way with an explicit
default flag.
"""
import uuid
from typing import Callable, List, Optional
from loguru import logger
from sqlalchemy.orm import Session

from news_analyzer.config import settings
from news_analyzer.database import SessionLocal, session_scope
from news_analyzer.exceptions import InvalidRequest, NotFound
from news_analyzer.models import LLMProfile, PromptTemplate
from news_analyzer.schemas.config import (
    LLMConfig,
    LLMProfileCreate,
    LLMProfileResponse,
    PromptTemplateCreate,
    PromptTemplateResponse,
)
from news_analyzer.utils.timeutils import epoch_now_precise

DEFAULT_PROFILE_NAME = "Default"
DEFAULT_TEMPLATE_NAME = "Default classification"

DEFAULT_PROMPT_TEMPLATE = """Classify the following news article.

Title: {title}

Article content:
{content}

Respond ONLY with valid JSON in this exact format:
{
  "summary": "2-3 sentence summary of the key points",
  "is_soft_news": false,
  "industry_type": "industry the article is about",
  "news_type": "kind of news event",
  "confidence": 0.8,
  "keywords": ["keyword", "keyword"]
}

confidence is a number between 0 and 1."""

SessionFactory = Callable[[], Session]


def default_llm_config() -> LLMConfig:
    """LLM configuration built from environment settings only"""
    return LLMConfig(
        provider=settings.LLM_PROVIDER,
        endpoint=settings.LLM_ENDPOINT if settings.LLM_PROVIDER == "openai" else settings.OLLAMA_HOST,
        api_key=settings.LLM_API_KEY,
        model=settings.LLM_MODEL,
        temperature=settings.LLM_TEMPERATURE,
        max_tokens=settings.LLM_MAX_TOKENS,
    )


def _to_config(row: LLMProfile) -> LLMConfig:
    return LLMConfig(
        provider=row.provider,
        endpoint=row.endpoint,
        api_key=row.api_key,
        model=row.model,
        temperature=row.temperature,
        max_tokens=row.max_tokens,
    )


def _profile_out(row: LLMProfile) -> LLMProfileResponse:
    return LLMProfileResponse(
        id=row.id,
        name=row.name,
        provider=row.provider,
        endpoint=row.endpoint,
        api_key_set=bool(row.api_key),
        model=row.model,
        temperature=row.temperature,
        max_tokens=row.max_tokens,
        enabled=row.enabled,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _active_profile(db: Session) -> Optional[LLMProfile]:
    return (
        db.query(LLMProfile)
        .filter(LLMProfile.enabled.is_(True))
        .order_by(LLMProfile.updated_at.desc(), LLMProfile.created_at.desc())
        .first()
    )


def _get_profile(db: Session, profile_id: str) -> LLMProfile:
    row = db.query(LLMProfile).filter(LLMProfile.id == profile_id).first()
    if not row:
        raise NotFound(f"LLM configuration {profile_id} not found")
    return row


def get_llm_config(session_factory: SessionFactory = SessionLocal) -> LLMConfig:
    """
    Get the active LLM configuration

    Raises:
        TaskInfrastructureError: the database could not be read
    """
    with session_scope(session_factory) as db:
        row = _active_profile(db)
        if row is None:
            return default_llm_config()
        return _to_config(row)


def save_llm_config(config: LLMConfig, session_factory: SessionFactory = SessionLocal) -> LLMConfig:
    """Overwrite the active configuration, creating one when none is enabled"""
    now = epoch_now_precise()
    with session_scope(session_factory) as db:
        row = _active_profile(db)
        if row is None:
            row = LLMProfile(id=str(uuid.uuid4()), name=DEFAULT_PROFILE_NAME, enabled=True, created_at=now)
            db.add(row)
        row.provider = config.provider
        row.endpoint = config.endpoint
        row.api_key = config.api_key
        row.model = config.model
        row.temperature = config.temperature
        row.max_tokens = config.max_tokens
        row.updated_at = now
    return config


def list_llm_profiles(session_factory: SessionFactory = SessionLocal) -> List[LLMProfileResponse]:
    with session_scope(session_factory) as db:
        rows = db.query(LLMProfile).order_by(LLMProfile.updated_at.desc()).all()
        return [_profile_out(row) for row in rows]


def get_llm_profile(profile_id: str, session_factory: SessionFactory = SessionLocal) -> LLMConfig:
    """Stored configuration of one profile, api key included"""
    with session_scope(session_factory) as db:
        return _to_config(_get_profile(db, profile_id))


def create_llm_profile(body: LLMProfileCreate, session_factory: SessionFactory = SessionLocal) -> LLMProfileResponse:
    now = epoch_now_precise()
    with session_scope(session_factory) as db:
        row = LLMProfile(
            id=str(uuid.uuid4()),
            name=body.name,
            provider=body.provider,
            endpoint=body.endpoint,
            api_key=body.api_key,
            model=body.model,
            temperature=body.temperature,
            max_tokens=body.max_tokens,
            enabled=body.enabled,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.flush()
        logger.info(f"LLM configuration '{body.name}' created ({row.id})")
        return _profile_out(row)


def update_llm_profile(
    profile_id: str,
    body: LLMProfileCreate,
    session_factory: SessionFactory = SessionLocal,
) -> LLMProfileResponse:
    """Replace a profile; an omitted api key keeps the stored one"""
    with session_scope(session_factory) as db:
        row = _get_profile(db, profile_id)
        row.name = body.name
        row.provider = body.provider
        row.endpoint = body.endpoint
        if body.api_key is not None:
            row.api_key = body.api_key
        row.model = body.model
        row.temperature = body.temperature
        row.max_tokens = body.max_tokens
        row.enabled = body.enabled
        row.updated_at = epoch_now_precise()
        db.flush()
        return _profile_out(row)


def delete_llm_profile(profile_id: str, session_factory: SessionFactory = SessionLocal):
    with session_scope(session_factory) as db:
        db.delete(_get_profile(db, profile_id))
    logger.info(f"LLM configuration {profile_id} deleted")


def toggle_llm_profile(profile_id: str, session_factory: SessionFactory = SessionLocal) -> LLMProfileResponse:
    """Flip `enabled`; enabling a profile also makes it the active one"""
    with session_scope(session_factory) as db:
        row = _get_profile(db, profile_id)
        row.enabled = not row.enabled
        row.updated_at = epoch_now_precise()
        db.flush()
        return _profile_out(row)


def _template_out(row: PromptTemplate) -> PromptTemplateResponse:
    return PromptTemplateResponse(
        id=row.id,
        name=row.name,
        template=row.template,
        is_default=row.is_default,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _get_template(db: Session, template_id: str) -> PromptTemplate:
    row = db.query(PromptTemplate).filter(PromptTemplate.id == template_id).first()
    if not row:
        raise NotFound(f"Prompt template {template_id} not found")
    return row


def _clear_default(db: Session, keep_id: Optional[str] = None):
    query = db.query(PromptTemplate).filter(PromptTemplate.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(PromptTemplate.id != keep_id)
    query.update({PromptTemplate.is_default: False}, synchronize_session=False)


def _check_template(template: str):
    if not template.strip():
        raise InvalidRequest("Prompt template must not be empty")


def get_default_prompt_template(session_factory: SessionFactory = SessionLocal) -> str:
    """Stored default prompt template, or the built-in one"""
    with session_scope(session_factory) as db:
        row = (
            db.query(PromptTemplate)
            .filter(PromptTemplate.is_default.is_(True))
            .order_by(PromptTemplate.updated_at.desc())
            .first()
        )
        if row and row.template.strip():
            return row.template
        return DEFAULT_PROMPT_TEMPLATE


def save_default_prompt_template(template: str, session_factory: SessionFactory = SessionLocal) -> str:
    """Overwrite the default template's text, creating it when there is none"""
    _check_template(template)
    now = epoch_now_precise()
    with session_scope(session_factory) as db:
        row = db.query(PromptTemplate).filter(PromptTemplate.is_default.is_(True)).first()
        if row is None:
            row = PromptTemplate(id=str(uuid.uuid4()), name=DEFAULT_TEMPLATE_NAME, is_default=True, created_at=now)
            db.add(row)
        row.template = template
        row.updated_at = now
    logger.info("Default prompt template updated")
    return template


def list_prompt_templates(session_factory: SessionFactory = SessionLocal) -> List[PromptTemplateResponse]:
    """Default template first, then newest first"""
    with session_scope(session_factory) as db:
        rows = (
            db.query(PromptTemplate)
            .order_by(PromptTemplate.is_default.desc(), PromptTemplate.created_at.desc())
            .all()
        )
        return [_template_out(row) for row in rows]


def create_prompt_template(
    body: PromptTemplateCreate,
    session_factory: SessionFactory = SessionLocal,
) -> PromptTemplateResponse:
    _check_template(body.template)
    now = epoch_now_precise()
    with session_scope(session_factory) as db:
        if body.is_default:
            _clear_default(db)
        row = PromptTemplate(
            id=str(uuid.uuid4()),
            name=body.name,
            template=body.template,
            is_default=body.is_default,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.flush()
        return _template_out(row)


def update_prompt_template(
    template_id: str,
    body: PromptTemplateCreate,
    session_factory: SessionFactory = SessionLocal,
) -> PromptTemplateResponse:
    _check_template(body.template)
    with session_scope(session_factory) as db:
        row = _get_template(db, template_id)
        if body.is_default:
            _clear_default(db, keep_id=template_id)
        row.name = body.name
        row.template = body.template
        row.is_default = body.is_default
        row.updated_at = epoch_now_precise()
        db.flush()
        return _template_out(row)


def delete_prompt_template(template_id: str, session_factory: SessionFactory = SessionLocal):
    with session_scope(session_factory) as db:
        db.delete(_get_template(db, template_id))
    logger.info(f"Prompt template {template_id} deleted")
