"""
Database initialization script
Creates all tables and inserts the default LLM configuration and prompt template
"""
from loguru import logger

from news_analyzer.database import SessionLocal, init_db, session_scope
from news_analyzer.models import LLMProfile, PromptTemplate
from news_analyzer.utils.llm_config import (
    DEFAULT_PROMPT_TEMPLATE,
    default_llm_config,
    save_default_prompt_template,
    save_llm_config,
)


def init_database(session_factory=SessionLocal, bind=None):
    """Initialize database with tables and default config"""
    logger.info("Creating database tables...")
    init_db(bind=bind)
    logger.info("Database tables created successfully")

    with session_scope(session_factory) as db:
        has_profiles = db.query(LLMProfile.id).first() is not None
        has_templates = db.query(PromptTemplate.id).first() is not None

    if not has_profiles:
        logger.info("Inserting default LLM configuration...")
        save_llm_config(default_llm_config(), session_factory)

    if not has_templates:
        logger.info("Inserting default prompt template...")
        save_default_prompt_template(DEFAULT_PROMPT_TEMPLATE, session_factory)


if __name__ == "__main__":
    init_database()
    logger.info("Database initialization complete!")
