from sqlalchemy import Column, Integer, String, Float, Text, Boolean, CheckConstraint
from news_analyzer.database import Base


class LLMProfile(Base):
    """A named LLM provider configuration; the newest enabled one is active"""
    __tablename__ = "llm_configs"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    provider = Column(String, nullable=False, default='openai')
    endpoint = Column(String, nullable=False)
    api_key = Column(Text, nullable=True)
    model = Column(String, nullable=False)
    temperature = Column(Float, nullable=False, default=0.3)
    max_tokens = Column(Integer, nullable=False, default=2000)
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("provider IN ('openai', 'ollama')", name='check_llm_provider'),
    )
