from sqlalchemy import Column, String, Float, Text, Boolean
from news_analyzer.database import Base


class PromptTemplate(Base):
    __tablename__ = "prompt_templates"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    template = Column(Text, nullable=False)
    # At most one row is the default
    is_default = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
