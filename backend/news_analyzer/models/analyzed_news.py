from sqlalchemy import Column, Integer, String, Float, Text, Boolean, UniqueConstraint
from news_analyzer.database import Base


class AnalyzedNews(Base):
    __tablename__ = "analyzed_news"

    id = Column(String, primary_key=True)
    task_id = Column(String, nullable=False, index=True)
    article_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    summary = Column(Text, nullable=False)
    is_soft_news = Column(Boolean, nullable=False, default=False)
    industry_type = Column(String, nullable=False, default='')
    news_type = Column(String, nullable=False, default='')
    confidence = Column(Float, nullable=False, default=0.0)
    keywords_json = Column(Text, nullable=False, default='[]')
    original_url = Column(String, nullable=False)
    analyzed_at = Column(Integer, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("task_id", "article_id", name="uq_analyzed_news_task_article"),
    )
