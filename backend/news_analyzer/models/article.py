from sqlalchemy import Column, Integer, String, Text, CheckConstraint
from news_analyzer.database import Base


class Article(Base):
    __tablename__ = "articles"

    id = Column(String, primary_key=True)
    source_type = Column(String, nullable=False, index=True)
    # mp_id for WeChat articles, feed_id for RSS articles
    source_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    url = Column(String, nullable=False)
    pic_url = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    author = Column(String, nullable=True)
    publish_time = Column(Integer, nullable=False, default=0, index=True)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("source_type IN ('wechat', 'rss')", name='check_article_source_type'),
    )
