from sqlalchemy import Column, Integer, String, Text, CheckConstraint
from news_analyzer.database import Base


class RSSFeed(Base):
    __tablename__ = "rss_feeds"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    url = Column(String, nullable=False, unique=True)
    website_url = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True, index=True)
    status = Column(String, nullable=False, default='active')
    last_fetched = Column(Integer, nullable=False, default=0)
    last_fetch_status = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'paused')", name='check_feed_status'),
        CheckConstraint("last_fetch_status IN ('success', 'error')", name='check_feed_fetch_status'),
    )
