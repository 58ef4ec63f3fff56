from sqlalchemy import Column, Integer, String, Text, CheckConstraint
from news_analyzer.database import Base


class AnalysisTask(Base):
    __tablename__ = "analysis_tasks"

    id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default='pending', index=True)
    total_articles = Column(Integer, nullable=False)
    processed_articles = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    start_time = Column(Integer, nullable=False)
    end_time = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    prompt_template = Column(Text, nullable=False, default='')
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(Integer, nullable=False, index=True)
    updated_at = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name='check_task_status'
        ),
        CheckConstraint(
            "processed_articles = success_count + failed_count",
            name='check_task_processed_sum'
        ),
        CheckConstraint(
            "processed_articles <= total_articles",
            name='check_task_processed_bound'
        ),
    )
