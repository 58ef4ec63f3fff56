from sqlalchemy import Column, Integer, String, Float, Text, CheckConstraint, UniqueConstraint
from news_analyzer.database import Base


class AnalysisLog(Base):
    __tablename__ = "analysis_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    task_id = Column(String, nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    level = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    context_json = Column(Text, nullable=True)
    timestamp = Column(Float, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("task_id", "seq", name="uq_analysis_log_task_seq"),
        CheckConstraint(
            "level IN ('debug', 'info', 'warn', 'error')",
            name='check_log_level'
        ),
    )
