import json
import uuid
from typing import Callable, List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from news_analyzer.database import SessionLocal, session_scope
from news_analyzer.domain import ArticleRecord, ClassificationResult
from news_analyzer.exceptions import NotFound
from news_analyzer.models import AnalysisTask, AnalyzedNews
from news_analyzer.schemas.news import AnalyzedNewsResponse
from news_analyzer.utils.timeutils import days_ago, epoch_now


def encode_keywords(keywords) -> str:
    """Keywords are stored as a JSON array of sorted, unique strings"""
    return json.dumps(sorted(set(keywords)), ensure_ascii=False)


def decode_keywords(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return sorted(set(json.loads(raw)))


def to_response(row: AnalyzedNews) -> AnalyzedNewsResponse:
    return AnalyzedNewsResponse(
        id=row.id,
        task_id=row.task_id,
        article_id=row.article_id,
        title=row.title,
        summary=row.summary,
        is_soft_news=row.is_soft_news,
        industry_type=row.industry_type,
        news_type=row.news_type,
        confidence=row.confidence,
        keywords=decode_keywords(row.keywords_json),
        original_url=row.original_url,
        analyzed_at=row.analyzed_at,
    )


class ResultStore:
    """Classified articles (analyzed_news); rows are never updated"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def add(self, session: Session, task_id: str, article: ArticleRecord, result: ClassificationResult) -> str:
        """Stage one result in the caller's transaction"""
        news_id = str(uuid.uuid4())
        session.add(AnalyzedNews(
            id=news_id,
            task_id=task_id,
            article_id=article.article_id,
            title=article.title,
            summary=result.summary,
            is_soft_news=result.is_soft_news,
            industry_type=result.industry_type,
            news_type=result.news_type,
            confidence=result.confidence,
            keywords_json=encode_keywords(result.keywords),
            original_url=article.url,
            analyzed_at=epoch_now(),
        ))
        session.flush()
        return news_id

    def list_for_task(self, task_id: str, limit: Optional[int] = None) -> List[AnalyzedNewsResponse]:
        with session_scope(self._session_factory) as db:
            query = (
                db.query(AnalyzedNews)
                .filter(AnalyzedNews.task_id == task_id)
                .order_by(AnalyzedNews.analyzed_at.desc(), AnalyzedNews.id)
            )
            if limit:
                query = query.limit(limit)
            return [to_response(row) for row in query.all()]

    def list_all(self, limit: Optional[int] = None) -> List[AnalyzedNewsResponse]:
        with session_scope(self._session_factory) as db:
            query = db.query(AnalyzedNews).order_by(AnalyzedNews.analyzed_at.desc(), AnalyzedNews.id)
            if limit:
                query = query.limit(limit)
            return [to_response(row) for row in query.all()]

    def count(self) -> int:
        with session_scope(self._session_factory) as db:
            return db.query(AnalyzedNews).count()

    def delete(self, news_id: str):
        with session_scope(self._session_factory) as db:
            row = db.get(AnalyzedNews, news_id)
            if row is None:
                raise NotFound(f"Analyzed news {news_id} not found")
            db.delete(row)
        logger.info(f"Deleted analyzed news {news_id}")

    def delete_many(self, news_ids: List[str]) -> Tuple[int, List[str]]:
        """Delete what exists; returns (deleted count, ids that were missing)"""
        unique_ids = list(dict.fromkeys(news_ids))
        with session_scope(self._session_factory) as db:
            found = {
                row.id for row in db.query(AnalyzedNews.id).filter(AnalyzedNews.id.in_(unique_ids)).all()
            }
            if found:
                db.query(AnalyzedNews).filter(AnalyzedNews.id.in_(found)).delete(synchronize_session=False)

        missing = [news_id for news_id in unique_ids if news_id not in found]
        logger.info(f"Bulk delete of analyzed news: {len(found)} deleted, {len(missing)} missing")
        return len(found), missing

    def purge_task(self, task_id: str, session: Optional[Session] = None) -> int:
        if session is not None:
            return session.query(AnalyzedNews).filter(AnalyzedNews.task_id == task_id).delete(
                synchronize_session=False
            )
        with session_scope(self._session_factory) as db:
            return db.query(AnalyzedNews).filter(AnalyzedNews.task_id == task_id).delete(
                synchronize_session=False
            )

    def recent_stats(self, days: int = 30) -> Tuple[int, int, int]:
        """(task count, news count, window start) for the last `days` days"""
        since = days_ago(days)
        with session_scope(self._session_factory) as db:
            task_count = db.query(AnalysisTask).filter(AnalysisTask.created_at >= since).count()
            news_count = db.query(AnalyzedNews).filter(AnalyzedNews.analyzed_at >= since).count()
        return task_count, news_count, since
