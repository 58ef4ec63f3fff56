from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Literal, Optional

from news_analyzer.api.deps import ERROR_RESPONSES, get_orchestrator
from news_analyzer.database import get_db
from news_analyzer.domain import SourceType
from news_analyzer.models import Article
from news_analyzer.schemas import (
    ArticleResponse,
    ArticleUpsertRequest,
    ArticleUpsertResponse,
    RSSImportRequest,
    RSSImportResponse,
)
from news_analyzer.services.orchestrator import TaskOrchestrator
from news_analyzer.services.rss import rss_service

router = APIRouter(prefix="/articles", tags=["articles"], responses=ERROR_RESPONSES)


@router.get("", response_model=List[ArticleResponse])
async def list_articles(
    source_type: Optional[Literal['wechat', 'rss']] = None,
    limit: int = Query(100, ge=1, le=1000),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """
    List stored articles, newest first

    Query Parameters:
    - source_type: Filter by source (wechat/rss)
    - limit: Maximum number of articles (default: 100, max: 1000)
    """
    return orchestrator.articles.list_articles(
        source_type=SourceType(source_type) if source_type else None,
        limit=limit,
    )


@router.post("", response_model=ArticleUpsertResponse)
async def upsert_articles(
    request: ArticleUpsertRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Insert or update WeChat and RSS articles by id"""
    created, updated = orchestrator.articles.upsert_articles(request.articles)
    return ArticleUpsertResponse(created=created, updated=updated)


@router.post("/import/rss", response_model=RSSImportResponse)
async def import_rss_feed(
    request: RSSImportRequest,
    orchestrator: TaskOrchestrator = Depends(get_orchestrator)
):
    """Fetch an RSS feed and store its entries as articles"""
    result = await rss_service.import_feed(request.feed_url, orchestrator.articles, feed_id=request.feed_id)
    return RSSImportResponse(**result)


@router.get("/{article_id}", response_model=ArticleResponse)
async def get_article(
    article_id: str,
    db: Session = Depends(get_db)
):
    """Get a specific article by ID"""
    article = db.query(Article).filter(Article.id == article_id).first()

    if not article:
        raise HTTPException(status_code=404, detail=f"Article {article_id} not found")

    return ArticleResponse.from_model(article)
