from fastapi import APIRouter, Depends, Query, status
from typing import List, Literal, Optional

from news_analyzer.api.deps import ERROR_RESPONSES, get_feed_service
from news_analyzer.schemas import (
    FeedCreate,
    FeedRefreshAllResponse,
    FeedRefreshResponse,
    FeedResponse,
    FeedUpdate,
    FeedValidationResponse,
    MessageResponse,
)
from news_analyzer.services.feeds import FeedService

router = APIRouter(prefix="/feeds", tags=["feeds"], responses=ERROR_RESPONSES)


@router.get("", response_model=List[FeedResponse])
async def list_feeds(
    category: Optional[str] = None,
    status: Optional[Literal['active', 'paused']] = None,
    feeds: FeedService = Depends(get_feed_service)
):
    """List subscribed feeds, newest first"""
    return feeds.list_feeds(category=category, status=status)


@router.post("", response_model=FeedResponse, status_code=status.HTTP_201_CREATED)
async def add_feed(body: FeedCreate, feeds: FeedService = Depends(get_feed_service)):
    """Subscribe to a feed; the URL is fetched once to check it"""
    return await feeds.add_feed(body.url, title=body.title, category=body.category)


@router.get("/validate", response_model=FeedValidationResponse)
async def validate_feed_url(
    url: str = Query(..., min_length=1),
    feeds: FeedService = Depends(get_feed_service)
):
    """Check that a URL serves a parseable feed without subscribing to it"""
    return FeedValidationResponse(**await feeds.validate_url(url))


@router.post("/refresh", response_model=FeedRefreshAllResponse)
async def refresh_all_feeds(feeds: FeedService = Depends(get_feed_service)):
    """Import new entries from every active feed"""
    return FeedRefreshAllResponse(**await feeds.refresh_all())


@router.get("/{feed_id}", response_model=FeedResponse)
async def get_feed(feed_id: str, feeds: FeedService = Depends(get_feed_service)):
    return feeds.get_feed(feed_id)


@router.patch("/{feed_id}", response_model=FeedResponse)
async def update_feed(feed_id: str, body: FeedUpdate, feeds: FeedService = Depends(get_feed_service)):
    """Rename, recategorize, pause or resume a feed"""
    return feeds.update_feed(feed_id, body)


@router.delete("/{feed_id}", response_model=MessageResponse)
async def delete_feed(feed_id: str, feeds: FeedService = Depends(get_feed_service)):
    feeds.delete_feed(feed_id)
    return MessageResponse(message=f"Feed {feed_id} deleted")


@router.post("/{feed_id}/refresh", response_model=FeedRefreshResponse)
async def refresh_feed(feed_id: str, feeds: FeedService = Depends(get_feed_service)):
    """Import the feed's current entries as articles"""
    return FeedRefreshResponse(**await feeds.refresh_feed(feed_id))
