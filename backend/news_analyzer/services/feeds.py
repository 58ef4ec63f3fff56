"""
Subscribed RSS feeds

Feeds are stored in rss_feeds and refreshed on demand; a refresh imports the
feed's entries as RSS articles through RSSService.import_feed.
"""
from typing import Callable, Dict, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from news_analyzer.database import SessionLocal, session_scope
from news_analyzer.exceptions import AlreadyExists, FeedUnavailable, InvalidRequest, NotFound
from news_analyzer.models import RSSFeed
from news_analyzer.schemas.article import FeedResponse, FeedUpdate
from news_analyzer.services.article_source import ArticleSource
from news_analyzer.services.rss import RSSService, rss_service
from news_analyzer.utils.content_hash import stable_article_id
from news_analyzer.utils.timeutils import epoch_now


class FeedService:
    """CRUD and refresh for subscribed feeds"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        articles: Optional[ArticleSource] = None,
        rss: RSSService = rss_service,
    ):
        self.session_factory = session_factory
        self.articles = articles or ArticleSource(session_factory)
        self.rss = rss

    def _get(self, db: Session, feed_id: str) -> RSSFeed:
        feed = db.query(RSSFeed).filter(RSSFeed.id == feed_id).first()
        if not feed:
            raise NotFound(f"Feed {feed_id} not found")
        return feed

    async def validate_url(self, url: str) -> Dict:
        """Fetch a feed without storing anything; failures are reported, not raised"""
        url = url.strip()
        if not url.startswith(("http://", "https://")):
            return {"valid": False, "error": "URL must start with http:// or https://"}

        try:
            feed = await self.rss.fetch_feed(url)
        except FeedUnavailable as e:
            return {"valid": False, "error": e.message}

        return {"valid": True, "title": feed["feed_title"] or None, "entry_count": len(feed["entries"])}

    async def add_feed(self, url: str, title: Optional[str] = None, category: Optional[str] = None) -> FeedResponse:
        """
        Subscribe to a feed after checking that it can be fetched

        Raises:
            InvalidRequest: not an http(s) URL
            AlreadyExists: the URL is already subscribed
            FeedUnavailable: the feed could not be fetched or parsed
        """
        url = url.strip()
        if not url.startswith(("http://", "https://")):
            raise InvalidRequest("Feed URL must start with http:// or https://")

        with session_scope(self.session_factory) as db:
            if db.query(RSSFeed.id).filter(RSSFeed.url == url).first():
                raise AlreadyExists(f"Feed {url} is already subscribed")

        fetched = await self.rss.fetch_feed(url)
        now = epoch_now()

        with session_scope(self.session_factory) as db:
            feed = RSSFeed(
                id=stable_article_id("feed", url),
                title=title or fetched["feed_title"] or url,
                url=url,
                website_url=fetched["feed_link"] or None,
                description=fetched["feed_description"] or None,
                category=category,
                status='active',
                last_fetched=0,
                created_at=now,
                updated_at=now,
            )
            db.add(feed)
            db.flush()
            logger.info(f"Subscribed to feed {feed.title} ({url})")
            return FeedResponse.model_validate(feed)

    def list_feeds(self, category: Optional[str] = None, status: Optional[str] = None) -> List[FeedResponse]:
        with session_scope(self.session_factory) as db:
            query = db.query(RSSFeed)
            if category:
                query = query.filter(RSSFeed.category == category)
            if status:
                query = query.filter(RSSFeed.status == status)
            return [FeedResponse.model_validate(feed) for feed in query.order_by(RSSFeed.created_at.desc()).all()]

    def get_feed(self, feed_id: str) -> FeedResponse:
        with session_scope(self.session_factory) as db:
            return FeedResponse.model_validate(self._get(db, feed_id))

    def update_feed(self, feed_id: str, update: FeedUpdate) -> FeedResponse:
        with session_scope(self.session_factory) as db:
            feed = self._get(db, feed_id)
            for field, value in update.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(feed, field, value)
            feed.updated_at = epoch_now()
            db.flush()
            return FeedResponse.model_validate(feed)

    def delete_feed(self, feed_id: str):
        """Unsubscribe; articles already imported from the feed are kept"""
        with session_scope(self.session_factory) as db:
            db.delete(self._get(db, feed_id))
        logger.info(f"Feed {feed_id} deleted")

    def _record_fetch(self, feed_id: str, error: Optional[str]):
        with session_scope(self.session_factory) as db:
            feed = self._get(db, feed_id)
            now = epoch_now()
            feed.last_fetched = now
            feed.last_fetch_status = 'error' if error else 'success'
            feed.error_message = error
            feed.updated_at = now

    async def refresh_feed(self, feed_id: str) -> Dict:
        """
        Import the feed's current entries

        A fetch failure is stored on the feed and re-raised.
        """
        url = self.get_feed(feed_id).url
        try:
            result = await self.rss.import_feed(url, self.articles, feed_id=feed_id)
        except FeedUnavailable as e:
            self._record_fetch(feed_id, e.message)
            raise

        self._record_fetch(feed_id, None)
        logger.info(f"Feed {feed_id} refreshed: {result['imported']} entries imported")
        return {"feed_id": feed_id, "status": "success", "imported": result["imported"]}

    async def refresh_all(self) -> Dict:
        """Refresh every active feed in turn; one failing feed does not stop the rest"""
        results = []
        for feed in self.list_feeds(status='active'):
            try:
                results.append(await self.refresh_feed(feed.id))
            except FeedUnavailable as e:
                logger.warning(f"Feed {feed.id} refresh failed: {e.message}")
                results.append({"feed_id": feed.id, "status": "error", "imported": 0, "error": e.message})

        failed = sum(1 for r in results if r["status"] == "error")
        return {
            "refreshed": len(results) - failed,
            "failed": failed,
            "imported": sum(r["imported"] for r in results),
            "results": results,
        }
