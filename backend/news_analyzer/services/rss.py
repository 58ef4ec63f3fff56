"""
RSS feed fetching and parsing service.

Feed entries are imported as RSS articles. Entry ids are derived from the
entry link, so importing the same feed twice updates instead of duplicating.
"""

import calendar
import httpx
import feedparser
from typing import Optional, Dict, Any, List
from loguru import logger

from news_analyzer.config import settings
from news_analyzer.exceptions import FeedUnavailable, InvalidRequest
from news_analyzer.schemas.article import RSSArticleIn
from news_analyzer.services.article_source import ArticleSource
from news_analyzer.utils.content_hash import stable_article_id


def _entry_time(entry) -> int:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    return calendar.timegm(parsed) if parsed else 0


def _entry_content(entry) -> Optional[str]:
    contents = entry.get("content") or []
    if contents:
        return contents[0].get("value") or None
    return None


class RSSService:
    """Service for fetching RSS feeds and importing their entries."""

    def __init__(self, timeout: float = settings.RSS_REQUEST_TIMEOUT, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    async def fetch_feed(self, feed_url: str) -> Dict[str, Any]:
        """
        Fetch and parse an RSS feed.

        Args:
            feed_url: URL of the RSS feed

        Returns:
            Dictionary with feed_title, feed_link, feed_description and an
            entries list.
            Each entry has: title, url, content, summary, published, author

        Raises:
            FeedUnavailable: network error, non-200 status or unparseable feed
        """
        logger.info(f"Fetching RSS feed: {feed_url}")
        headers = {
            "User-Agent": "Mozilla/5.0 (compatible; NewsAnalyzerBot/1.0)",
            "Accept": "application/rss+xml, application/xml, text/xml, */*",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True, transport=self._transport
            ) as client:
                response = await client.get(feed_url, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"RSS feed network error: {e}")
            raise FeedUnavailable(f"Could not fetch feed: {e}") from e

        if response.status_code != 200:
            logger.error(f"RSS feed returned HTTP {response.status_code}: {feed_url}")
            raise FeedUnavailable(f"Feed returned HTTP {response.status_code}")

        feed = feedparser.parse(response.text)

        if feed.bozo and not feed.entries:
            logger.error(f"RSS feed parse error: {feed.bozo_exception}")
            raise FeedUnavailable(f"Parse error: {feed.bozo_exception}")

        entries = []
        for entry in feed.entries:
            parsed_entry = {
                "title": entry.get("title", ""),
                "url": entry.get("link", ""),
                "content": _entry_content(entry),
                "summary": entry.get("summary", ""),
                "published": _entry_time(entry),
                "author": entry.get("author", ""),
            }
            if parsed_entry["url"]:
                entries.append(parsed_entry)

        logger.info(f"RSS feed parsed: {len(entries)} entries from {feed_url}")

        return {
            "feed_title": feed.feed.get("title", ""),
            "feed_link": feed.feed.get("link", ""),
            "feed_description": feed.feed.get("subtitle") or feed.feed.get("description", ""),
            "entries": entries,
        }

    async def import_feed(
        self,
        feed_url: str,
        articles: ArticleSource,
        feed_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Fetch a feed and upsert its entries as RSS articles"""
        if not feed_url.strip():
            raise InvalidRequest("feed_url must not be empty")

        feed = await self.fetch_feed(feed_url)
        feed_id = feed_id or stable_article_id("feed", feed_url)

        items: List[RSSArticleIn] = []
        for entry in feed["entries"]:
            items.append(RSSArticleIn(
                id=stable_article_id("rss", entry["url"]),
                feed_id=feed_id,
                title=entry["title"] or entry["url"],
                url=entry["url"],
                content=entry["content"],
                summary=entry["summary"] or None,
                author=entry["author"] or None,
                publish_time=entry["published"],
            ))

        if items:
            articles.upsert_articles(items)

        return {
            "feed_id": feed_id,
            "feed_title": feed["feed_title"],
            "imported": len(items),
            "article_ids": [item.id for item in items],
        }


# Singleton instance
rss_service = RSSService()
