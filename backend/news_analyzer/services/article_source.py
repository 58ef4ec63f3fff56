"""
Article source adapter

Normalises stored WeChat and RSS articles into ArticleRecord. Articles without
stored body text are fetched over HTTP and reduced to plain text.
"""
import httpx
from bs4 import BeautifulSoup
from typing import Callable, List, Optional, Tuple
from loguru import logger
from sqlalchemy.orm import Session

from news_analyzer.config import settings
from news_analyzer.database import SessionLocal, session_scope
from news_analyzer.domain import ArticleRecord, SourceType
from news_analyzer.exceptions import ArticleProcessingError, NotFound
from news_analyzer.models import Article
from news_analyzer.schemas.article import ArticleIn, ArticleResponse, RSSArticleIn, WeChatArticleIn
from news_analyzer.utils.retry import retry_async
from news_analyzer.utils.timeutils import epoch_now

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

# WeChat article bodies live in #js_content
ARTICLE_SELECTORS = [
    '#js_content',
    '.rich_media_content',
    'article',
    '[role="main"]',
    '.article-content',
    '.post-content',
    '.entry-content',
    '.content',
    'main',
]

NOISE_TAGS = ['script', 'style', 'nav', 'footer', 'header', 'aside']

MIN_CONTENT_LENGTH = 100


def html_to_text(html: str) -> str:
    """Plain text of an HTML fragment (RSS content is often HTML)"""
    if not html:
        return ""
    soup = BeautifulSoup(html, 'lxml')
    for tag in soup(NOISE_TAGS):
        tag.decompose()
    return soup.get_text(separator=' ', strip=True)


def extract_article_text(html: str) -> Optional[str]:
    """
    Extract main article content from a full HTML page

    Args:
        html: Raw HTML content

    Returns:
        Extracted text content or None
    """
    soup = BeautifulSoup(html, 'lxml')

    for selector in ARTICLE_SELECTORS:
        article = soup.select_one(selector)
        if article:
            for tag in article(NOISE_TAGS):
                tag.decompose()

            text = article.get_text(separator=' ', strip=True)
            if len(text) > MIN_CONTENT_LENGTH:
                return text

    # Fallback: get body text
    body = soup.find('body')
    if body:
        for tag in body(NOISE_TAGS):
            tag.decompose()
        return body.get_text(separator=' ', strip=True) or None

    return None


class PageFetcher:
    """Lightweight HTTP page fetch with retries on transport errors"""

    def __init__(
        self,
        timeout: float = settings.FETCH_TIMEOUT,
        max_attempts: int = settings.FETCH_MAX_ATTEMPTS,
        retry_delay: float = settings.FETCH_RETRY_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._transport = transport

    async def _get(self, url: str) -> str:
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
        }
        async with httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, transport=self._transport
        ) as client:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
            return response.text

    async def fetch_html(self, url: str) -> str:
        return await retry_async(
            lambda: self._get(url),
            max_attempts=self.max_attempts,
            delay=self.retry_delay,
            backoff=1.0,
            exceptions=(httpx.TransportError,),
            label=f"fetch {url}",
        )

    async def fetch_text(self, url: str) -> Optional[str]:
        html = await self.fetch_html(url)
        text = extract_article_text(html)
        logger.debug(f"Fetched {len(text) if text else 0} chars of text from {url}")
        return text


def _stored_body(row: Article, source_type: SourceType) -> str:
    if source_type is SourceType.RSS:
        return html_to_text(row.content or row.summary or "")
    if source_type is SourceType.WECHAT:
        # Only metadata is stored for WeChat articles
        return ""
    raise ValueError(f"Unhandled source type: {source_type}")


def _row_values(item: ArticleIn) -> dict:
    if isinstance(item, WeChatArticleIn):
        return {
            "source_type": SourceType.WECHAT.value,
            "source_id": item.mp_id,
            "title": item.title,
            "url": item.url,
            "pic_url": item.pic_url,
            "content": None,
            "summary": None,
            "author": None,
            "publish_time": item.publish_time,
        }
    if isinstance(item, RSSArticleIn):
        return {
            "source_type": SourceType.RSS.value,
            "source_id": item.feed_id,
            "title": item.title,
            "url": item.url,
            "pic_url": None,
            "content": item.content,
            "summary": item.summary,
            "author": item.author,
            "publish_time": item.publish_time,
        }
    raise ValueError(f"Unhandled article variant: {type(item).__name__}")


class ArticleSource:
    """Read and write access to stored articles"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        fetcher: Optional[PageFetcher] = None,
    ):
        self._session_factory = session_factory
        self.fetcher = fetcher or PageFetcher()

    async def fetch_article(self, article_id: str) -> ArticleRecord:
        """
        Load an article and its body text

        Raises:
            NotFound: no stored article with this id
            ArticleProcessingError: no text could be obtained
            httpx.HTTPError: the page fetch failed after retries
        """
        with session_scope(self._session_factory) as db:
            row = db.get(Article, article_id)
            if row is None:
                raise NotFound(f"Article {article_id} not found")
            source_type = SourceType(row.source_type)
            title = row.title
            url = row.url
            body = _stored_body(row, source_type)

        if not body:
            logger.info(f"No stored body for article {article_id}, fetching {url}")
            body = await self.fetcher.fetch_text(url)
            if not body:
                raise ArticleProcessingError(article_id, "No text content could be extracted", title=title)

        return ArticleRecord(
            article_id=article_id,
            title=title,
            body_text=body,
            url=url,
            source_type=source_type,
        )

    def get_title(self, article_id: str, session: Optional[Session] = None) -> Optional[str]:
        if session is not None:
            row = session.get(Article, article_id)
            return row.title if row else None
        with session_scope(self._session_factory) as db:
            row = db.get(Article, article_id)
            return row.title if row else None

    def upsert_articles(self, items: List[ArticleIn]) -> Tuple[int, int]:
        """Insert or update articles by id; returns (created, updated)"""
        created = updated = 0
        now = epoch_now()
        with session_scope(self._session_factory) as db:
            for item in items:
                values = _row_values(item)
                row = db.get(Article, item.id)
                if row is None:
                    db.add(Article(id=item.id, created_at=now, updated_at=now, **values))
                    created += 1
                else:
                    for key, value in values.items():
                        setattr(row, key, value)
                    row.updated_at = now
                    updated += 1
                db.flush()

        logger.info(f"Upserted articles: {created} created, {updated} updated")
        return created, updated

    def list_articles(
        self,
        source_type: Optional[SourceType] = None,
        limit: Optional[int] = None,
    ) -> List[ArticleResponse]:
        with session_scope(self._session_factory) as db:
            query = db.query(Article)
            if source_type is not None:
                query = query.filter(Article.source_type == source_type.value)
            query = query.order_by(Article.publish_time.desc(), Article.id)
            if limit:
                query = query.limit(limit)
            return [ArticleResponse.from_model(row) for row in query.all()]

    def count(self) -> int:
        with session_scope(self._session_factory) as db:
            return db.query(Article).count()
