from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Literal, Optional, Union


class WeChatArticleIn(BaseModel):
    """WeChat official-account article; only metadata is stored"""
    source_type: Literal['wechat'] = 'wechat'
    id: str
    mp_id: str
    title: str
    url: str
    pic_url: Optional[str] = None
    publish_time: int = 0


class RSSArticleIn(BaseModel):
    """RSS feed entry"""
    source_type: Literal['rss'] = 'rss'
    id: str
    feed_id: str
    title: str
    url: str
    content: Optional[str] = None
    summary: Optional[str] = None
    author: Optional[str] = None
    publish_time: int = 0


ArticleIn = Annotated[Union[WeChatArticleIn, RSSArticleIn], Field(discriminator='source_type')]


class ArticleUpsertRequest(BaseModel):
    articles: list[ArticleIn] = Field(..., min_length=1)


class ArticleResponse(BaseModel):
    """Schema for a stored article"""
    id: str
    source_type: Literal['wechat', 'rss']
    source_id: Optional[str] = None
    title: str
    url: str
    pic_url: Optional[str] = None
    summary: Optional[str] = None
    author: Optional[str] = None
    publish_time: int
    has_content: bool

    @classmethod
    def from_model(cls, article) -> "ArticleResponse":
        return cls(
            id=article.id,
            source_type=article.source_type,
            source_id=article.source_id,
            title=article.title,
            url=article.url,
            pic_url=article.pic_url,
            summary=article.summary,
            author=article.author,
            publish_time=article.publish_time,
            has_content=bool(article.content),
        )


class ArticleUpsertResponse(BaseModel):
    created: int
    updated: int


class RSSImportRequest(BaseModel):
    feed_url: str
    feed_id: Optional[str] = None


class RSSImportResponse(BaseModel):
    feed_id: str
    feed_title: str
    imported: int
    article_ids: list[str]


class FeedCreate(BaseModel):
    url: str = Field(..., min_length=1)
    title: Optional[str] = None
    category: Optional[str] = None


class FeedUpdate(BaseModel):
    title: Optional[str] = None
    category: Optional[str] = None
    status: Optional[Literal['active', 'paused']] = None


class FeedResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    url: str
    website_url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    status: Literal['active', 'paused']
    last_fetched: int
    last_fetch_status: Optional[Literal['success', 'error']] = None
    error_message: Optional[str] = None
    created_at: int
    updated_at: int


class FeedValidationResponse(BaseModel):
    valid: bool
    title: Optional[str] = None
    entry_count: int = 0
    error: Optional[str] = None


class FeedRefreshResponse(BaseModel):
    feed_id: str
    status: Literal['success', 'error']
    imported: int = 0
    error: Optional[str] = None


class FeedRefreshAllResponse(BaseModel):
    refreshed: int
    failed: int
    imported: int
    results: list[FeedRefreshResponse]
