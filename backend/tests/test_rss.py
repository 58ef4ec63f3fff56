import httpx
import pytest

from news_analyzer.exceptions import AlreadyExists, FeedUnavailable, InvalidRequest, NotFound
from news_analyzer.schemas import FeedUpdate
from news_analyzer.services.article_source import ArticleSource
from news_analyzer.services.feeds import FeedService
from news_analyzer.services.rss import RSSService
from news_analyzer.utils.content_hash import stable_article_id


FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Market Wire</title>
    <link>https://wire.example.com</link>
    <description>Markets and trade</description>
    <item>
      <title>Chip exports tighten</title>
      <link>https://wire.example.com/chips</link>
      <description>New export rules for chips.</description>
      <pubDate>Mon, 06 Jan 2025 08:00:00 GMT</pubDate>
      <author>desk@wire.example.com</author>
    </item>
    <item>
      <title>Oil steadies</title>
      <link>https://wire.example.com/oil</link>
      <description>Crude holds near recent highs.</description>
    </item>
  </channel>
</rss>
"""


def make_service(handler):
    return RSSService(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_feed():
    service = make_service(lambda request: httpx.Response(200, text=FEED_XML))

    feed = await service.fetch_feed("https://wire.example.com/rss")

    assert feed["feed_title"] == "Market Wire"
    assert [entry["url"] for entry in feed["entries"]] == [
        "https://wire.example.com/chips",
        "https://wire.example.com/oil",
    ]
    assert feed["entries"][0]["published"] == 1736150400
    assert feed["entries"][1]["published"] == 0


@pytest.mark.asyncio
async def test_import_feed_is_idempotent(session_factory):
    service = make_service(lambda request: httpx.Response(200, text=FEED_XML))
    articles = ArticleSource(session_factory)

    first = await service.import_feed("https://wire.example.com/rss", articles)
    second = await service.import_feed("https://wire.example.com/rss", articles)

    assert first["imported"] == 2
    assert first["feed_title"] == "Market Wire"
    assert first["feed_id"] == stable_article_id("feed", "https://wire.example.com/rss")
    assert first["article_ids"] == second["article_ids"]
    assert first["article_ids"][0] == stable_article_id("rss", "https://wire.example.com/chips")
    assert articles.count() == 2

    record = await articles.fetch_article(first["article_ids"][0])
    assert record.body_text == "New export rules for chips."


@pytest.mark.asyncio
async def test_explicit_feed_id(session_factory):
    service = make_service(lambda request: httpx.Response(200, text=FEED_XML))
    articles = ArticleSource(session_factory)

    result = await service.import_feed("https://wire.example.com/rss", articles, feed_id="wire")

    assert result["feed_id"] == "wire"
    assert {item.source_id for item in articles.list_articles()} == {"wire"}


@pytest.mark.asyncio
async def test_http_error_status():
    service = make_service(lambda request: httpx.Response(503))

    with pytest.raises(FeedUnavailable):
        await service.fetch_feed("https://wire.example.com/rss")


@pytest.mark.asyncio
async def test_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(FeedUnavailable):
        await make_service(handler).fetch_feed("https://wire.example.com/rss")


@pytest.mark.asyncio
async def test_unparseable_feed():
    service = make_service(lambda request: httpx.Response(200, text="<html><p>not a feed"))

    with pytest.raises(FeedUnavailable):
        await service.fetch_feed("https://wire.example.com/rss")


@pytest.mark.asyncio
async def test_blank_feed_url(session_factory):
    service = make_service(lambda request: httpx.Response(200, text=FEED_XML))

    with pytest.raises(InvalidRequest):
        await service.import_feed("  ", ArticleSource(session_factory))


FEED_URL = "https://wire.example.com/rss"
DOWN_URL = "https://down.example.com/rss"


def feed_handler(request):
    if request.url.host == "down.example.com":
        return httpx.Response(503)
    return httpx.Response(200, text=FEED_XML)


@pytest.fixture
def feeds(session_factory):
    return FeedService(session_factory, ArticleSource(session_factory), rss=make_service(feed_handler))


@pytest.mark.asyncio
async def test_validate_url(feeds):
    ok = await feeds.validate_url(FEED_URL)
    assert ok == {"valid": True, "title": "Market Wire", "entry_count": 2}

    down = await feeds.validate_url(DOWN_URL)
    assert down["valid"] is False
    assert "503" in down["error"]

    bad_scheme = await feeds.validate_url("ftp://wire.example.com/rss")
    assert bad_scheme["valid"] is False


@pytest.mark.asyncio
async def test_add_feed_reads_channel_metadata(feeds):
    feed = await feeds.add_feed(FEED_URL, category="markets")

    assert feed.id == stable_article_id("feed", FEED_URL)
    assert feed.title == "Market Wire"
    assert feed.website_url == "https://wire.example.com"
    assert feed.description == "Markets and trade"
    assert feed.status == "active"
    assert feed.last_fetched == 0
    assert [f.id for f in feeds.list_feeds(category="markets")] == [feed.id]
    assert feeds.list_feeds(category="sports") == []


@pytest.mark.asyncio
async def test_add_feed_rejects_duplicates_and_bad_urls(feeds):
    await feeds.add_feed(FEED_URL)

    with pytest.raises(AlreadyExists):
        await feeds.add_feed(FEED_URL)
    with pytest.raises(InvalidRequest):
        await feeds.add_feed("wire.example.com/rss")
    with pytest.raises(FeedUnavailable):
        await feeds.add_feed(DOWN_URL)

    assert len(feeds.list_feeds()) == 1


@pytest.mark.asyncio
async def test_refresh_feed_imports_entries(feeds):
    feed = await feeds.add_feed(FEED_URL)

    result = await feeds.refresh_feed(feed.id)

    assert result == {"feed_id": feed.id, "status": "success", "imported": 2}
    assert feeds.articles.count() == 2
    assert {item.source_id for item in feeds.articles.list_articles()} == {feed.id}
    refreshed = feeds.get_feed(feed.id)
    assert refreshed.last_fetched > 0
    assert refreshed.last_fetch_status == "success"


@pytest.mark.asyncio
async def test_refresh_failure_is_recorded(feeds, session_factory):
    good = await feeds.add_feed(FEED_URL)
    # Subscribe while the host is up, then let it go down
    flaky = FeedService(
        session_factory,
        feeds.articles,
        rss=make_service(lambda request: httpx.Response(200, text=FEED_XML)),
    )
    down = await flaky.add_feed(DOWN_URL)

    with pytest.raises(FeedUnavailable):
        await feeds.refresh_feed(down.id)
    failed = feeds.get_feed(down.id)
    assert failed.last_fetch_status == "error"
    assert "503" in failed.error_message

    summary = await feeds.refresh_all()
    assert summary["refreshed"] == 1
    assert summary["failed"] == 1
    assert summary["imported"] == 2
    by_id = {r["feed_id"]: r for r in summary["results"]}
    assert by_id[good.id]["status"] == "success"
    assert by_id[down.id]["status"] == "error"


@pytest.mark.asyncio
async def test_refresh_all_skips_paused_feeds(feeds):
    feed = await feeds.add_feed(FEED_URL)
    paused = feeds.update_feed(feed.id, FeedUpdate(status="paused", category="archive"))
    assert paused.status == "paused"
    assert paused.category == "archive"

    summary = await feeds.refresh_all()

    assert summary == {"refreshed": 0, "failed": 0, "imported": 0, "results": []}
    assert feeds.articles.count() == 0


@pytest.mark.asyncio
async def test_delete_feed(feeds):
    feed = await feeds.add_feed(FEED_URL)
    await feeds.refresh_feed(feed.id)

    feeds.delete_feed(feed.id)

    with pytest.raises(NotFound):
        feeds.get_feed(feed.id)
    with pytest.raises(NotFound):
        feeds.delete_feed(feed.id)
    # Imported articles stay
    assert feeds.articles.count() == 2
