from news_analyzer.utils.content_hash import generate_content_hash, stable_article_id
from news_analyzer.utils.retry import retry_async
from news_analyzer.utils.timeutils import epoch_now, epoch_now_precise, days_ago

__all__ = [
    "generate_content_hash",
    "stable_article_id",
    "retry_async",
    "epoch_now",
    "epoch_now_precise",
    "days_ago",
]
