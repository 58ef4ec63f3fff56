from news_analyzer.models.analysis_task import AnalysisTask
from news_analyzer.models.analysis_log import AnalysisLog
from news_analyzer.models.analyzed_news import AnalyzedNews
from news_analyzer.models.article import Article
from news_analyzer.models.feed import RSSFeed
from news_analyzer.models.llm_profile import LLMProfile
from news_analyzer.models.prompt_template import PromptTemplate

__all__ = [
    "AnalysisTask",
    "AnalysisLog",
    "AnalyzedNews",
    "Article",
    "RSSFeed",
    "LLMProfile",
    "PromptTemplate",
]
