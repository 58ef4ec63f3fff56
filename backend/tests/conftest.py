"""
Shared fixtures: a throwaway SQLite database per test and fake collaborators
for the orchestrator
"""
import asyncio
import os
import tempfile

# Settings are read at import time; keep the default engine away from ./data
_TMP_DIR = tempfile.mkdtemp(prefix="news_analyzer_tests_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR}/default.db")

import pytest
from sqlalchemy.orm import sessionmaker

from news_analyzer.database import init_db, make_engine
from news_analyzer.domain import ArticleRecord, ClassificationResult, SourceType
from news_analyzer.exceptions import NotFound
from news_analyzer.services.log_stream import LogStream
from news_analyzer.services.orchestrator import TaskOrchestrator
from news_analyzer.services.results import ResultStore
from news_analyzer.services.task_store import TaskStore


@pytest.fixture
def engine(tmp_path):
    db_engine = make_engine(f"sqlite:///{tmp_path}/test.db")
    init_db(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return TaskStore(session_factory)


@pytest.fixture
def log_stream(session_factory):
    return LogStream(session_factory)


def make_result(summary: str = "A short summary") -> ClassificationResult:
    return ClassificationResult(
        summary=summary,
        is_soft_news=False,
        industry_type="Finance",
        news_type="Policy",
        confidence=0.9,
        keywords=frozenset({"rates", "bank"}),
    )


class FakeArticles:
    """Article source serving in-memory records; unknown ids raise NotFound"""

    def __init__(self, ids=()):
        self.records = {
            article_id: ArticleRecord(
                article_id=article_id,
                title=f"Title {article_id}",
                body_text=f"Body of {article_id}",
                url=f"https://example.com/{article_id}",
                source_type=SourceType.RSS,
            )
            for article_id in ids
        }

    async def fetch_article(self, article_id: str) -> ArticleRecord:
        if article_id not in self.records:
            raise NotFound(f"Article {article_id} not found")
        return self.records[article_id]

    def get_title(self, article_id, session=None):
        record = self.records.get(article_id)
        return record.title if record else None

    def count(self) -> int:
        return len(self.records)


class FakeLLM:
    """
    Scripted classifier

    `behaviour` maps an article body to a list of outcomes consumed one per
    call (an exception instance is raised, anything else returns a result).
    `gate`, when set, blocks every call until it is released.
    """

    def __init__(self, behaviour=None, delay: float = 0.0):
        self.behaviour = behaviour or {}
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate = None

    async def classify(self, article_text, prompt_template, config=None, title=""):
        self.calls.append(article_text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            outcomes = self.behaviour.get(article_text)
            if outcomes:
                outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
                if isinstance(outcome, Exception):
                    raise outcome
            return make_result(f"Summary of {title}")
        finally:
            self.in_flight -= 1

    async def check_health(self) -> str:
        return "healthy"


@pytest.fixture
def fake_articles():
    return FakeArticles([f"a{i}" for i in range(1, 11)])


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def make_orchestrator(session_factory, fake_articles, fake_llm):
    def factory(**options):
        options.setdefault("concurrency", 3)
        options.setdefault("retry_delay", 0.0)
        options.setdefault("call_timeout", 5.0)
        return TaskOrchestrator(
            store=TaskStore(session_factory),
            logs=LogStream(session_factory, subscriber_window=options.pop("subscriber_window", 1000)),
            results=ResultStore(session_factory),
            articles=options.pop("articles", fake_articles),
            llm=options.pop("llm", fake_llm),
            session_factory=session_factory,
            template_provider=lambda: "Classify: {content}",
            **options,
        )
    return factory


async def _wait_terminal(orchestrator, task_id, timeout: float = 5.0):
    """Poll until the task is terminal and its run has been cleaned up"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        snapshot = orchestrator.get_status(task_id)
        if snapshot.is_terminal and orchestrator.active_runs == 0:
            return snapshot
        if loop.time() > deadline:
            raise AssertionError(f"task {task_id} still {snapshot.status.value}")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_terminal():
    return _wait_terminal
