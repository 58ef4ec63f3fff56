"""
Core value types shared by the stores, the orchestrator and the API layer
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "TaskStatus") -> bool:
        if target is self:
            return not self.is_terminal
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.FAILED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}

if set(_TRANSITIONS) != set(TaskStatus):
    raise RuntimeError("task transition table must cover every TaskStatus")


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class SourceType(str, Enum):
    WECHAT = "wechat"
    RSS = "rss"


CANCELLED_MESSAGE = "cancelled"
INTERRUPTED_MESSAGE = "interrupted by restart"
SHUTDOWN_MESSAGE = "interrupted by shutdown"


@dataclass(frozen=True)
class TaskSnapshot:
    """Point-in-time copy of an analysis task record"""

    id: str
    status: TaskStatus
    total_articles: int
    processed_articles: int = 0
    success_count: int = 0
    failed_count: int = 0
    start_time: int = 0
    end_time: Optional[int] = None
    error_message: Optional[str] = None
    prompt_template: str = ""
    version: int = 0
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def with_changes(self, **changes) -> "TaskSnapshot":
        return replace(self, **changes)

    def check_invariants(self):
        """Raise ValueError if the record violates the task invariants"""
        counters = (self.total_articles, self.processed_articles, self.success_count, self.failed_count)
        if any(value < 0 for value in counters):
            raise ValueError(f"task {self.id}: negative counter {counters}")
        if self.processed_articles != self.success_count + self.failed_count:
            raise ValueError(
                f"task {self.id}: processed={self.processed_articles} "
                f"!= success={self.success_count} + failed={self.failed_count}"
            )
        if self.processed_articles > self.total_articles:
            raise ValueError(
                f"task {self.id}: processed={self.processed_articles} > total={self.total_articles}"
            )
        if self.status.is_terminal:
            if self.end_time is None or self.end_time < self.start_time:
                raise ValueError(f"task {self.id}: terminal task needs end_time >= start_time")
        elif self.end_time is not None:
            raise ValueError(f"task {self.id}: end_time set on non-terminal task")
        if self.status is TaskStatus.FAILED:
            if not self.error_message:
                raise ValueError(f"task {self.id}: failed task needs an error_message")
        elif self.error_message is not None:
            raise ValueError(f"task {self.id}: error_message only allowed on failed tasks")


@dataclass(frozen=True)
class LogEntry:
    task_id: str
    seq: int
    level: LogLevel
    message: str
    timestamp: float
    context: Optional[Dict[str, Any]] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class StreamGap:
    """
    Emitted to a subscriber whose buffer overflowed

    `missed` entries were dropped; a fresh subscription from `resume_offset`
    replays them from the store.
    """

    task_id: str
    missed: int
    resume_offset: int


@dataclass(frozen=True)
class ArticleRecord:
    """Source-agnostic article shape consumed by the orchestrator"""

    article_id: str
    title: str
    body_text: str
    url: str
    source_type: SourceType


@dataclass(frozen=True)
class ClassificationResult:
    summary: str
    is_soft_news: bool
    industry_type: str
    news_type: str
    confidence: float
    keywords: FrozenSet[str] = field(default_factory=frozenset)
