"""
Append-only, task-scoped analysis log with live fan-out

Entries are persisted in analysis_logs with a per-task sequence number
assigned at append time. Live subscribers each own a bounded buffer; a slow
subscriber never blocks `append`. When its buffer overflows the oldest entry
is dropped and the subscriber receives a StreamGap before the next entry.
"""
import asyncio
import json
from collections import deque
from contextlib import contextmanager
from typing import AsyncIterator, Callable, Deque, Dict, Iterator, List, Optional, Set, Tuple, Union

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from news_analyzer.database import SessionLocal, session_scope
from news_analyzer.domain import LogEntry, LogLevel, StreamGap
from news_analyzer.exceptions import InvalidRequest
from news_analyzer.models import AnalysisLog
from news_analyzer.utils.timeutils import epoch_now_precise

HISTORY_PAGE_SIZE = 500

StreamItem = Union[LogEntry, StreamGap]


def _to_entry(row: AnalysisLog) -> LogEntry:
    return LogEntry(
        id=row.id,
        task_id=row.task_id,
        seq=row.seq,
        level=LogLevel(row.level),
        message=row.message,
        timestamp=row.timestamp,
        context=json.loads(row.context_json) if row.context_json else None,
    )


class _Subscription:
    """Per-subscriber buffer between `publish` and one `subscribe` generator"""

    def __init__(self, task_id: str, window: int):
        self.task_id = task_id
        self.window = window
        self.buffer: Deque[LogEntry] = deque()
        self.delivered_seq = -1
        self.missed_from: Optional[int] = None
        self.missed_to: Optional[int] = None
        self.closed = False
        self.wakeup = asyncio.Event()

    def push(self, entry: LogEntry):
        if len(self.buffer) >= self.window:
            dropped = self.buffer.popleft()
            # Entries already replayed from the store are not a loss
            if dropped.seq > self.delivered_seq:
                if self.missed_from is None:
                    self.missed_from = dropped.seq
                self.missed_to = dropped.seq
        self.buffer.append(entry)
        self.wakeup.set()

    def take_gap(self) -> Optional[Tuple[int, int]]:
        """(first missed seq, count) of dropped entries not delivered since"""
        if self.missed_from is None:
            return None
        start = max(self.missed_from, self.delivered_seq + 1)
        end = self.missed_to
        self.missed_from = self.missed_to = None
        if end < start:
            return None
        return start, end - start + 1

    def finish(self):
        self.closed = True
        self.wakeup.set()


class LogStream:
    """Durable log storage per task plus live delivery to subscribers"""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        is_terminal: Optional[Callable[[str], bool]] = None,
        subscriber_window: int = 1000,
    ):
        if subscriber_window < 1:
            raise ValueError("subscriber_window must be at least 1")
        self._session_factory = session_factory
        self._is_terminal = is_terminal or (lambda task_id: False)
        self._window = subscriber_window
        self._subscribers: Dict[str, Set[_Subscription]] = {}

    def bind_terminal_check(self, is_terminal: Callable[[str], bool]):
        self._is_terminal = is_terminal

    @contextmanager
    def _scope(self, session: Optional[Session]) -> Iterator[Session]:
        if session is not None:
            yield session
        else:
            with session_scope(self._session_factory) as db:
                yield db

    def append(
        self,
        task_id: str,
        level: LogLevel,
        message: str,
        context: Optional[dict] = None,
        session: Optional[Session] = None,
    ) -> LogEntry:
        """
        Persist a log entry with the next sequence number of its task

        With an explicit `session` the caller owns the transaction and must
        call `publish` after committing; otherwise the entry is committed and
        published here.
        """
        with self._scope(session) as db:
            last_seq = db.query(func.max(AnalysisLog.seq)).filter(AnalysisLog.task_id == task_id).scalar()
            row = AnalysisLog(
                task_id=task_id,
                seq=0 if last_seq is None else last_seq + 1,
                level=LogLevel(level).value,
                message=message,
                context_json=json.dumps(context, ensure_ascii=False) if context else None,
                timestamp=epoch_now_precise(),
            )
            db.add(row)
            db.flush()
            entry = _to_entry(row)

        if session is None:
            self.publish(entry)
        return entry

    def publish(self, entry: LogEntry):
        """Hand a committed entry to every live subscriber of its task"""
        for sub in list(self._subscribers.get(entry.task_id, ())):
            sub.push(entry)

    def close(self, task_id: str):
        """The task is terminal: let subscribers drain and finish"""
        for sub in list(self._subscribers.get(task_id, ())):
            sub.finish()

    def subscriber_count(self, task_id: str) -> int:
        return len(self._subscribers.get(task_id, ()))

    async def subscribe(self, task_id: str, from_offset: int = 0) -> AsyncIterator[StreamItem]:
        """
        Yield the task's entries from `from_offset`, then live entries

        The iterator ends once the task is terminal and everything buffered
        has been delivered. Each call is an independent subscription.
        """
        if from_offset < 0:
            raise InvalidRequest("from_offset must be >= 0")

        sub = _Subscription(task_id, self._window)
        # Register before replaying so nothing appended meanwhile is missed
        self._subscribers.setdefault(task_id, set()).add(sub)
        try:
            if self._is_terminal(task_id):
                sub.finish()

            sub.delivered_seq = from_offset - 1
            while True:
                page = self._page(task_id, sub.delivered_seq, HISTORY_PAGE_SIZE)
                for entry in page:
                    sub.delivered_seq = entry.seq
                    yield entry
                if len(page) < HISTORY_PAGE_SIZE:
                    break

            while True:
                while sub.buffer or sub.missed_from is not None:
                    missed = sub.take_gap()
                    if missed is not None:
                        gap = StreamGap(task_id=task_id, missed=missed[1], resume_offset=missed[0])
                        logger.warning(
                            f"Log subscriber for task {task_id} fell behind, "
                            f"{gap.missed} entries dropped from offset {gap.resume_offset}"
                        )
                        yield gap
                        continue
                    if not sub.buffer:
                        break

                    entry = sub.buffer.popleft()
                    if entry.seq <= sub.delivered_seq:
                        continue
                    sub.delivered_seq = entry.seq
                    yield entry

                if sub.closed:
                    return
                sub.wakeup.clear()
                await sub.wakeup.wait()
        finally:
            subs = self._subscribers.get(task_id)
            if subs is not None:
                subs.discard(sub)
                if not subs:
                    del self._subscribers[task_id]

    def _page(self, task_id: str, after_seq: int, size: int) -> List[LogEntry]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(AnalysisLog)
                .filter(AnalysisLog.task_id == task_id, AnalysisLog.seq > after_seq)
                .order_by(AnalysisLog.seq)
                .limit(size)
                .all()
            )
            return [_to_entry(row) for row in rows]

    def history(
        self,
        task_id: Optional[str] = None,
        level: Optional[LogLevel] = None,
        limit: Optional[int] = None,
        from_offset: int = 0,
    ) -> List[LogEntry]:
        """
        Persisted entries

        For one task: ascending by sequence number starting at `from_offset`.
        Across tasks: the most recent entries first.
        """
        with session_scope(self._session_factory) as db:
            query = db.query(AnalysisLog)
            if level is not None:
                query = query.filter(AnalysisLog.level == LogLevel(level).value)
            if task_id is not None:
                query = query.filter(AnalysisLog.task_id == task_id, AnalysisLog.seq >= from_offset)
                query = query.order_by(AnalysisLog.seq)
            else:
                query = query.order_by(AnalysisLog.timestamp.desc(), AnalysisLog.id.desc())
            if limit:
                query = query.limit(limit)
            return [_to_entry(row) for row in query.all()]

    def stats(self, task_id: Optional[str] = None) -> Dict[str, int]:
        with session_scope(self._session_factory) as db:
            query = db.query(AnalysisLog.level, func.count(AnalysisLog.id))
            if task_id is not None:
                query = query.filter(AnalysisLog.task_id == task_id)
            rows = query.group_by(AnalysisLog.level).all()

        counts = {level.value: 0 for level in LogLevel}
        counts.update({level: count for level, count in rows})
        counts["total"] = sum(counts.values())
        return counts

    def purge(self, task_id: Optional[str] = None, session: Optional[Session] = None) -> int:
        """Delete persisted entries of one task, or of all tasks"""
        with self._scope(session) as db:
            query = db.query(AnalysisLog)
            if task_id is not None:
                query = query.filter(AnalysisLog.task_id == task_id)
            deleted = query.delete(synchronize_session=False)

        logger.info(f"Purged {deleted} analysis log entries" + (f" of task {task_id}" if task_id else ""))
        return deleted
