"""
Task state store

Single source of truth for analysis task lifecycle. Every write goes through
`update`, which validates the status transition and counter invariants and
commits with a version compare-and-swap, so concurrent writers cannot lose
each other's updates.

Policy for terminal tasks: any update targeting a completed or failed task is
rejected with TaskConflict. It is never silently ignored.
"""
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from loguru import logger
from sqlalchemy import func, update as sql_update
from sqlalchemy.orm import Session

from news_analyzer.database import SessionLocal, session_scope
from news_analyzer.domain import TaskSnapshot, TaskStatus
from news_analyzer.exceptions import InvalidRequest, NotFound, TaskConflict
from news_analyzer.models import AnalysisTask
from news_analyzer.utils.timeutils import epoch_now

Mutator = Callable[[TaskSnapshot], TaskSnapshot]


def _to_snapshot(row: AnalysisTask) -> TaskSnapshot:
    return TaskSnapshot(
        id=row.id,
        status=TaskStatus(row.status),
        total_articles=row.total_articles,
        processed_articles=row.processed_articles,
        success_count=row.success_count,
        failed_count=row.failed_count,
        start_time=row.start_time,
        end_time=row.end_time,
        error_message=row.error_message,
        prompt_template=row.prompt_template or "",
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class TaskStore:
    """Durable read/write access to analysis_tasks"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    @contextmanager
    def _scope(self, session: Optional[Session]) -> Iterator[Session]:
        # A caller-provided session belongs to a wider transaction it commits itself
        if session is not None:
            yield session
        else:
            with session_scope(self._session_factory) as db:
                yield db

    def create(self, total_articles: int, prompt_template: str = "") -> TaskSnapshot:
        if total_articles < 1:
            raise InvalidRequest("A task needs at least one article")

        now = epoch_now()
        row = AnalysisTask(
            id=str(uuid.uuid4()),
            status=TaskStatus.PENDING.value,
            total_articles=total_articles,
            processed_articles=0,
            success_count=0,
            failed_count=0,
            start_time=now,
            end_time=None,
            error_message=None,
            prompt_template=prompt_template,
            version=0,
            created_at=now,
            updated_at=now,
        )

        with session_scope(self._session_factory) as db:
            db.add(row)
            db.flush()
            snapshot = _to_snapshot(row)

        logger.info(f"Created analysis task {snapshot.id} with {total_articles} articles")
        return snapshot

    def get(self, task_id: str, session: Optional[Session] = None) -> TaskSnapshot:
        with self._scope(session) as db:
            row = db.get(AnalysisTask, task_id)
            if row is None:
                raise NotFound(f"Analysis task {task_id} not found")
            return _to_snapshot(row)

    def exists(self, task_id: str) -> bool:
        with session_scope(self._session_factory) as db:
            return db.get(AnalysisTask, task_id) is not None

    def list(self, limit: Optional[int] = None, status: Optional[TaskStatus] = None) -> List[TaskSnapshot]:
        with session_scope(self._session_factory) as db:
            query = db.query(AnalysisTask)
            if status is not None:
                query = query.filter(AnalysisTask.status == status.value)
            query = query.order_by(AnalysisTask.created_at.desc(), AnalysisTask.id)
            if limit:
                query = query.limit(limit)
            return [_to_snapshot(row) for row in query.all()]

    def update(
        self,
        task_id: str,
        mutator: Mutator,
        expected_status: Optional[TaskStatus] = None,
        session: Optional[Session] = None,
    ) -> TaskSnapshot:
        """
        Apply `mutator` to the stored task and write the result

        Raises:
            NotFound: unknown task
            TaskConflict: the task is terminal, its status differs from
                `expected_status`, the mutation breaks an invariant, or
                another writer committed in between
        """
        with self._scope(session) as db:
            row = db.get(AnalysisTask, task_id)
            if row is None:
                raise NotFound(f"Analysis task {task_id} not found")

            current = _to_snapshot(row)
            if current.is_terminal:
                raise TaskConflict(f"Task {task_id} is already {current.status.value}")
            if expected_status is not None and current.status is not expected_status:
                raise TaskConflict(
                    f"Task {task_id} is {current.status.value}, expected {expected_status.value}"
                )

            proposed = mutator(current)
            if proposed.id != current.id or proposed.total_articles != current.total_articles:
                raise TaskConflict(f"Task {task_id}: id and total_articles are immutable")
            if not current.status.can_transition_to(proposed.status):
                raise TaskConflict(
                    f"Task {task_id}: illegal transition {current.status.value} -> {proposed.status.value}"
                )

            now = epoch_now()
            changes = {"version": current.version + 1, "updated_at": now}
            if proposed.status.is_terminal:
                changes["end_time"] = max(now, current.start_time)
            proposed = proposed.with_changes(**changes)

            try:
                proposed.check_invariants()
            except ValueError as e:
                raise TaskConflict(str(e)) from e

            result = db.execute(
                sql_update(AnalysisTask)
                .where(AnalysisTask.id == task_id, AnalysisTask.version == current.version)
                .values(
                    status=proposed.status.value,
                    processed_articles=proposed.processed_articles,
                    success_count=proposed.success_count,
                    failed_count=proposed.failed_count,
                    end_time=proposed.end_time,
                    error_message=proposed.error_message,
                    version=proposed.version,
                    updated_at=proposed.updated_at,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise TaskConflict(f"Task {task_id} was modified concurrently")

            db.expire(row)
            return proposed

    def transition(
        self,
        task_id: str,
        status: TaskStatus,
        error_message: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> TaskSnapshot:
        """Move a task to `status`, keeping its counters"""
        return self.update(
            task_id,
            lambda snap: snap.with_changes(status=status, error_message=error_message),
            session=session,
        )

    def fail_unfinished(self, message: str) -> List[str]:
        """Fail every pending or running task; returns their ids"""
        failed = []
        with session_scope(self._session_factory) as db:
            ids = [
                row.id for row in db.query(AnalysisTask.id).filter(
                    AnalysisTask.status.in_([TaskStatus.PENDING.value, TaskStatus.RUNNING.value])
                ).all()
            ]
        for task_id in ids:
            try:
                self.transition(task_id, TaskStatus.FAILED, error_message=message)
                failed.append(task_id)
            except TaskConflict as e:
                logger.warning(f"Could not fail unfinished task {task_id}: {e}")
        return failed

    def delete(self, task_id: str, session: Optional[Session] = None):
        with self._scope(session) as db:
            row = db.get(AnalysisTask, task_id)
            if row is None:
                raise NotFound(f"Analysis task {task_id} not found")
            db.delete(row)

    def counts_by_status(self) -> Dict[str, int]:
        with session_scope(self._session_factory) as db:
            rows = db.query(AnalysisTask.status, func.count(AnalysisTask.id)).group_by(AnalysisTask.status).all()
        counts = {status.value: 0 for status in TaskStatus}
        counts.update({status: count for status, count in rows})
        return counts

