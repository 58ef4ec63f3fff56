"""
Analysis task orchestrator

Runs a batch of articles through the LLM classifier. Each task gets its own
pool of workers pulling article ids in submission order, so at most
`concurrency` classification calls of one task are in flight. Counter update,
result row and progress log of one article commit in a single transaction
under the task's lock; subscribers see the log entry only after commit.

One article failing never aborts the batch. A failure of the task itself
(state store or log backend unavailable, cancellation, shutdown) stops
dispatch and ends the task as failed once in-flight calls drain.
"""
import asyncio
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from news_analyzer.config import settings
from news_analyzer.database import SessionLocal, session_scope
from news_analyzer.domain import (
    CANCELLED_MESSAGE,
    INTERRUPTED_MESSAGE,
    SHUTDOWN_MESSAGE,
    ArticleRecord,
    ClassificationResult,
    LogLevel,
    TaskSnapshot,
    TaskStatus,
)
from news_analyzer.exceptions import (
    ArticleProcessingError,
    InvalidRequest,
    LLMError,
    LLMTimeout,
    NotFound,
    TaskConflict,
    TaskInfrastructureError,
)
from news_analyzer.services.article_source import ArticleSource
from news_analyzer.services.llm_client import LLMClient
from news_analyzer.services.log_stream import LogStream, StreamItem
from news_analyzer.services.results import ResultStore
from news_analyzer.services.task_store import TaskStore
from news_analyzer.utils.llm_config import get_default_prompt_template, get_llm_config
from news_analyzer.utils.retry import retry_async


class _RunStopped(Exception):
    """The run was stopped before an article reached the classifier"""


def normalize_article_ids(article_ids: Iterable[str]) -> List[str]:
    """Drop blank ids and duplicates, keeping first-seen order"""
    seen = {}
    for article_id in article_ids:
        article_id = (article_id or "").strip()
        if article_id:
            seen.setdefault(article_id, None)
    return list(seen)


class _TaskRun:
    """In-memory state of one live task"""

    def __init__(self, task_id: str, article_ids: List[str], prompt_template: str):
        self.task_id = task_id
        self.article_ids = article_ids
        self.prompt_template = prompt_template
        self.lock = asyncio.Lock()
        self.stop_reason: Optional[str] = None
        self.in_flight = 0
        self.next_index = 0
        self.finalized = False
        self.runner: Optional[asyncio.Task] = None

    @property
    def total(self) -> int:
        return len(self.article_ids)

    @property
    def stopped(self) -> bool:
        return self.stop_reason is not None

    def stop(self, reason: str):
        # The first cause wins
        if self.stop_reason is None:
            self.stop_reason = reason

    def claim_next(self) -> Optional[str]:
        if self.stopped or self.next_index >= self.total:
            return None
        article_id = self.article_ids[self.next_index]
        self.next_index += 1
        self.in_flight += 1
        return article_id


class TaskOrchestrator:
    """Accepts analysis batches and drives them to a terminal state"""

    def __init__(
        self,
        store: TaskStore,
        logs: LogStream,
        results: ResultStore,
        articles: ArticleSource,
        llm: LLMClient,
        session_factory: Callable[[], Session] = SessionLocal,
        concurrency: int = settings.ANALYSIS_CONCURRENCY,
        global_concurrency: int = settings.ANALYSIS_GLOBAL_CONCURRENCY,
        call_timeout: float = settings.LLM_CALL_TIMEOUT,
        max_retries: int = settings.ARTICLE_MAX_RETRIES,
        retry_delay: float = settings.RETRY_DELAY_SECONDS,
        retry_backoff: float = settings.RETRY_BACKOFF,
        template_provider: Optional[Callable[[], str]] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self.store = store
        self.logs = logs
        self.results = results
        self.articles = articles
        self.llm = llm
        self.session_factory = session_factory
        self.concurrency = concurrency
        self.call_timeout = call_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_backoff = retry_backoff
        self._template_provider = template_provider or (lambda: get_default_prompt_template(session_factory))
        self._global_limit = asyncio.Semaphore(global_concurrency) if global_concurrency > 0 else None
        self._runs: Dict[str, _TaskRun] = {}

        self.logs.bind_terminal_check(self._is_terminal)

    @property
    def active_runs(self) -> int:
        return len(self._runs)

    def _is_terminal(self, task_id: str) -> bool:
        try:
            return self.store.get(task_id).is_terminal
        except NotFound:
            return True

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def submit(self, article_ids: Iterable[str], prompt_template: str = "") -> str:
        """
        Create a pending task and schedule its run

        Raises:
            InvalidRequest: no article ids left after dropping blanks and duplicates
        """
        ids = normalize_article_ids(article_ids)
        if not ids:
            raise InvalidRequest("article_ids must contain at least one article id")

        template = prompt_template if prompt_template and prompt_template.strip() else self._template_provider()
        snapshot = self.store.create(len(ids), template)

        run = _TaskRun(snapshot.id, ids, template)
        self._runs[snapshot.id] = run
        run.runner = asyncio.create_task(self._run(run), name=f"analysis-{snapshot.id}")
        return snapshot.id

    async def cancel(self, task_id: str) -> TaskSnapshot:
        """
        Stop dispatching new articles and fail the task with "cancelled"

        In-flight calls are left to finish; the task turns failed once they
        drain. Cancelling a terminal task changes nothing.
        """
        snapshot = self.store.get(task_id)
        if snapshot.is_terminal:
            return snapshot

        run = self._runs.get(task_id)
        if run is None:
            # No live run in this process: nothing can be in flight
            try:
                with session_scope(self.session_factory) as db:
                    self.store.transition(task_id, TaskStatus.FAILED, error_message=CANCELLED_MESSAGE, session=db)
                    entry = self.logs.append(task_id, LogLevel.WARN, "Analysis cancelled", session=db)
                self.logs.publish(entry)
            except TaskConflict as e:
                logger.info(f"Cancel of task {task_id} raced with completion: {e}")
            self.logs.close(task_id)
            return self.store.get(task_id)

        logger.info(f"Cancelling task {task_id} ({run.in_flight} article(s) in flight)")
        run.stop(CANCELLED_MESSAGE)
        if run.in_flight == 0:
            await self._finalize(run)
        return self.store.get(task_id)

    def get_status(self, task_id: str) -> TaskSnapshot:
        return self.store.get(task_id)

    def list_tasks(self, limit: Optional[int] = None, status: Optional[TaskStatus] = None) -> List[TaskSnapshot]:
        return self.store.list(limit=limit, status=status)

    def subscribe_logs(self, task_id: str, from_offset: int = 0) -> AsyncIterator[StreamItem]:
        """
        Ordered log entries of a task, live until it is terminal

        Raises NotFound and InvalidRequest eagerly, before iteration starts.
        """
        self.store.get(task_id)
        if from_offset < 0:
            raise InvalidRequest("from_offset must be >= 0")
        return self.logs.subscribe(task_id, from_offset)

    def delete_task(self, task_id: str, purge: bool = False) -> Dict[str, int]:
        """
        Delete a terminal task; with `purge` its logs and results go too

        Raises:
            NotFound: unknown task
            TaskConflict: the task is still pending or running
        """
        snapshot = self.store.get(task_id)
        if not snapshot.is_terminal:
            raise TaskConflict(f"Task {task_id} is {snapshot.status.value}; cancel it before deleting")

        deleted = {"logs": 0, "news": 0}
        with session_scope(self.session_factory) as db:
            self.store.delete(task_id, session=db)
            if purge:
                deleted["logs"] = self.logs.purge(task_id, session=db)
                deleted["news"] = self.results.purge_task(task_id, session=db)

        logger.info(f"Deleted task {task_id} (purge={purge})")
        return deleted

    def recover_interrupted(self) -> List[str]:
        """Fail tasks a previous process left pending or running"""
        task_ids = self.store.fail_unfinished(INTERRUPTED_MESSAGE)
        for task_id in task_ids:
            self.logs.append(task_id, LogLevel.ERROR, f"Analysis failed: {INTERRUPTED_MESSAGE}")
        if task_ids:
            logger.warning(f"Marked {len(task_ids)} interrupted task(s) as failed")
        return task_ids

    async def shutdown(self, timeout: float = 10.0):
        """Stop dispatch everywhere and wait for live runs to finish"""
        runs = list(self._runs.values())
        if not runs:
            return

        logger.info(f"Shutting down orchestrator with {len(runs)} live task(s)")
        for run in runs:
            run.stop(SHUTDOWN_MESSAGE)

        runners = [run.runner for run in runs if run.runner is not None]
        if not runners:
            return
        done, pending = await asyncio.wait(runners, timeout=timeout)
        for runner in pending:
            runner.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Task run
    # ------------------------------------------------------------------

    async def _run(self, run: _TaskRun):
        try:
            if run.stopped:
                return
            await self._start(run)

            workers = [
                asyncio.create_task(self._worker(run), name=f"analysis-{run.task_id}-worker-{i}")
                for i in range(min(self.concurrency, run.total))
            ]
            await asyncio.gather(*workers)
        except Exception as e:
            # Task-level boundary: nothing escapes into the event loop
            logger.exception(f"Task {run.task_id} aborted: {e}")
            run.stop(str(e) or type(e).__name__)
        finally:
            try:
                await self._finalize(run)
            finally:
                self._runs.pop(run.task_id, None)

    async def _start(self, run: _TaskRun):
        async with run.lock:
            if run.finalized:
                # Cancelled before the run got going
                return
            with session_scope(self.session_factory) as db:
                self.store.update(
                    run.task_id,
                    lambda snap: snap.with_changes(status=TaskStatus.RUNNING),
                    expected_status=TaskStatus.PENDING,
                    session=db,
                )
                entry = self.logs.append(
                    run.task_id,
                    LogLevel.INFO,
                    f"Analysis started: {run.total} article(s), concurrency {min(self.concurrency, run.total)}",
                    context={"current_step": "start", "progress": 0, "total": run.total},
                    session=db,
                )
            self.logs.publish(entry)

    async def _worker(self, run: _TaskRun):
        while True:
            article_id = run.claim_next()
            if article_id is None:
                return
            try:
                await self._process_article(run, article_id)
            finally:
                run.in_flight -= 1

    async def _process_article(self, run: _TaskRun, article_id: str):
        """
        One article's unit of work

        Anything raised while fetching or classifying is recorded as an
        article failure, except an unavailable store or log backend, which
        stops the task. Errors while recording the outcome are task-level.
        An article whose run stopped before its first call is not recorded.
        """
        record: Optional[ArticleRecord] = None
        try:
            record = await self.articles.fetch_article(article_id)
            result = await self._classify(run, record)
        except _RunStopped:
            logger.info(f"Task {run.task_id}: article {article_id} skipped, run stopped ({run.stop_reason})")
            return
        except TaskInfrastructureError as e:
            logger.error(f"Task {run.task_id}: infrastructure failure on article {article_id}: {e}")
            run.stop(str(e) or type(e).__name__)
            return
        except Exception as e:
            if isinstance(e, ArticleProcessingError):
                error = e
            else:
                error = ArticleProcessingError(
                    article_id,
                    f"{type(e).__name__}: {e}",
                    title=record.title if record else None,
                )
            logger.warning(f"Task {run.task_id}: article {article_id} failed: {error.message}")
            outcome = self._record_failure(run, error)
        else:
            outcome = self._record_success(run, record, result)

        try:
            await outcome
        except Exception as e:
            logger.error(f"Task {run.task_id}: could not record article {article_id}: {e}")
            run.stop(str(e) or type(e).__name__)

    async def _classify(self, run: _TaskRun, record: ArticleRecord) -> ClassificationResult:
        attempts = self.max_retries + 1
        calls_made = 0

        async def call():
            nonlocal calls_made
            async with self._call_slot():
                # Cancellation may land while fetching or waiting for a slot
                if run.stopped:
                    if calls_made == 0:
                        raise _RunStopped()
                    raise ArticleProcessingError(
                        record.article_id, f"retry abandoned: {run.stop_reason}", title=record.title
                    )
                calls_made += 1
                try:
                    return await asyncio.wait_for(
                        self.llm.classify(record.body_text, run.prompt_template, title=record.title),
                        timeout=self.call_timeout,
                    )
                except asyncio.TimeoutError as e:
                    raise LLMTimeout(f"LLM call exceeded {self.call_timeout}s") from e

        async def on_retry(attempt: int, exc: Exception, delay: float):
            await self._log(
                run,
                LogLevel.WARN,
                f"Retrying '{record.title}' in {delay:g}s ({attempt + 1}/{attempts}): {exc}",
                context={"article_title": record.title, "current_step": "retry"},
            )

        return await retry_async(
            call,
            max_attempts=attempts,
            delay=self.retry_delay,
            backoff=self.retry_backoff,
            exceptions=(LLMError,),
            on_retry=on_retry,
            abort=lambda: run.stopped,
            label=f"classify {record.article_id}",
        )

    @asynccontextmanager
    async def _call_slot(self):
        if self._global_limit is None:
            yield
        else:
            async with self._global_limit:
                yield

    async def _record_success(self, run: _TaskRun, record: ArticleRecord, result: ClassificationResult):
        async with run.lock:
            with session_scope(self.session_factory) as db:
                snapshot = self.store.update(
                    run.task_id,
                    lambda snap: snap.with_changes(
                        processed_articles=snap.processed_articles + 1,
                        success_count=snap.success_count + 1,
                    ),
                    session=db,
                )
                self.results.add(db, run.task_id, record, result)
                entry = self.logs.append(
                    run.task_id,
                    LogLevel.INFO,
                    f"Analyzed '{record.title}' ({snapshot.processed_articles}/{snapshot.total_articles})",
                    context={
                        "article_title": record.title,
                        "current_step": "classified",
                        "progress": snapshot.processed_articles,
                        "total": snapshot.total_articles,
                    },
                    session=db,
                )
            self.logs.publish(entry)

    async def _record_failure(self, run: _TaskRun, error: ArticleProcessingError):
        async with run.lock:
            with session_scope(self.session_factory) as db:
                title = error.title or self.articles.get_title(error.article_id, session=db) or error.article_id
                snapshot = self.store.update(
                    run.task_id,
                    lambda snap: snap.with_changes(
                        processed_articles=snap.processed_articles + 1,
                        failed_count=snap.failed_count + 1,
                    ),
                    session=db,
                )
                entry = self.logs.append(
                    run.task_id,
                    LogLevel.ERROR,
                    f"Failed to analyze '{title}': {error.message}",
                    context={
                        "article_title": title,
                        "current_step": "failed",
                        "progress": snapshot.processed_articles,
                        "total": snapshot.total_articles,
                    },
                    session=db,
                )
            self.logs.publish(entry)

    async def _log(self, run: _TaskRun, level: LogLevel, message: str, context: Optional[dict] = None):
        async with run.lock:
            self.logs.append(run.task_id, level, message, context=context)

    async def _finalize(self, run: _TaskRun):
        """Move the task to its terminal state; runs once per task"""
        async with run.lock:
            if run.finalized:
                return
            run.finalized = True

            if run.stop_reason is None:
                status, level = TaskStatus.COMPLETED, LogLevel.INFO
            elif run.stop_reason == CANCELLED_MESSAGE:
                status, level = TaskStatus.FAILED, LogLevel.WARN
            else:
                status, level = TaskStatus.FAILED, LogLevel.ERROR

            try:
                with session_scope(self.session_factory) as db:
                    snapshot = self.store.update(
                        run.task_id,
                        lambda snap: snap.with_changes(status=status, error_message=run.stop_reason),
                        session=db,
                    )
                    if status is TaskStatus.COMPLETED:
                        message = (
                            f"Analysis completed: {snapshot.success_count} succeeded, "
                            f"{snapshot.failed_count} failed"
                        )
                    elif run.stop_reason == CANCELLED_MESSAGE:
                        message = f"Analysis cancelled after {snapshot.processed_articles}/{snapshot.total_articles} article(s)"
                    else:
                        message = f"Analysis failed: {run.stop_reason}"
                    entry = self.logs.append(
                        run.task_id,
                        level,
                        message,
                        context={
                            "current_step": "finished",
                            "progress": snapshot.processed_articles,
                            "total": snapshot.total_articles,
                        },
                        session=db,
                    )
                self.logs.publish(entry)
                logger.info(f"Task {run.task_id} {status.value}: {message}")
            except TaskConflict as e:
                logger.warning(f"Task {run.task_id} was already terminal: {e}")
            except Exception as e:
                # Left pending/running in the store; failed on next startup
                logger.error(f"Could not finalize task {run.task_id}: {e}")
            finally:
                self.logs.close(run.task_id)


def build_orchestrator(
    session_factory: Callable[[], Session] = SessionLocal,
    llm: Optional[LLMClient] = None,
    articles: Optional[ArticleSource] = None,
    **options,
) -> TaskOrchestrator:
    """Wire the stores and clients into an orchestrator"""
    store = TaskStore(session_factory)
    logs = LogStream(session_factory, subscriber_window=settings.LOG_SUBSCRIBER_WINDOW)
    return TaskOrchestrator(
        store=store,
        logs=logs,
        results=ResultStore(session_factory),
        articles=articles or ArticleSource(session_factory),
        llm=llm or LLMClient(config_provider=partial(get_llm_config, session_factory)),
        session_factory=session_factory,
        **options,
    )
