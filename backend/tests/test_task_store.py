"""
Tests for the task state store: creation, CAS updates and the terminal policy
"""

import pytest
from sqlalchemy import update

from news_analyzer.database import session_scope
from news_analyzer.domain import TaskStatus
from news_analyzer.exceptions import InvalidRequest, NotFound, TaskConflict
from news_analyzer.models import AnalysisTask


def test_create_stores_pending_task(store):
    """A new task is pending with zeroed counters"""
    task = store.create(3, "Classify: {content}")

    stored = store.get(task.id)
    assert stored.status is TaskStatus.PENDING
    assert stored.total_articles == 3
    assert stored.processed_articles == 0
    assert stored.end_time is None
    assert stored.error_message is None
    assert stored.prompt_template == "Classify: {content}"


def test_create_rejects_empty_batch(store):
    with pytest.raises(InvalidRequest):
        store.create(0)
    assert store.list() == []


def test_get_unknown_task(store):
    with pytest.raises(NotFound):
        store.get("missing")


def test_update_bumps_version(store):
    task = store.create(2)

    running = store.transition(task.id, TaskStatus.RUNNING)
    updated = store.update(
        task.id,
        lambda snap: snap.with_changes(processed_articles=1, success_count=1),
    )

    assert running.version == task.version + 1
    assert updated.version == task.version + 2
    assert store.get(task.id).processed_articles == 1


def test_update_rejects_broken_counters(store):
    """processed = success + failed and processed <= total are enforced"""
    task = store.create(1)
    store.transition(task.id, TaskStatus.RUNNING)

    with pytest.raises(TaskConflict):
        store.update(task.id, lambda snap: snap.with_changes(processed_articles=1))

    with pytest.raises(TaskConflict):
        store.update(
            task.id,
            lambda snap: snap.with_changes(processed_articles=2, success_count=2),
        )

    assert store.get(task.id).processed_articles == 0


def test_illegal_transition_rejected(store):
    """pending cannot jump straight to completed"""
    task = store.create(1)

    with pytest.raises(TaskConflict):
        store.transition(task.id, TaskStatus.COMPLETED)


def test_expected_status_mismatch(store):
    task = store.create(1)
    store.transition(task.id, TaskStatus.RUNNING)

    with pytest.raises(TaskConflict):
        store.update(task.id, lambda snap: snap, expected_status=TaskStatus.PENDING)

    # Matching expectation goes through
    assert store.update(task.id, lambda snap: snap, expected_status=TaskStatus.RUNNING).status is TaskStatus.RUNNING


def test_terminal_task_rejects_updates(store):
    """Every write to a completed or failed task is a TaskConflict"""
    task = store.create(1)
    store.transition(task.id, TaskStatus.RUNNING)
    store.update(task.id, lambda snap: snap.with_changes(processed_articles=1, failed_count=1))
    done = store.transition(task.id, TaskStatus.COMPLETED)

    assert done.end_time is not None
    assert done.end_time >= done.start_time

    for target in TaskStatus:
        with pytest.raises(TaskConflict):
            store.transition(task.id, target, error_message="late")

    assert store.get(task.id).status is TaskStatus.COMPLETED


def test_failed_requires_message(store):
    task = store.create(1)

    with pytest.raises(TaskConflict):
        store.transition(task.id, TaskStatus.FAILED)

    failed = store.transition(task.id, TaskStatus.FAILED, error_message="boom")
    assert failed.status is TaskStatus.FAILED
    assert failed.error_message == "boom"


def test_lost_race_is_conflict(store, session_factory):
    """A write committed between read and CAS makes the CAS fail"""
    task = store.create(2)
    store.transition(task.id, TaskStatus.RUNNING)

    def sneaky_mutator(snap):
        # Another writer bumps the version after our read
        with session_scope(session_factory) as db:
            db.execute(
                update(AnalysisTask)
                .where(AnalysisTask.id == task.id)
                .values(version=AnalysisTask.version + 1)
            )
        return snap.with_changes(processed_articles=1, success_count=1)

    with pytest.raises(TaskConflict):
        store.update(task.id, sneaky_mutator)

    assert store.get(task.id).processed_articles == 0


def test_fail_unfinished(store):
    pending = store.create(1)
    running = store.create(1)
    store.transition(running.id, TaskStatus.RUNNING)
    finished = store.create(1)
    store.transition(finished.id, TaskStatus.FAILED, error_message="earlier")

    failed_ids = store.fail_unfinished("interrupted by restart")

    assert set(failed_ids) == {pending.id, running.id}
    assert store.get(pending.id).error_message == "interrupted by restart"
    assert store.get(finished.id).error_message == "earlier"


def test_counts_by_status(store):
    store.create(1)
    task = store.create(1)
    store.transition(task.id, TaskStatus.RUNNING)

    counts = store.counts_by_status()
    assert counts == {"pending": 1, "running": 1, "completed": 0, "failed": 0}


def test_delete(store):
    task = store.create(1)
    store.delete(task.id)

    assert not store.exists(task.id)
    with pytest.raises(NotFound):
        store.delete(task.id)
