"""
Tests for the log stream: per-task ordering, replay, live fan-out and gap
signalling for slow subscribers
"""

import asyncio
import pytest

from news_analyzer.domain import LogEntry, LogLevel, StreamGap
from news_analyzer.exceptions import InvalidRequest
from news_analyzer.services.log_stream import LogStream


class TerminalFlag:
    """Stand-in for the task store's terminal check"""

    def __init__(self):
        self.terminal = set()

    def __call__(self, task_id):
        return task_id in self.terminal


async def collect(iterator, limit=None):
    items = []
    async for item in iterator:
        items.append(item)
        if limit is not None and len(items) >= limit:
            break
    return items


def test_sequence_numbers_are_per_task(log_stream):
    a0 = log_stream.append("task-a", LogLevel.INFO, "first")
    b0 = log_stream.append("task-b", LogLevel.INFO, "other task")
    a1 = log_stream.append("task-a", LogLevel.WARN, "second", context={"progress": 1, "total": 2})

    assert (a0.seq, a1.seq, b0.seq) == (0, 1, 0)

    history = log_stream.history("task-a")
    assert [entry.message for entry in history] == ["first", "second"]
    assert history[1].context == {"progress": 1, "total": 2}


def test_history_filters_and_stats(log_stream):
    log_stream.append("t", LogLevel.INFO, "ok")
    log_stream.append("t", LogLevel.ERROR, "bad")
    log_stream.append("t", LogLevel.ERROR, "worse")
    log_stream.append("other", LogLevel.DEBUG, "noise")

    errors = log_stream.history("t", level=LogLevel.ERROR)
    assert [entry.message for entry in errors] == ["bad", "worse"]
    assert [entry.seq for entry in log_stream.history("t", from_offset=1)] == [1, 2]

    stats = log_stream.stats("t")
    assert stats == {"debug": 0, "info": 1, "warn": 0, "error": 2, "total": 3}
    assert log_stream.stats()["total"] == 4


def test_purge(log_stream):
    log_stream.append("t", LogLevel.INFO, "one")
    log_stream.append("t", LogLevel.INFO, "two")
    log_stream.append("u", LogLevel.INFO, "three")

    assert log_stream.purge("t") == 2
    assert log_stream.history("t") == []
    assert len(log_stream.history("u")) == 1


@pytest.mark.asyncio
async def test_subscribe_to_terminal_task_replays_and_closes(session_factory):
    """A finished task's stream is finite: history, then end"""
    flag = TerminalFlag()
    logs = LogStream(session_factory, is_terminal=flag)
    for i in range(5):
        logs.append("t", LogLevel.INFO, f"entry {i}")
    flag.terminal.add("t")

    items = await asyncio.wait_for(collect(logs.subscribe("t")), timeout=2)

    assert [item.seq for item in items] == [0, 1, 2, 3, 4]
    assert all(isinstance(item, LogEntry) for item in items)


@pytest.mark.asyncio
async def test_offset_round_trip(session_factory):
    """The entry appended with offset n is the n-th entry of every subscription"""
    flag = TerminalFlag()
    logs = LogStream(session_factory, is_terminal=flag)
    appended = [logs.append("t", LogLevel.INFO, f"entry {i}") for i in range(4)]
    flag.terminal.add("t")

    for _ in range(2):
        items = await collect(logs.subscribe("t", 0))
        for entry in appended:
            assert items[entry.seq].message == entry.message

    tail = await collect(logs.subscribe("t", 2))
    assert [item.seq for item in tail] == [2, 3]


@pytest.mark.asyncio
async def test_negative_offset_rejected(log_stream):
    with pytest.raises(InvalidRequest):
        await collect(log_stream.subscribe("t", -1))


@pytest.mark.asyncio
async def test_live_subscribers_see_full_sequence(session_factory):
    """Two subscribers started at different times both get the whole ordered log"""
    flag = TerminalFlag()
    logs = LogStream(session_factory, is_terminal=flag)

    first = asyncio.create_task(collect(logs.subscribe("t")))
    await asyncio.sleep(0)
    logs.append("t", LogLevel.INFO, "entry 0")
    logs.append("t", LogLevel.INFO, "entry 1")

    second = asyncio.create_task(collect(logs.subscribe("t")))
    await asyncio.sleep(0)
    for i in range(2, 6):
        logs.append("t", LogLevel.INFO, f"entry {i}")
        await asyncio.sleep(0)

    flag.terminal.add("t")
    logs.close("t")

    first_items, second_items = await asyncio.wait_for(asyncio.gather(first, second), timeout=2)
    expected = [f"entry {i}" for i in range(6)]
    assert [item.message for item in first_items] == expected
    assert [item.message for item in second_items] == expected
    assert logs.subscriber_count("t") == 0


@pytest.mark.asyncio
async def test_slow_subscriber_gets_gap(session_factory):
    """Overflowing a subscriber's window drops the oldest entries and says so"""
    flag = TerminalFlag()
    logs = LogStream(session_factory, is_terminal=flag, subscriber_window=3)

    stream = logs.subscribe("t")
    first = logs.append("t", LogLevel.INFO, "entry 0")
    # Prime the generator: it registers, replays entry 0 and goes live
    assert (await stream.__anext__()).seq == first.seq

    # Append without yielding to the reader: the window of 3 overflows
    for i in range(1, 8):
        logs.append("t", LogLevel.INFO, f"entry {i}")
    flag.terminal.add("t")
    logs.close("t")

    rest = await asyncio.wait_for(collect(stream), timeout=2)

    gap = rest[0]
    assert isinstance(gap, StreamGap)
    assert gap.missed == 4
    assert gap.resume_offset == 1
    assert [item.seq for item in rest[1:]] == [5, 6, 7]

    # Resubscribing from the resume offset recovers what was dropped
    replay = await collect(logs.subscribe("t", gap.resume_offset))
    assert [item.seq for item in replay] == [1, 2, 3, 4, 5, 6, 7]


@pytest.mark.asyncio
async def test_append_does_not_wait_for_subscribers(session_factory):
    logs = LogStream(session_factory, subscriber_window=2)
    stream = logs.subscribe("t")
    pending = asyncio.create_task(stream.__anext__())
    await asyncio.sleep(0)

    for i in range(50):
        logs.append("t", LogLevel.DEBUG, f"entry {i}")

    first = await asyncio.wait_for(pending, timeout=2)
    assert isinstance(first, (LogEntry, StreamGap))
    await stream.aclose()
    assert logs.subscriber_count("t") == 0
