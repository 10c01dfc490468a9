"""Deferred background work tests."""
import asyncio

import pytest
from fastapi import BackgroundTasks

from dachsbau.deferred import DeferredTasks


@pytest.mark.asyncio
async def test_runs_tasks_in_order():
    seen = []

    async def record(value):
        seen.append(value)

    deferred = DeferredTasks()
    deferred.add("first", record, 1)
    deferred.add("second", record, 2)
    assert deferred.names == ["first", "second"]
    assert await deferred.run_all() == 0
    assert seen == [1, 2]
    assert len(deferred) == 0


@pytest.mark.asyncio
async def test_failures_do_not_stop_the_queue():
    seen = []

    async def fail():
        raise RuntimeError("lost")

    async def slow():
        await asyncio.sleep(10)

    async def record():
        seen.append("ran")

    deferred = DeferredTasks(timeout_seconds=0.01)
    deferred.add("fail", fail)
    deferred.add("slow", slow)
    deferred.add("record", record)
    assert await deferred.run_all() == 2
    assert seen == ["ran"]


def test_attach_only_when_there_is_work():
    empty = DeferredTasks().attach(BackgroundTasks())
    assert not empty.tasks

    async def noop():
        return None

    deferred = DeferredTasks()
    deferred.add("noop", noop)
    assert len(deferred.attach(BackgroundTasks()).tasks) == 1
