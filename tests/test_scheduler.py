from __future__ import annotations

import asyncio

import pytest

from core.scheduler import TaskScheduler


def test_call_later_runs_once_after_delay() -> None:
    calls: list[float] = []

    async def scenario() -> float:
        scheduler = TaskScheduler()
        loop = asyncio.get_running_loop()
        task = scheduler.call_later(0.02, lambda: calls.append(loop.time()), name="tick")
        assert task.name == "tick"
        assert scheduler.pending == 1
        await scheduler.drain()
        assert scheduler.pending == 0
        return task.fire_at

    fire_at = asyncio.run(scenario())

    assert len(calls) == 1
    assert calls[0] >= fire_at - 0.001


def test_failing_job_is_logged_and_does_not_break_others(caplog) -> None:
    calls: list[str] = []

    async def broken() -> None:
        raise RuntimeError("kaput")

    async def scenario() -> None:
        scheduler = TaskScheduler()
        scheduler.call_later(0, broken, name="broken-job")
        scheduler.call_later(0, lambda: calls.append("ok"))
        await scheduler.drain()

    asyncio.run(scenario())

    assert calls == ["ok"]
    assert "Scheduled job broken-job failed" in caplog.text


def test_every_repeats_until_close() -> None:
    calls: list[int] = []

    async def scenario() -> None:
        scheduler = TaskScheduler()
        scheduler.every(0.01, lambda: calls.append(1))
        await asyncio.sleep(0.055)
        await scheduler.close()
        count = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == count

    asyncio.run(scenario())
    assert len(calls) >= 2


def test_closed_scheduler_rejects_new_jobs() -> None:
    async def scenario() -> None:
        scheduler = TaskScheduler()
        await scheduler.close()
        with pytest.raises(RuntimeError):
            scheduler.call_later(1, lambda: None)

    asyncio.run(scenario())


def test_close_from_inside_a_job_does_not_cancel_that_job() -> None:
    finished: list[bool] = []

    async def scenario() -> None:
        scheduler = TaskScheduler()

        async def job() -> None:
            await scheduler.close()
            finished.append(True)

        scheduler.call_later(0, job)
        await asyncio.sleep(0.01)

    asyncio.run(scenario())
    assert finished == [True]
