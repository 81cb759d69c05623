from __future__ import annotations

import asyncio
from typing import Optional

from core.config import SelfModerationConfig
from core.models import ChatInfo, IncomingMessage
from core.scheduler import TaskScheduler
from core.self_moderation import SelfModerationStrategy

OWNER = "1001"
TARGET = ChatInfo(chat_id=-500, name="Family", is_group=True)
OTHER = ChatInfo(chat_id=-600, name="Work", is_group=True)


class FakeScheduler:
    def __init__(self) -> None:
        self.calls: list[tuple[float, object, Optional[str]]] = []

    def call_later(self, delay, callback, name=None) -> None:
        self.calls.append((delay, callback, name))

    async def fire_all(self) -> None:
        calls, self.calls = self.calls, []
        for _, callback, _ in calls:
            await callback()


class FakeDeleter:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.deleted: list[tuple[int, bool]] = []
        self.deleted_at: list[float] = []
        self._error = error

    async def delete_message(self, message: IncomingMessage, for_everyone: bool = True) -> None:
        if self._error is not None:
            raise self._error
        self.deleted_at.append(asyncio.get_running_loop().time())
        self.deleted.append((message.message_id, for_everyone))


def _message(author: str = OWNER, message_id: int = 1, chat: ChatInfo = TARGET) -> IncomingMessage:
    return IncomingMessage(message_id=message_id, chat_id=chat.chat_id, author_id=author, body="see you at 6")


def _strategy(deleter, scheduler, target_group: Optional[str] = "Family", delay: float = 5.0):
    config = SelfModerationConfig(delete_delay=delay, target_user_id=OWNER, target_group_name=target_group)
    return SelfModerationStrategy(config, deleter=deleter, scheduler=scheduler)


def test_owner_message_in_target_group_is_scheduled_for_deletion() -> None:
    deleter = FakeDeleter()
    scheduler = FakeScheduler()
    strategy = _strategy(deleter, scheduler)

    claimed = asyncio.run(strategy.handle(_message(), TARGET))

    assert claimed is True
    assert [delay for delay, _, _ in scheduler.calls] == [5.0]
    assert deleter.deleted == []

    asyncio.run(scheduler.fire_all())
    assert deleter.deleted == [(1, True)]


def test_other_author_is_never_scheduled() -> None:
    scheduler = FakeScheduler()
    strategy = _strategy(FakeDeleter(), scheduler)

    assert asyncio.run(strategy.handle(_message(author="2002"), TARGET)) is False
    assert scheduler.calls == []


def test_non_target_group_is_skipped_even_for_owner() -> None:
    scheduler = FakeScheduler()
    strategy = _strategy(FakeDeleter(), scheduler)

    assert strategy.should_process(_message(chat=OTHER), OTHER) is False
    assert asyncio.run(strategy.handle(_message(chat=OTHER), OTHER)) is False
    assert scheduler.calls == []


def test_without_target_group_every_chat_is_processed() -> None:
    scheduler = FakeScheduler()
    strategy = _strategy(FakeDeleter(), scheduler, target_group=None)

    assert asyncio.run(strategy.handle(_message(chat=OTHER), OTHER)) is True
    assert len(scheduler.calls) == 1


def test_should_process_reads_current_chat_name() -> None:
    strategy = _strategy(FakeDeleter(), FakeScheduler())
    renamed = ChatInfo(chat_id=TARGET.chat_id, name="Family (old)", is_group=True)

    assert strategy.should_process(_message(), TARGET) is True
    assert strategy.should_process(_message(), renamed) is False


def test_failed_deletion_is_logged_not_raised(caplog) -> None:
    scheduler = FakeScheduler()
    strategy = _strategy(FakeDeleter(error=RuntimeError("message already deleted")), scheduler)

    assert asyncio.run(strategy.handle(_message(message_id=77), TARGET)) is True
    asyncio.run(scheduler.fire_all())

    assert "Failed to delete message 77" in caplog.text


def test_deletion_fires_no_sooner_than_delay() -> None:
    deleter = FakeDeleter()

    async def scenario() -> float:
        scheduler = TaskScheduler()
        strategy = _strategy(deleter, scheduler, delay=0.05)
        started = asyncio.get_running_loop().time()
        assert await strategy.handle(_message(), TARGET) is True
        assert deleter.deleted == []
        await scheduler.drain()
        return started

    started = asyncio.run(scenario())

    assert deleter.deleted == [(1, True)]
    # asyncio may wake up to one clock tick early.
    assert deleter.deleted_at[0] - started >= 0.05 - 0.001
