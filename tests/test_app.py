from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from app import Application, _pair_session
from core.config import AntiSpamConfig, ReconnectConfig, SelfModerationConfig
from core.events import EventEmitter
from core.models import ChatInfo, IncomingMessage
from settings import Settings

OWNER = "1001"


class FakeTransport(EventEmitter):
    def __init__(self, mode: str = "ready") -> None:
        super().__init__()
        self.mode = mode
        self.fail_logout = False
        self.logouts = 0
        self.destroys = 0
        self.deleted: list[int] = []
        self.sent: list[tuple[int, str]] = []

    async def initialize(self) -> None:
        if self.mode == "auth_failure":
            await self.emit("auth_failure", "session revoked")
            return
        await self.emit("authenticated")
        await self.emit("ready")
        if self.mode == "drop":
            asyncio.get_running_loop().create_task(self.emit("disconnected", "gone"))

    async def logout(self) -> None:
        self.logouts += 1
        if self.fail_logout:
            raise RuntimeError("already logged out")

    async def destroy(self) -> None:
        self.destroys += 1

    async def send_message(self, chat_id: int, content: str, **options) -> None:
        self.sent.append((chat_id, content))

    async def get_chats(self) -> list[ChatInfo]:
        return []

    async def get_chat_by_id(self, chat_id: int) -> ChatInfo:
        if chat_id < 0:
            return ChatInfo(chat_id=chat_id, name="Family", is_group=True)
        return ChatInfo(chat_id=chat_id, name="Alice", is_group=False)

    async def get_message_chat(self, message: IncomingMessage) -> ChatInfo:
        return await self.get_chat_by_id(message.chat_id)

    async def delete_message(self, message: IncomingMessage, for_everyone: bool = True) -> None:
        self.deleted.append(message.message_id)


class FakeFactory:
    def __init__(self, mode: str = "ready") -> None:
        self.mode = mode
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(self.mode)
        self.created.append(transport)
        return transport


def _settings(**overrides) -> Settings:
    values = dict(
        self_moderation=SelfModerationConfig(delete_delay=0.01, target_user_id=OWNER, target_group_name="Family"),
        anti_spam=AntiSpamConfig(spam_threshold=3, cleanup_interval=60),
        reconnect=ReconnectConfig(max_attempts=0, base_delay=0.01),
    )
    values.update(overrides)
    return Settings(**values)


async def _wait_until(predicate: Callable[[], bool]) -> None:
    for _ in range(500):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("condition not reached")


def test_build_registers_group_and_direct_strategies() -> None:
    app = Application(_settings(), transport_factory=FakeFactory())
    app.build()

    assert app.dispatcher.list_categories() == {"group", "direct"}
    assert app.connection.get_state()["handlers_count"] == 1


def test_shutdown_is_idempotent() -> None:
    factory = FakeFactory()
    app = Application(_settings(), transport_factory=factory)

    async def scenario() -> None:
        app.build()
        await app.connection.initialize()
        await app.shutdown(0)
        await app.shutdown(1)

    asyncio.run(scenario())

    transport = factory.created[0]
    assert (transport.logouts, transport.destroys) == (1, 1)
    assert app.exit_code == 0


def test_logout_failure_does_not_skip_destroy() -> None:
    factory = FakeFactory()
    app = Application(_settings(), transport_factory=factory)

    async def scenario() -> None:
        app.build()
        await app.connection.initialize()
        factory.created[0].fail_logout = True
        await app.shutdown(0)

    asyncio.run(scenario())
    assert factory.created[0].destroys == 1


def test_logout_can_be_disabled() -> None:
    factory = FakeFactory()
    app = Application(_settings(logout_on_shutdown=False), transport_factory=factory)

    async def scenario() -> None:
        app.build()
        await app.connection.initialize()
        await app.shutdown(0)

    asyncio.run(scenario())
    assert (factory.created[0].logouts, factory.created[0].destroys) == (0, 1)


@pytest.mark.parametrize("mode", ["auth_failure", "drop"])
def test_terminal_connection_signals_end_the_run(mode: str) -> None:
    factory = FakeFactory(mode)
    app = Application(_settings(), transport_factory=factory)

    exit_code = asyncio.run(asyncio.wait_for(app.run(), timeout=5))

    assert exit_code == 1
    assert factory.created[0].destroys == 1


def test_owner_message_in_target_group_is_deleted_end_to_end() -> None:
    factory = FakeFactory()
    app = Application(_settings(), transport_factory=factory)

    async def scenario() -> int:
        runner = asyncio.get_running_loop().create_task(app.run())
        await _wait_until(lambda: app.connection is not None and app.connection.is_ready)
        transport = factory.created[0]
        await transport.emit(
            "message", IncomingMessage(message_id=1, chat_id=-5, author_id=OWNER, body="brb")
        )
        await transport.emit(
            "message", IncomingMessage(message_id=2, chat_id=-5, author_id="2002", body="ok")
        )
        await app.scheduler.drain()
        await app.shutdown(0)
        return await runner

    exit_code = asyncio.run(scenario())

    assert exit_code == 0
    assert factory.created[0].deleted == [1]


def test_direct_messages_feed_anti_spam() -> None:
    factory = FakeFactory()
    app = Application(_settings(), transport_factory=factory)

    async def scenario() -> None:
        app.build()
        await app.connection.initialize()
        transport = factory.created[0]
        for message_id in range(1, 4):
            await transport.emit(
                "message", IncomingMessage(message_id=message_id, chat_id=9, author_id="9", body="win a prize")
            )
        await app.shutdown(0)

    asyncio.run(scenario())

    # Only the first copy is recorded; with threshold 3 one near-duplicate is enough.
    assert len(app.anti_spam.history_for("9")) == 1


def test_pair_session_releases_the_transport() -> None:
    factory = FakeFactory()

    assert asyncio.run(_pair_session(factory)) is True
    assert len(factory.created) == 1
    assert factory.created[0].destroys == 1
    assert factory.created[0].logouts == 0


def test_pair_session_reports_auth_failure(capsys) -> None:
    factory = FakeFactory("auth_failure")

    assert asyncio.run(_pair_session(factory)) is False
    assert factory.created[0].destroys == 1
    assert "Pairing failed: session revoked" in capsys.readouterr().err
