from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from adapters.telegram_mapper import ChatResolver, build_chat, build_message, is_group_entity


class DummyEntity:
    def __init__(self, **attrs) -> None:
        for key, value in attrs.items():
            setattr(self, key, value)


class DummyMessage:
    def __init__(
        self,
        *,
        chat_id: int,
        message_id: int,
        text: "str | None",
        sender_id: "int | None" = 77,
        media=None,
    ) -> None:
        self.chat_id = chat_id
        self.id = message_id
        self.raw_text = text
        self.sender_id = sender_id
        self.media = media
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)


class DummyClient:
    def __init__(self, entity) -> None:
        self._entity = entity
        self.lookups = 0

    async def get_entity(self, chat_id: int):
        self.lookups += 1
        return self._entity


def test_build_message_text() -> None:
    message = build_message(DummyMessage(chat_id=-100123, message_id=10, text="hello"))

    assert message.message_id == 10
    assert message.chat_id == -100123
    assert message.author_id == "77"
    assert message.body == "hello"
    assert message.has_media is False
    assert message.date == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_build_message_media_without_caption() -> None:
    message = build_message(DummyMessage(chat_id=5, message_id=1, text=None, media=object()))

    assert message.body == ""
    assert message.has_media is True


def test_build_message_without_sender_uses_chat() -> None:
    message = build_message(DummyMessage(chat_id=-100555, message_id=1, text="news", sender_id=None))

    assert message.author_id == "-100555"


def test_group_detection() -> None:
    assert is_group_entity(DummyEntity(title="Basic group")) is True
    assert is_group_entity(DummyEntity(title="Super", megagroup=True, broadcast=False)) is True
    assert is_group_entity(DummyEntity(title="Channel", megagroup=False, broadcast=True)) is False
    assert is_group_entity(DummyEntity(first_name="Alice")) is False


def test_build_chat_names() -> None:
    assert build_chat(DummyEntity(title="Family"), -1).name == "Family"
    assert build_chat(DummyEntity(first_name="Ada", last_name="Lovelace"), 2).name == "Ada Lovelace"
    assert build_chat(DummyEntity(username="bob"), 3).name == "@bob"
    assert build_chat(DummyEntity(id=4), 4).name == "4"


def test_chat_resolver_caches_until_forgotten() -> None:
    client = DummyClient(DummyEntity(title="Family"))
    resolver = ChatResolver(client)

    async def scenario() -> None:
        first = await resolver.resolve(-1)
        second = await resolver.resolve(-1)
        assert first == second
        assert first.is_group is True
        resolver.forget(-1)
        await resolver.resolve(-1)

    asyncio.run(scenario())
    assert client.lookups == 2
