"""Telegram-to-core mapping adapter.

This keeps Telethon-specific details out of the core dispatcher and
strategies.
"""

from __future__ import annotations

from typing import Any

from telethon.tl.custom import Message

from core.models import ChatInfo, IncomingMessage


class ChatResolver:
    """Resolve chat entities into ChatInfo, with a chat_id cache."""

    def __init__(self, client) -> None:
        self._client = client
        self._cache: dict[int, ChatInfo] = {}

    async def resolve(self, chat_id: int) -> ChatInfo:
        cached = self._cache.get(chat_id)
        if cached is not None:
            return cached
        entity = await self._client.get_entity(chat_id)
        chat = build_chat(entity, chat_id)
        self._cache[chat_id] = chat
        return chat

    def forget(self, chat_id: int) -> None:
        # Titles change; drop the cached entry when Telegram tells us so.
        self._cache.pop(chat_id, None)


def is_group_entity(entity: Any) -> bool:
    """Basic groups and supergroups count as groups; broadcast channels do not."""

    if getattr(entity, "megagroup", False) or getattr(entity, "gigagroup", False):
        return True
    if getattr(entity, "broadcast", False):
        return False
    return bool(getattr(entity, "title", None))


def chat_title(entity: Any) -> str:
    title = getattr(entity, "title", None)
    if title:
        return str(title)
    first = getattr(entity, "first_name", None)
    last = getattr(entity, "last_name", None)
    if first or last:
        return " ".join(part for part in [first, last] if part)
    username = getattr(entity, "username", None)
    if username:
        return f"@{username}"
    entity_id = getattr(entity, "id", None)
    return str(entity_id or "unknown")


def build_chat(entity: Any, chat_id: int) -> ChatInfo:
    """Build a core ChatInfo from a Telethon User/Chat/Channel entity."""

    return ChatInfo(chat_id=chat_id, name=chat_title(entity), is_group=is_group_entity(entity))


def author_id_from_message(message: Message) -> str:
    # Anonymous admins and channel posts have no sender_id; fall back to the chat.
    sender_id = getattr(message, "sender_id", None)
    if sender_id is None:
        sender_id = message.chat_id
    return str(sender_id)


def build_message(message: Message) -> IncomingMessage:
    """Build a core IncomingMessage from a Telethon Message."""

    return IncomingMessage(
        message_id=message.id,
        chat_id=message.chat_id,
        author_id=author_id_from_message(message),
        body=message.raw_text or "",
        has_media=getattr(message, "media", None) is not None,
        date=getattr(message, "date", None),
    )
