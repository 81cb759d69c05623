"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any transport-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class IncomingMessage:
    """Minimal message view used by the dispatcher and strategies."""

    message_id: int
    chat_id: int
    author_id: str
    body: str
    has_media: bool = False
    date: Optional[datetime] = None


@dataclass(frozen=True)
class ChatInfo:
    """Chat the message belongs to. Direct chats carry the peer's name."""

    chat_id: int
    name: str
    is_group: bool


@dataclass(frozen=True)
class HistoryEntry:
    """One remembered message body in an author's spam history."""

    content: str
    timestamp: float
