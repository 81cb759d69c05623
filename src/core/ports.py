"""Ports (interfaces) used by the core.

Ports define the minimal contracts for strategies and the chat transport so
that the core can be reused with different chat backends.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from core.models import ChatInfo, IncomingMessage


@runtime_checkable
class Strategy(Protocol):
    """One moderation unit bound to a message category.

    ``handle`` returns True when the strategy claimed (acted upon) the message.
    """

    async def handle(self, message: IncomingMessage, chat: ChatInfo) -> bool:
        ...


class MessageDeleter(Protocol):
    """Deletion side effect requested by strategies."""

    async def delete_message(self, message: IncomingMessage, for_everyone: bool = True) -> None:
        ...


class MessageSender(Protocol):
    """Outbound message side effect requested by strategies."""

    async def send_message(self, chat_id: int, content: str, **options: Any) -> Any:
        ...


class TransportPort(Protocol):
    """Chat transport client owned by the connection manager.

    Emits ``qr(url)``, ``authenticated()``, ``ready()``,
    ``message(IncomingMessage)``, ``auth_failure(reason)``,
    ``disconnected(reason)`` and ``loading_screen(percent, text)``.
    Listeners may be coroutine functions; the transport awaits them.
    """

    def on(self, event: str, listener: Callable[..., Any]) -> None:
        ...

    async def initialize(self) -> None:
        ...

    async def logout(self) -> None:
        ...

    async def destroy(self) -> None:
        ...

    async def send_message(self, chat_id: int, content: str, **options: Any) -> Any:
        ...

    async def get_chats(self) -> list[ChatInfo]:
        ...

    async def get_chat_by_id(self, chat_id: int) -> ChatInfo:
        ...

    async def get_message_chat(self, message: IncomingMessage) -> ChatInfo:
        ...

    async def delete_message(self, message: IncomingMessage, for_everyone: bool = True) -> None:
        ...


MessageHandler = Callable[[IncomingMessage, ChatInfo], Awaitable[Any]]
TransportFactory = Callable[[], TransportPort]
