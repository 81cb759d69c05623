"""Telethon transport adapter.

Implements the core TransportPort on top of a Telethon user client: it
connects, pairs through QR login when the session is not authorized, turns
NewMessage updates into core messages and reports disconnects. One instance
wraps one client; the connection manager builds a new instance per attempt.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from telethon import TelegramClient, errors, events

from adapters.telegram_mapper import ChatResolver, build_chat, build_message
from client import build_client
from core.errors import AuthenticationError, NotReady, RateLimitError
from core.events import EventEmitter
from core.models import ChatInfo, IncomingMessage
from get_session import resolve_2fa_password

LOGGER = logging.getLogger(__name__)


@contextmanager
def translated_errors() -> Iterator[None]:
    """Re-raise Telethon RPC errors as core operational errors."""

    try:
        yield
    except errors.FloodWaitError as exc:
        raise RateLimitError(f"Rate limited by Telegram: {exc}", retry_after=exc.seconds) from exc
    except errors.UnauthorizedError as exc:
        raise AuthenticationError(f"Telegram rejected the session: {exc}") from exc


class TelethonTransport(EventEmitter):
    """TransportPort implementation backed by one TelegramClient."""

    def __init__(
        self,
        client_factory: Callable[[], TelegramClient] = build_client,
        *,
        headless: bool = True,
        qr_timeout: float = 120.0,
        qr_attempts: int = 3,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__()
        self._client_factory = client_factory
        self._headless = headless
        self._qr_timeout = qr_timeout
        self._qr_attempts = qr_attempts
        self._logger = logger or LOGGER
        self._client: Optional[TelegramClient] = None
        self._resolver: Optional[ChatResolver] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._destroyed = False

    def _require_client(self) -> TelegramClient:
        if self._client is None:
            raise NotReady("Telegram client has not been initialized")
        return self._client

    async def initialize(self) -> None:
        client = self._client_factory()
        self._client = client
        self._resolver = ChatResolver(client)

        await self.emit("loading_screen", 0, "Connecting")
        await client.connect()

        await self.emit("loading_screen", 50, "Authorizing")
        if not await client.is_user_authorized():
            failure = await self._pair(client)
            if failure:
                await self.emit("auth_failure", failure)
                return
        await self.emit("authenticated")

        me = await client.get_me()
        self._logger.info("Logged in as %s (id=%s)", getattr(me, "first_name", None), getattr(me, "id", None))

        client.add_event_handler(self._on_new_message, events.NewMessage())
        client.add_event_handler(self._on_chat_action, events.ChatAction())
        self._watch_task = asyncio.get_running_loop().create_task(self._watch_disconnect(client))

        await self.emit("loading_screen", 100, "Synchronized")
        await self.emit("ready")

    async def _pair(self, client: TelegramClient) -> Optional[str]:
        """Run QR pairing; return a failure reason, or None on success."""

        qr = await client.qr_login()
        for attempt in range(1, self._qr_attempts + 1):
            await self.emit("qr", qr.url)
            try:
                await qr.wait(timeout=self._qr_timeout)
                return None
            except asyncio.TimeoutError:
                self._logger.info("QR code expired (attempt %s/%s)", attempt, self._qr_attempts)
                await qr.recreate()
            except errors.SessionPasswordNeededError:
                try:
                    await client.sign_in(password=resolve_2fa_password(interactive=not self._headless))
                except (AuthenticationError, errors.PasswordHashInvalidError) as exc:
                    return f"Two-step verification failed: {exc}"
                return None
        return "QR pairing timed out"

    async def _on_new_message(self, event) -> None:
        await self.emit("message", build_message(event.message))

    async def _on_chat_action(self, event) -> None:
        if getattr(event, "new_title", None) and self._resolver is not None:
            self._resolver.forget(event.chat_id)

    async def _watch_disconnect(self, client: TelegramClient) -> None:
        reason = "connection closed"
        try:
            await client.disconnected
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = f"connection lost: {exc}"
        if self._destroyed:
            reason = "client destroyed"
        try:
            await self.emit("disconnected", reason)
        except Exception:
            self._logger.exception("Disconnect listener failed")

    async def send_message(self, chat_id: int, content: str, **options: Any) -> Any:
        client = self._require_client()
        with translated_errors():
            return await client.send_message(chat_id, content, **options)

    async def get_chats(self) -> list[ChatInfo]:
        client = self._require_client()
        with translated_errors():
            dialogs = await client.get_dialogs()
        return [build_chat(dialog.entity, dialog.id) for dialog in dialogs]

    async def get_chat_by_id(self, chat_id: int) -> ChatInfo:
        self._require_client()
        with translated_errors():
            return await self._resolver.resolve(chat_id)

    async def get_message_chat(self, message: IncomingMessage) -> ChatInfo:
        return await self.get_chat_by_id(message.chat_id)

    async def delete_message(self, message: IncomingMessage, for_everyone: bool = True) -> None:
        client = self._require_client()
        with translated_errors():
            await client.delete_messages(message.chat_id, [message.message_id], revoke=for_everyone)

    async def logout(self) -> None:
        if self._client is None:
            return
        await self._client.log_out()

    async def destroy(self) -> None:
        self._destroyed = True
        if self._client is None:
            return
        await self._client.disconnect()
