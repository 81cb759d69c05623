"""Connection lifecycle, reconnect policy and message fan-out.

The manager owns the transport handle and replaces it wholesale on every
(re)connect, so everything that talks to the chat service goes through the
manager instead of caching a client. Reconnects use linear backoff: attempt
N waits ``base_delay * N`` seconds, up to ``max_attempts`` attempts, after
which the manager enters FAILED and emits ``max_reconnect_failed`` once.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from core.config import ReconnectConfig
from core.errors import NotReady
from core.events import EventEmitter
from core.models import ChatInfo, IncomingMessage
from core.ports import MessageHandler, TransportFactory, TransportPort
from core.scheduler import TaskScheduler

LOGGER = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    DISCONNECTED = "disconnected"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    FAILED = "failed"


class ConnectionManager(EventEmitter):
    """Drive the transport through its lifecycle and feed messages to handlers."""

    def __init__(
        self,
        transport_factory: TransportFactory,
        scheduler: TaskScheduler,
        config: Optional[ReconnectConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__()
        self._transport_factory = transport_factory
        self._scheduler = scheduler
        self._config = config or ReconnectConfig()
        self._logger = logger or LOGGER
        self._client: Optional[TransportPort] = None
        self._state = ConnectionState.IDLE
        self._handlers: list[MessageHandler] = []
        self._closing = False
        self.reconnect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def client(self) -> Optional[TransportPort]:
        return self._client

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            self._logger.debug("Connection state %s -> %s", self._state.value, state.value)
        self._state = state

    async def initialize(self) -> None:
        """Create a fresh transport handle, subscribe to it and start it."""

        if self._state is ConnectionState.READY:
            self._logger.info("Client already ready, initialize() ignored")
            return

        self._logger.info("Initializing chat client...")
        self._closing = False
        client = self._transport_factory()
        self._client = client
        self._subscribe(client)
        self._set_state(ConnectionState.INITIALIZING)
        try:
            await client.initialize()
        except Exception:
            self._logger.exception("Failed to initialize client")
            raise

    def _subscribe(self, client: TransportPort) -> None:
        # Each listener checks the handle it was bound to, so a replaced
        # client cannot drive the state machine any more.
        def bind(callback):
            async def listener(*args: Any) -> None:
                if client is not self._client:
                    self._logger.debug("Ignoring event from a replaced client")
                    return
                await callback(*args)

            return listener

        client.on("qr", bind(self._handle_qr))
        client.on("authenticated", bind(self._handle_authenticated))
        client.on("ready", bind(self._handle_ready))
        client.on("message", bind(self._handle_message))
        client.on("auth_failure", bind(self._handle_auth_failure))
        client.on("disconnected", bind(self._handle_disconnected))
        client.on("loading_screen", bind(self._handle_loading_screen))

    async def _handle_qr(self, qr: str) -> None:
        self._set_state(ConnectionState.AUTHENTICATING)
        self._logger.info("Pairing code received, scan it with the chat app")
        await self.emit("qr", qr)

    async def _handle_authenticated(self) -> None:
        self._set_state(ConnectionState.AUTHENTICATING)
        self._logger.info("Client authenticated successfully")
        await self.emit("authenticated")

    async def _handle_ready(self) -> None:
        self.reconnect_attempts = 0
        self._set_state(ConnectionState.READY)
        self._logger.info("Chat client is ready")
        await self.emit("ready")

    async def _handle_message(self, message: IncomingMessage) -> None:
        try:
            chat = await self._client.get_message_chat(message)
        except Exception as exc:
            self._logger.exception("Error resolving chat for message %s", message.message_id)
            await self.emit("error", exc)
            return

        self._logger.debug(
            "Message received (%s) from %s", "group" if chat.is_group else "direct", message.author_id
        )
        await self.emit("message", message, chat)

        for handler in list(self._handlers):
            try:
                await handler(message, chat)
            except Exception as exc:
                self._logger.exception("Message handler failed for message %s", message.message_id)
                await self.emit("error", exc)

    async def _handle_auth_failure(self, reason: Any = None) -> None:
        self._set_state(ConnectionState.FAILED)
        self._logger.error("Authentication failed: %s", reason)
        await self.emit("auth_failure", reason)

    async def _handle_disconnected(self, reason: Any = None) -> None:
        if self._state is ConnectionState.FAILED:
            return
        self._set_state(ConnectionState.DISCONNECTED)
        self._logger.warning("Client disconnected: %s", reason)
        await self.emit("disconnected", reason)

        if self._closing:
            return

        if self.reconnect_attempts < self._config.max_attempts:
            self._schedule_reconnect()
        else:
            self._set_state(ConnectionState.FAILED)
            self._logger.error("Max reconnection attempts reached")
            await self.emit("max_reconnect_failed")

    async def _handle_loading_screen(self, percent: Any, text: Any = None) -> None:
        self._logger.debug("Loading %s%% %s", percent, text or "")
        await self.emit("loading_screen", percent, text)

    def next_reconnect_delay(self) -> float:
        return self._config.base_delay * (self.reconnect_attempts + 1)

    def _schedule_reconnect(self) -> None:
        delay = self.next_reconnect_delay()
        self.reconnect_attempts += 1
        self._set_state(ConnectionState.RECONNECT_SCHEDULED)
        self._logger.info(
            "Scheduling reconnection attempt %s/%s in %.1fs",
            self.reconnect_attempts,
            self._config.max_attempts,
            delay,
        )
        self._scheduler.call_later(delay, self._reconnect, name=f"reconnect-{self.reconnect_attempts}")

    async def _reconnect(self) -> None:
        if self._closing or self._state is not ConnectionState.RECONNECT_SCHEDULED:
            return
        self._logger.info("Attempting to reconnect...")
        try:
            await self.initialize()
        except Exception as exc:
            await self._handle_disconnected(f"reconnect failed: {exc}")

    def add_message_handler(self, handler: MessageHandler) -> None:
        if not callable(handler):
            raise TypeError("Message handler must be callable")
        self._handlers.append(handler)
        self._logger.debug("Message handler added")

    def remove_message_handler(self, handler: MessageHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)
            self._logger.debug("Message handler removed")

    def _require_ready(self) -> TransportPort:
        if self._state is not ConnectionState.READY or self._client is None:
            raise NotReady(f"Client is not ready (state={self._state.value})")
        return self._client

    async def send_message(self, chat_id: int, content: str, **options: Any) -> Any:
        client = self._require_ready()
        try:
            sent = await client.send_message(chat_id, content, **options)
        except Exception:
            self._logger.exception("Failed to send message to %s", chat_id)
            raise
        self._logger.info("Message sent to %s", chat_id)
        return sent

    async def get_chats(self) -> list[ChatInfo]:
        client = self._require_ready()
        try:
            return await client.get_chats()
        except Exception:
            self._logger.exception("Failed to get chats")
            raise

    async def get_chat_by_id(self, chat_id: int) -> ChatInfo:
        client = self._require_ready()
        try:
            return await client.get_chat_by_id(chat_id)
        except Exception:
            self._logger.exception("Failed to get chat %s", chat_id)
            raise

    async def delete_message(self, message: IncomingMessage, for_everyone: bool = True) -> None:
        client = self._require_ready()
        await client.delete_message(message, for_everyone=for_everyone)

    async def logout(self) -> bool:
        self._closing = True
        if self._client is None:
            return True
        try:
            await self._client.logout()
        except Exception:
            self._logger.exception("Error during logout")
            return False
        self._logger.info("Client logged out successfully")
        return True

    async def destroy(self) -> bool:
        self._closing = True
        if self._client is None:
            return True
        try:
            await self._client.destroy()
        except Exception:
            self._logger.exception("Error destroying client")
            return False
        self._logger.info("Client destroyed successfully")
        return True

    def get_state(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "is_ready": self.is_ready,
            "reconnect_attempts": self.reconnect_attempts,
            "handlers_count": len(self._handlers),
        }
