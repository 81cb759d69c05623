"""Category-based routing of incoming messages to strategies."""

from __future__ import annotations

import inspect
import logging
from typing import Optional

from core.errors import InvalidStrategy
from core.models import ChatInfo, IncomingMessage
from core.ports import Strategy

LOGGER = logging.getLogger(__name__)

GROUP = "group"
MEDIA = "media"
DIRECT = "direct"


class Dispatcher:
    """Route each message to the strategy registered for its category.

    Categories are decided in order: group chat, then media, then direct.
    A strategy that raises is logged and the exception is re-raised, since a
    broken strategy is a configuration bug the caller should see.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER
        self._strategies: dict[str, Strategy] = {}

    def register(self, category: str, strategy: Strategy) -> None:
        if not isinstance(strategy, Strategy) or not callable(getattr(strategy, "handle", None)):
            raise InvalidStrategy(f"Strategy for {category!r} must have a handle method")
        if not inspect.iscoroutinefunction(strategy.handle):
            raise InvalidStrategy(f"Strategy for {category!r} must define handle with async def")
        self._strategies[category] = strategy
        self._logger.debug("Registered handler strategy: %s", category)

    def unregister(self, category: str) -> None:
        self._strategies.pop(category, None)
        self._logger.debug("Unregistered handler strategy: %s", category)

    def classify(self, message: IncomingMessage, chat: ChatInfo) -> str:
        if chat.is_group:
            return GROUP
        if message.has_media:
            return MEDIA
        return DIRECT

    async def handle(self, message: IncomingMessage, chat: ChatInfo) -> bool:
        category = self.classify(message, chat)
        strategy = self._strategies.get(category)
        if strategy is None:
            self._logger.debug("No strategy registered for %s messages", category)
            return False

        self._logger.debug("Handling message %s with strategy: %s", message.message_id, category)
        try:
            return bool(await strategy.handle(message, chat))
        except Exception:
            self._logger.exception("Strategy %s failed on message %s", category, message.message_id)
            raise

    def list_categories(self) -> set[str]:
        return set(self._strategies)
