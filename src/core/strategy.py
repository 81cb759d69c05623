"""Base class and composition helper for moderation strategies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from core.models import ChatInfo, IncomingMessage
from core.ports import Strategy

LOGGER = logging.getLogger(__name__)

PREVIEW_CHARS = 50


class BaseStrategy(ABC):
    """Shared behaviour for strategies: logger injection and message logging."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER

    @abstractmethod
    async def handle(self, message: IncomingMessage, chat: ChatInfo) -> bool:
        ...

    def should_process(self, message: IncomingMessage, chat: ChatInfo) -> bool:
        return True

    def log_message(self, message: IncomingMessage, chat: ChatInfo, level: int = logging.INFO) -> None:
        self._logger.log(
            level,
            "Message received in %s from %s: %s",
            chat.name or "Direct Message",
            message.author_id,
            message.body[:PREVIEW_CHARS],
        )


class StrategyChain(BaseStrategy):
    """Run several strategies for one category; the first claim wins."""

    def __init__(self, strategies: Iterable[Strategy], logger: Optional[logging.Logger] = None) -> None:
        super().__init__(logger)
        self._strategies = list(strategies)

    @property
    def strategies(self) -> list[Strategy]:
        return list(self._strategies)

    async def handle(self, message: IncomingMessage, chat: ChatInfo) -> bool:
        for strategy in self._strategies:
            if await strategy.handle(message, chat):
                self._logger.debug(
                    "Message %s claimed by %s", message.message_id, type(strategy).__name__
                )
                return True
        return False
