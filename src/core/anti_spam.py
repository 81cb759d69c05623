"""Sliding-window spam detection with near-duplicate matching.

History layout: one deque of HistoryEntry per author, capped at
``2 * spam_threshold`` entries (oldest dropped first). Stale entries are
only removed by ``cleanup``, which the application runs on a timer; until
then they stay in the deque and are filtered out when deciding.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Optional

from core.config import AntiSpamConfig
from core.models import ChatInfo, HistoryEntry, IncomingMessage
from core.ports import MessageDeleter, MessageSender
from core.similarity import similarity
from core.strategy import BaseStrategy

LOGGER = logging.getLogger(__name__)


class AntiSpamStrategy(BaseStrategy):
    """Flag authors who post too much, or repeat themselves, within a window."""

    def __init__(
        self,
        config: Optional[AntiSpamConfig] = None,
        *,
        deleter: Optional[MessageDeleter] = None,
        sender: Optional[MessageSender] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(logger or LOGGER)
        self._config = config or AntiSpamConfig()
        self._deleter = deleter
        self._sender = sender
        self._clock = clock
        self._history: dict[str, deque[HistoryEntry]] = {}

    @property
    def config(self) -> AntiSpamConfig:
        return self._config

    async def handle(self, message: IncomingMessage, chat: ChatInfo) -> bool:
        try:
            # Self-moderation already logs group messages at info level.
            self.log_message(message, chat, logging.DEBUG)

            if self.is_spam(message, chat):
                self._logger.warning("Spam detected from %s in %s", message.author_id, chat.name)
                await self.handle_spam(message, chat)
                # Flagged messages are not recorded, so a burst does not
                # keep extending its own window.
                return True

            self.record_message(message)
            return False
        except Exception:
            self._logger.exception("Error in anti-spam strategy (message %s)", message.message_id)
            return False

    def is_spam(self, message: IncomingMessage, chat: Optional[ChatInfo] = None) -> bool:
        now = self._clock()
        window = self._config.time_window
        history = self._history.get(message.author_id, ())
        recent = [entry for entry in history if now - entry.timestamp < window]

        if len(recent) >= self._config.spam_threshold:
            return True

        similar = [
            entry
            for entry in recent
            if similarity(entry.content, message.body) > self._config.similarity_threshold
        ]
        return len(similar) >= self._config.duplicate_threshold

    def record_message(self, message: IncomingMessage) -> None:
        history = self._history.get(message.author_id)
        if history is None:
            history = deque(maxlen=self._config.history_limit)
            self._history[message.author_id] = history
        history.append(HistoryEntry(content=message.body, timestamp=self._clock()))

    async def handle_spam(self, message: IncomingMessage, chat: ChatInfo) -> None:
        """React to a flagged message according to the configured action."""

        action = self._config.action
        self._logger.info("Handling spam message %s (action=%s)", message.message_id, action)

        try:
            if action == "delete" and self._deleter is not None:
                await self._deleter.delete_message(message, for_everyone=True)
            elif action == "warn" and self._sender is not None:
                await self._sender.send_message(
                    chat.chat_id, self._config.warning_text, reply_to=message.message_id
                )
        except Exception as exc:
            self._logger.error("Spam action %s failed for message %s: %s", action, message.message_id, exc)

    def cleanup(self) -> int:
        """Drop entries older than twice the window; return authors removed."""

        now = self._clock()
        horizon = self._config.time_window * 2
        removed = 0
        for author_id in list(self._history):
            kept = [entry for entry in self._history[author_id] if now - entry.timestamp < horizon]
            if not kept:
                del self._history[author_id]
                removed += 1
            else:
                self._history[author_id] = deque(kept, maxlen=self._config.history_limit)
        if removed:
            self._logger.debug("Spam history cleanup removed %s authors", removed)
        return removed

    def history_for(self, author_id: str) -> list[HistoryEntry]:
        return list(self._history.get(author_id, ()))

    def tracked_authors(self) -> set[str]:
        return set(self._history)
