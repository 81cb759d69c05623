"""Delayed deletion of the owner's own messages."""

from __future__ import annotations

import logging
from typing import Optional

from core.config import SelfModerationConfig
from core.models import ChatInfo, IncomingMessage
from core.ports import MessageDeleter
from core.scheduler import TaskScheduler
from core.strategy import BaseStrategy

LOGGER = logging.getLogger(__name__)


class SelfModerationStrategy(BaseStrategy):
    """Schedule deletion-for-everyone of messages written by the target user.

    ``handle`` returns True as soon as the deletion is scheduled. Whether the
    deletion later succeeds is only visible in the logs: a failed deletion
    (lost admin rights, message already gone) is logged and never retried.
    """

    def __init__(
        self,
        config: SelfModerationConfig,
        deleter: MessageDeleter,
        scheduler: TaskScheduler,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(logger or LOGGER)
        self._config = config
        self._deleter = deleter
        self._scheduler = scheduler

    @property
    def config(self) -> SelfModerationConfig:
        return self._config

    async def handle(self, message: IncomingMessage, chat: ChatInfo) -> bool:
        try:
            self.log_message(message, chat)

            if not self.should_process(message, chat):
                return False

            if not self.is_own_message(message):
                return False

            self.schedule_deletion(message)
            return True
        except Exception:
            self._logger.exception("Error in self-moderation strategy (message %s)", message.message_id)
            return False

    def should_process(self, message: IncomingMessage, chat: ChatInfo) -> bool:
        # Evaluated per call: chat names can change between messages.
        target_group = self._config.target_group_name
        if target_group and chat.name != target_group:
            self._logger.debug("Skipping %r, not the target group %r", chat.name, target_group)
            return False
        return True

    def is_own_message(self, message: IncomingMessage) -> bool:
        return message.author_id == self._config.target_user_id

    def schedule_deletion(self, message: IncomingMessage) -> None:
        delay = self._config.delete_delay
        self._logger.info("Scheduling deletion of message %s in %.3fs", message.message_id, delay)

        async def _delete() -> None:
            try:
                await self._deleter.delete_message(message, for_everyone=True)
            except Exception as exc:
                self._logger.error("Failed to delete message %s: %s", message.message_id, exc)
                return
            self._logger.info("Message %s deleted", message.message_id)

        self._scheduler.call_later(delay, _delete, name=f"delete-{message.chat_id}-{message.message_id}")
