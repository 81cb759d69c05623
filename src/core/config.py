"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.errors import ValidationError
from core.validators import validate_fraction, validate_int, validate_number

SPAM_ACTIONS = ("log", "delete", "warn")


@dataclass(frozen=True)
class SelfModerationConfig:
    """Which author's messages to delete, where, and after how long (seconds)."""

    delete_delay: float
    target_user_id: str
    target_group_name: Optional[str] = None

    def __post_init__(self) -> None:
        validate_number(self.delete_delay, "delete_delay", minimum=0)
        if not self.target_user_id:
            raise ValidationError("target_user_id is required", "target_user_id")


@dataclass(frozen=True)
class AntiSpamConfig:
    """Sliding-window spam detection settings. Durations are seconds."""

    spam_threshold: int = 5
    time_window: float = 60.0
    similarity_threshold: float = 0.8
    cleanup_interval: float = 300.0
    action: str = "log"
    warning_text: str = "Please slow down, repeated messages are not allowed here."

    def __post_init__(self) -> None:
        validate_int(self.spam_threshold, "spam_threshold", minimum=1)
        validate_number(self.time_window, "time_window", minimum=0)
        validate_fraction(self.similarity_threshold, "similarity_threshold")
        validate_number(self.cleanup_interval, "cleanup_interval", minimum=1)
        if self.action not in SPAM_ACTIONS:
            raise ValidationError(f"action must be one of: {', '.join(SPAM_ACTIONS)}", "action")

    @property
    def history_limit(self) -> int:
        return self.spam_threshold * 2

    @property
    def duplicate_threshold(self) -> int:
        return self.spam_threshold // 2


@dataclass(frozen=True)
class ReconnectConfig:
    """Linear reconnect backoff: attempt N waits ``base_delay * N`` seconds."""

    max_attempts: int = 5
    base_delay: float = 5.0

    def __post_init__(self) -> None:
        validate_int(self.max_attempts, "max_attempts", minimum=0)
        validate_number(self.base_delay, "base_delay", minimum=0)
