"""Runtime configuration for chatwarden.

Identity and behaviour switches come from the environment (``.env`` is read
through python-dotenv). Tuning knobs for the anti-spam strategy, reconnects
and logging live in an optional JSON file so they can be edited without
touching Python. Everything is validated once, at startup.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from core.config import SPAM_ACTIONS, AntiSpamConfig, ReconnectConfig, SelfModerationConfig
from core.errors import ValidationError
from core.validators import (
    parse_bool,
    validate_choice,
    validate_fraction,
    validate_int,
    validate_number,
    validate_required,
)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Optional tuning file; a missing file means "all defaults".
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

LOG_LEVELS = ("error", "warn", "info", "debug")

DEFAULT_DELETE_DELAY_MS = 5000


@dataclass(frozen=True)
class Settings:
    """Validated configuration handed to the application shell."""

    self_moderation: SelfModerationConfig
    anti_spam: AntiSpamConfig
    reconnect: ReconnectConfig
    log_level: str = "info"
    headless: bool = True
    logout_on_shutdown: bool = True
    logging: dict[str, Any] = field(default_factory=dict)

    @property
    def target_user_id(self) -> str:
        return self.self_moderation.target_user_id

    @property
    def target_group_name(self) -> Optional[str]:
        return self.self_moderation.target_group_name


def _load_json_config(path: str) -> dict:
    """Load the tuning file, or return an empty config if it does not exist."""

    if not os.path.exists(path):
        return {}

    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid JSON in {path}: {exc}", "config") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a JSON object", "config")
    return data


def _anti_spam_config(raw: Mapping[str, Any]) -> AntiSpamConfig:
    defaults = AntiSpamConfig()
    return AntiSpamConfig(
        spam_threshold=validate_int(
            raw.get("spam_threshold", defaults.spam_threshold), "anti_spam.spam_threshold", minimum=1
        ),
        time_window=validate_number(
            raw.get("time_window_seconds", defaults.time_window), "anti_spam.time_window_seconds", minimum=0
        ),
        similarity_threshold=validate_fraction(
            raw.get("similarity_threshold", defaults.similarity_threshold), "anti_spam.similarity_threshold"
        ),
        cleanup_interval=validate_number(
            raw.get("cleanup_interval_seconds", defaults.cleanup_interval),
            "anti_spam.cleanup_interval_seconds",
            minimum=1,
        ),
        action=validate_choice(raw.get("action", defaults.action), "anti_spam.action", SPAM_ACTIONS),
        warning_text=str(raw.get("warning_text", defaults.warning_text)),
    )


def _reconnect_config(raw: Mapping[str, Any]) -> ReconnectConfig:
    defaults = ReconnectConfig()
    return ReconnectConfig(
        max_attempts=validate_int(
            raw.get("max_attempts", defaults.max_attempts), "reconnect.max_attempts", minimum=0
        ),
        base_delay=validate_number(
            raw.get("delay_seconds", defaults.base_delay), "reconnect.delay_seconds", minimum=0
        ),
    )


def load_settings(env: Optional[Mapping[str, str]] = None, config_path: Optional[str] = None) -> Settings:
    """Build Settings from the environment and the optional JSON file.

    Passing ``env`` skips ``.env`` loading and reads only that mapping, which
    keeps tests independent from the developer's shell.
    """

    if env is None:
        load_dotenv()
        env = os.environ

    target_user_id = validate_required(env.get("TARGET_USER_ID"), "TARGET_USER_ID").strip()
    target_group_name = (env.get("TARGET_GROUP_NAME") or "").strip() or None
    delete_delay_ms = validate_int(
        env.get("MESSAGE_DELETE_DELAY", DEFAULT_DELETE_DELAY_MS), "MESSAGE_DELETE_DELAY", minimum=0
    )
    log_level = validate_choice(env.get("LOG_LEVEL") or "info", "LOG_LEVEL", LOG_LEVELS)
    headless = parse_bool(env.get("TRANSPORT_HEADLESS", "true"), "TRANSPORT_HEADLESS")

    path = config_path or env.get("CHATWARDEN_CONFIG") or CONFIG_PATH
    config = _load_json_config(path)
    shutdown = config.get("shutdown", {})

    return Settings(
        self_moderation=SelfModerationConfig(
            delete_delay=delete_delay_ms / 1000,
            target_user_id=target_user_id,
            target_group_name=target_group_name,
        ),
        anti_spam=_anti_spam_config(config.get("anti_spam", {})),
        reconnect=_reconnect_config(config.get("reconnect", {})),
        log_level=log_level,
        headless=headless,
        logout_on_shutdown=parse_bool(shutdown.get("logout", True), "shutdown.logout"),
        logging=dict(config.get("logging", {})),
    )
