"""Application entry point for the chatwarden moderation bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from art import tprint
from dotenv import load_dotenv

import settings as settings_module
from adapters.telegram_transport import TelethonTransport
from core.anti_spam import AntiSpamStrategy
from core.config import ReconnectConfig
from core.connection import ConnectionManager
from core.dispatcher import DIRECT, GROUP, Dispatcher
from core.errors import AuthenticationError, ErrorHandlerRegistry, RateLimitError, ValidationError
from core.validators import validate_choice
from core.models import ChatInfo, IncomingMessage
from core.ports import TransportFactory
from core.scheduler import TaskScheduler
from core.self_moderation import SelfModerationStrategy
from core.strategy import StrategyChain
from get_session import LOGIN_METHODS, login_with_phone, print_qr
from settings import Settings, load_settings

NAME = "CHATWARDEN"
FONT = "tarty-1"

# Environment variables whose values never reach the logs.
DEFAULT_REDACTED = ["API_HASH", "API_ID", "2FA", "PHONE"]

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in DEFAULT_REDACTED + list(redact_cfg.get("patterns", [])):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(settings: Settings) -> None:
    config = settings.logging or {}
    level = _LEVELS.get(settings.log_level, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/chatwarden.log")
        if not os.path.isabs(path):
            path = os.path.join(settings_module.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # Telethon is chatty at INFO; keep it one step quieter than the bot.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


class Application:
    """Wire configuration into the core and own the process lifecycle."""

    def __init__(
        self,
        settings: Settings,
        transport_factory: Optional[TransportFactory] = None,
        scheduler: Optional[TaskScheduler] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings
        self._logger = logger or logging.getLogger(__name__)
        self._transport_factory = transport_factory or (
            lambda: TelethonTransport(headless=settings.headless)
        )
        self.scheduler = scheduler or TaskScheduler()
        self.errors = ErrorHandlerRegistry(self._logger)
        self.connection: Optional[ConnectionManager] = None
        self.dispatcher: Optional[Dispatcher] = None
        self.self_moderation: Optional[SelfModerationStrategy] = None
        self.anti_spam: Optional[AntiSpamStrategy] = None
        self.is_shutting_down = False
        self.exit_code = 0
        self._stopped: Optional[asyncio.Event] = None
        self._background: set[asyncio.Task] = set()

    def build(self) -> None:
        """Create the connection manager, the dispatcher and the strategies."""

        self.connection = ConnectionManager(
            self._transport_factory,
            self.scheduler,
            config=self._settings.reconnect,
        )
        self.dispatcher = Dispatcher()
        self.self_moderation = SelfModerationStrategy(
            self._settings.self_moderation,
            deleter=self.connection,
            scheduler=self.scheduler,
        )
        self.anti_spam = AntiSpamStrategy(
            self._settings.anti_spam,
            deleter=self.connection,
            sender=self.connection,
        )

        self.dispatcher.register(GROUP, StrategyChain([self.self_moderation, self.anti_spam]))
        self.dispatcher.register(DIRECT, self.anti_spam)
        self.connection.add_message_handler(self._dispatch)

        self._setup_client_event_handlers()
        self._setup_error_handlers()

    def _setup_client_event_handlers(self) -> None:
        self.connection.on("qr", self._on_qr)
        self.connection.on("ready", self._on_ready)
        self.connection.on("auth_failure", self._on_auth_failure)
        self.connection.on("max_reconnect_failed", self._on_max_reconnect_failed)
        self.connection.on("error", self._on_error)

    def _setup_error_handlers(self) -> None:
        def rate_limited(error: BaseException, context: dict[str, Any]) -> None:
            self._logger.warning("Rate limited by the chat service, retry after %ss", error.retry_after)

        def unauthorized(error: BaseException, context: dict[str, Any]) -> None:
            self._logger.error("Session rejected: %s", error)
            self._spawn(self.shutdown(1))

        self.errors.register(RateLimitError, rate_limited)
        self.errors.register(AuthenticationError, unauthorized)

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _dispatch(self, message: IncomingMessage, chat: ChatInfo) -> None:
        await self.dispatcher.handle(message, chat)

    def _on_qr(self, url: str) -> None:
        self._logger.info("Pairing link: %s", url)
        if not self._settings.headless:
            print_qr(url)

    def _on_ready(self) -> None:
        self._logger.info(
            "Bot is ready and operational (target user %s, target group %s)",
            self._settings.target_user_id,
            self._settings.target_group_name or "all groups",
        )

    async def _on_auth_failure(self, reason: Any) -> None:
        self._logger.error("Authentication failed: %s", reason)
        await self.shutdown(1)

    async def _on_max_reconnect_failed(self) -> None:
        self._logger.error("Maximum reconnection attempts exceeded")
        await self.shutdown(1)

    def _on_error(self, error: BaseException) -> None:
        self.errors.handle(error, source="connection")

    async def start(self) -> None:
        self._logger.info("Starting chatwarden...")
        if self.connection is None:
            self.build()
        # Cleanup runs from here on a fixed interval; the strategy never
        # schedules itself.
        self.scheduler.every(
            self._settings.anti_spam.cleanup_interval, self.anti_spam.cleanup, name="anti-spam-cleanup"
        )
        await self.connection.initialize()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: self._spawn(self.shutdown(0)))
            except (NotImplementedError, RuntimeError):
                # Not available on this platform/loop; Ctrl+C still ends asyncio.run.
                return

    async def run(self) -> int:
        """Start the bot and wait until it shuts down; return the exit code."""

        self._stopped = asyncio.Event()
        self._install_signal_handlers()
        try:
            await self.start()
        except Exception:
            self._logger.exception("Failed to start application")
            await self.shutdown(1)
        await self._stopped.wait()
        return self.exit_code

    async def shutdown(self, exit_code: int = 0) -> None:
        """Release the client once; later calls are no-ops."""

        if self.is_shutting_down:
            return
        self.is_shutting_down = True
        self.exit_code = exit_code
        self._logger.info("Shutting down application...")

        if self.connection is not None:
            if self._settings.logout_on_shutdown:
                await self.connection.logout()
            await self.connection.destroy()
        await self.scheduler.close()

        self._logger.info("Application shutdown complete")
        if self._stopped is not None:
            self._stopped.set()


def _chat_kind(chat: ChatInfo) -> str:
    return "group" if chat.is_group else "direct"


async def _list_chats(transport_factory: TransportFactory) -> None:
    scheduler = TaskScheduler()
    connection = ConnectionManager(transport_factory, scheduler, config=ReconnectConfig(max_attempts=0))
    connection.on("qr", print_qr)
    try:
        await connection.initialize()
        chats = await connection.get_chats()
        if not chats:
            print("No chats found.")
        for index, chat in enumerate(chats, start=1):
            print(f"{index}. {_chat_kind(chat)} | {chat.name} | {chat.chat_id}")
    finally:
        await connection.destroy()
        await scheduler.close()


async def _pair_session(transport_factory: TransportFactory) -> bool:
    """Pair once through the transport and release it; return True when ready."""

    scheduler = TaskScheduler()
    connection = ConnectionManager(transport_factory, scheduler, config=ReconnectConfig(max_attempts=0))
    connection.on("qr", print_qr)
    connection.on("auth_failure", lambda reason: print(f"Pairing failed: {reason}", file=sys.stderr))
    try:
        await connection.initialize()
        return connection.get_state()["is_ready"]
    finally:
        await connection.destroy()
        await scheduler.close()


def _run() -> int:
    _print_banner()
    try:
        settings = load_settings()
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    _configure_logging(settings)
    return asyncio.run(Application(settings).run())


def _discover() -> int:
    _print_banner()
    logging.basicConfig(level=logging.WARNING)
    asyncio.run(_list_chats(lambda: TelethonTransport(headless=False)))
    return 0


def _login() -> int:
    _print_banner()
    logging.basicConfig(level=logging.INFO)
    load_dotenv()
    try:
        method = validate_choice(os.getenv("LOGIN_METHOD") or "qr", "LOGIN_METHOD", LOGIN_METHODS)
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1
    if method == "phone":
        if not asyncio.run(login_with_phone()):
            print("Session is already authorized.")
        return 0
    paired = asyncio.run(_pair_session(lambda: TelethonTransport(headless=False)))
    return 0 if paired else 1


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="chatwarden")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the moderation bot")
    subparsers.add_parser("discover", help="List chats with their ids and kinds")
    subparsers.add_parser("login", help="Create the Telegram session interactively and exit")

    args = parser.parse_args(argv)
    if args.command == "discover":
        exit_code = _discover()
    elif args.command == "login":
        exit_code = _login()
    else:
        exit_code = _run()
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
