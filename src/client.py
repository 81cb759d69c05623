"""Telegram client factory for chatwarden.

We explicitly manage the client's lifecycle (connect/disconnect) from the
transport adapter so it is obvious when a session is created and when it
ends. Every reconnect builds a brand new client through this factory.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    We read API_ID/API_HASH via python-dotenv to keep secrets out of the repo.
    The session name defaults to "chatwarden" to create a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "chatwarden")

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Building Telegram client (session=%s)", session_name)

    # Updates are handled one at a time so a strategy decision never
    # interleaves with the next message's.
    return TelegramClient(session_name, int(api_id), api_hash, sequential_updates=True)
