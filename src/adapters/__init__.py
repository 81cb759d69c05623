"""Adapters that bind the core ports to Telegram through Telethon."""
