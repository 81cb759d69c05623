"""Core domain package for chatwarden.

Core contains dispatching, the moderation strategies and the connection
state machine without any Telegram-specific code, keeping the moderation
logic portable across chat transports.
"""
