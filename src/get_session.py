"""Session creation helpers for ``chatwarden login``.

QR pairing goes through the transport adapter, exactly as the bot pairs on
start. This module holds what the adapter and the CLI share: the terminal
QR renderer, the 2FA lookup and the phone-code fallback for accounts that
cannot scan a code.
"""

import logging
import os
from getpass import getpass

import qrcode
from telethon import errors

from client import build_client
from core.errors import AuthenticationError

LOGGER = logging.getLogger(__name__)

LOGIN_METHODS = ("qr", "phone")


def print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def resolve_2fa_password(interactive: bool = True) -> str:
    password = os.getenv("2FA")
    if password:
        return password
    if not interactive:
        raise AuthenticationError("Two-step verification is enabled but 2FA is not set")
    return getpass("2FA password: ")


async def login_with_phone() -> bool:
    """Sign in with a code sent to ``PHONE``; return False if already authorized."""

    client = build_client()
    await client.connect()
    try:
        if await client.is_user_authorized():
            return False
        phone = os.getenv("PHONE") or input("Phone number (international format): ").strip()
        await client.send_code_request(phone)
        try:
            await client.sign_in(phone=phone, code=input(f"Code sent to {phone}: ").strip())
        except errors.SessionPasswordNeededError:
            await client.sign_in(password=resolve_2fa_password())
        me = await client.get_me()
        LOGGER.info("Session created for %s (id=%s)", me.first_name, me.id)
        return True
    finally:
        await client.disconnect()
