"""Minimal asyncio-friendly event emitter shared by transports and the core."""

from __future__ import annotations

import inspect
from collections import defaultdict
from typing import Any, Callable

Listener = Callable[..., Any]


class EventEmitter:
    """Named events with ordered listeners.

    Listeners may be plain callables or coroutine functions; ``emit`` awaits
    them one after the other in registration order. A listener failure
    propagates to the emitter so the owner decides how to report it.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        if not callable(listener):
            raise TypeError(f"Listener for {event!r} must be callable")
        self._listeners[event].append(listener)

    async def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            result = listener(*args)
            if inspect.isawaitable(result):
                await result
