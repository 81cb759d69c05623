"""Error taxonomy and error routing (core domain).

Operational errors carry a ``recoverable`` flag so upstream handlers can
decide whether to retry, warn or stop. Everything else (transport failures,
deletion failures) surfaces as plain exceptions from the collaborator.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

LOGGER = logging.getLogger(__name__)


class ChatWardenError(Exception):
    """Base class for errors raised by chatwarden itself."""


class InvalidStrategy(ChatWardenError, TypeError):
    """A value registered as a strategy does not implement ``handle``."""


class NotReady(ChatWardenError):
    """A client operation was attempted while the connection is not ready."""


class OperationalError(ChatWardenError):
    """Expected runtime error that upstream handlers may react to."""

    def __init__(self, message: str, code: Optional[str] = None, recoverable: bool = True) -> None:
        super().__init__(message)
        self.code = code
        self.recoverable = recoverable


class ValidationError(OperationalError):
    """Configuration or input value failed validation."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, code="validation_error")
        self.field = field


class AuthenticationError(OperationalError):
    """The transport rejected our credentials or session."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="authentication_error", recoverable=False)


class RateLimitError(OperationalError):
    """The transport asked us to slow down."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message, code="rate_limited")
        self.retry_after = retry_after


def is_operational(error: BaseException) -> bool:
    """Return True when the error is an expected, recoverable condition."""

    return isinstance(error, OperationalError) and error.recoverable


ErrorCallback = Callable[[BaseException, dict[str, Any]], None]


class ErrorHandlerRegistry:
    """Route errors to handlers registered per exception class.

    The most specific registered class in the error's MRO wins; unknown
    errors are logged with their context.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or LOGGER
        self._handlers: dict[type[BaseException], ErrorCallback] = {}

    def register(self, error_type: type[BaseException], handler: ErrorCallback) -> None:
        if not callable(handler):
            raise TypeError("Error handler must be callable")
        self._handlers[error_type] = handler

    def handle(self, error: BaseException, **context: Any) -> None:
        handler = self._resolve(type(error)) or self._log_error
        try:
            handler(error, context)
        except Exception as handler_error:
            self._logger.error(
                "Error in error handler: original=%s handler=%s context=%s",
                error,
                handler_error,
                context,
            )

    def _resolve(self, error_type: type[BaseException]) -> Optional[ErrorCallback]:
        for klass in error_type.__mro__:
            if klass in self._handlers:
                return self._handlers[klass]
        return None

    def _log_error(self, error: BaseException, context: dict[str, Any]) -> None:
        self._logger.error(
            "%s: %s %s",
            type(error).__name__,
            error,
            context,
            exc_info=(type(error), error, error.__traceback__),
        )
