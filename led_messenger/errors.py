"""
Error Types

Exception hierarchy and error classification for the messaging core.

Network failures are never raised to callers of the transport; they are
classified here and surfaced as `Transport.last_error` instead.
"""

import errno
import socket
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """How a failure is handled."""
    CONFIGURATION = "configuration"  # fail fast, never retried
    TRANSIENT = "transient"          # log and try again on next send
    FATAL = "fatal"                  # drop connection, reconnect with backoff
    TIMEOUT = "timeout"              # send dropped, state left as is


# Socket errors that mean the association is gone
FATAL_ERRNOS = frozenset({
    errno.ECONNRESET,
    errno.ECONNREFUSED,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
    errno.ENOTCONN,
})


class LedMessengerError(Exception):
    """Base class for all errors raised by led_messenger."""


class EncodingError(LedMessengerError):
    """OSC packet could not be encoded or decoded."""

    UNSUPPORTED_TYPE = "unsupported_type"
    INVALID_ADDRESS = "invalid_address"
    OUT_OF_RANGE = "out_of_range"
    MALFORMED = "malformed"

    def __init__(self, message: str, kind: str = MALFORMED):
        super().__init__(message)
        self.kind = kind

    @classmethod
    def unsupported_type(cls, value: Any) -> "EncodingError":
        return cls(
            f"Unsupported OSC argument type: {type(value).__name__}",
            cls.UNSUPPORTED_TYPE,
        )


class ConfigurationError(LedMessengerError):
    """Invalid host, port, layer or slot configuration."""


class TransportError(LedMessengerError):
    """A classified transport failure."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.TRANSIENT,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.cause = cause

    @classmethod
    def from_exception(cls, exc: BaseException) -> "TransportError":
        return cls(describe_error(exc), classify_error(exc), exc)


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Classify a socket-level exception.

    Args:
        exc: Exception raised or reported by the socket layer

    Returns:
        ErrorKind.FATAL for reset/refused/unreachable/not-connected and
        address resolution failures, ErrorKind.TIMEOUT for timeouts,
        ErrorKind.TRANSIENT for everything else
    """
    if isinstance(exc, ConfigurationError):
        return ErrorKind.CONFIGURATION
    if isinstance(exc, socket.gaierror):
        return ErrorKind.FATAL
    if isinstance(exc, (TimeoutError, socket.timeout)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, OSError) and exc.errno in FATAL_ERRNOS:
        return ErrorKind.FATAL
    return ErrorKind.TRANSIENT


def describe_error(exc: BaseException) -> str:
    """Human readable one-liner for last_error display."""
    text = str(exc) or type(exc).__name__
    if isinstance(exc, OSError) and exc.errno is not None and exc.strerror:
        name = errno.errorcode.get(exc.errno, str(exc.errno))
        text = f"{exc.strerror} ({name})"
    return text
