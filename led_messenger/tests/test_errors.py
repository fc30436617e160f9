"""
Tests for error classification.
"""

import errno
import socket

import pytest

from led_messenger.errors import (
    ConfigurationError,
    ErrorKind,
    TransportError,
    classify_error,
)


class TestClassifyError:
    """Test socket error classification."""

    @pytest.mark.parametrize("code", [
        errno.ECONNRESET, errno.ECONNREFUSED, errno.EHOSTUNREACH,
        errno.ENETUNREACH, errno.ENOTCONN,
    ])
    def test_fatal_errnos(self, code):
        """Reset, refused, unreachable and not-connected are fatal."""
        assert classify_error(OSError(code, "x")) == ErrorKind.FATAL

    @pytest.mark.parametrize("code", [errno.EAGAIN, errno.ENOBUFS, errno.EMSGSIZE])
    def test_transient_errnos(self, code):
        """Other socket errors are transient."""
        assert classify_error(OSError(code, "x")) == ErrorKind.TRANSIENT

    def test_resolution_failure(self):
        """Unresolvable hosts are fatal."""
        assert classify_error(socket.gaierror(socket.EAI_NONAME, "unknown")) == ErrorKind.FATAL

    def test_timeout(self):
        """Timeouts have their own kind."""
        assert classify_error(TimeoutError()) == ErrorKind.TIMEOUT

    def test_configuration(self):
        """Configuration errors are never retried."""
        assert classify_error(ConfigurationError("no host")) == ErrorKind.CONFIGURATION

    def test_transport_error_message(self):
        """from_exception names the errno."""
        error = TransportError.from_exception(OSError(errno.ECONNREFUSED, "Connection refused"))

        assert error.kind == ErrorKind.FATAL
        assert "ECONNREFUSED" in str(error)
