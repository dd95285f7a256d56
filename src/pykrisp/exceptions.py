"""Custom exception hierarchy for pykrisp."""

from __future__ import annotations

from typing import ClassVar

from pykrisp.models.connection import ErrorCode, ErrorInfo


class KrispError(Exception):
    """Base exception for all pykrisp errors."""

    code: ClassVar[ErrorCode] = ErrorCode.UNKNOWN_ERROR

    def to_info(self) -> ErrorInfo:
        """Return the ``{code, message}`` pair published to observers."""
        return ErrorInfo(code=self.code, message=str(self))


class KrispConfigError(KrispError):
    """Invalid or missing configuration."""


class KrispServiceUnreachableError(KrispError):
    """No configured port accepted a connection and no more specific cause was seen."""

    code = ErrorCode.KRISP_NOT_REACHABLE


class KrispConnectionRefusedError(KrispError):
    """Connection refused.

    Covers a handshake rejected by the service, a server-initiated
    disconnect, exhausted reconnection attempts, and calls made while
    not connected.
    """

    code = ErrorCode.CONNECTION_REFUSED


class KrispConnectionTimeoutError(KrispError):
    """A connect attempt or a request exceeded its time bound."""

    code = ErrorCode.CONNECTION_TIMEOUT


class KrispInvalidMessageError(KrispError):
    """Inbound payload could not be normalised."""

    code = ErrorCode.INVALID_MESSAGE


class KrispUnknownError(KrispError):
    """Unclassified failure, including explicit server-reported failures."""
