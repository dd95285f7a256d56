"""Connection status models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class ErrorCode(StrEnum):
    """Error codes carried by statuses, ``error`` events and exceptions."""

    KRISP_NOT_REACHABLE = "KRISP_NOT_REACHABLE"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorInfo(BaseModel):
    """``{code, message}`` pair attached to statuses and ``error`` events.

    ``server_code`` carries the code from a server ``error`` push as sent,
    including codes outside :class:`ErrorCode`.
    """

    model_config = ConfigDict(frozen=True)

    code: ErrorCode
    message: str
    server_code: str | None = None


class ConnectionStatus(BaseModel):
    """Snapshot of the supervisor's connection state.

    ``connected`` and ``connecting`` are never both true. Both false
    means the client is at rest (disconnected).
    """

    model_config = ConfigDict(frozen=True)

    connected: bool = False
    connecting: bool = False
    port: int | None = None
    error: ErrorInfo | None = None
