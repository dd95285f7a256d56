"""Socket.IO transport seam."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

import aiohttp
import socketio


class Socket(Protocol):
    """Structural socket interface used by the connection supervisor.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (``socketio.AsyncClient``)
    concrete.
    """

    connected: bool

    def on(self, event: str, handler: Callable[..., Any] | None = None, namespace: str | None = None) -> Any:
        ...

    async def connect(self, url: str, *, transports: list[str] | None = None, wait_timeout: float = 1) -> None:
        ...

    async def emit(self, event: str, data: Any = None, callback: Callable[..., Any] | None = None) -> None:
        ...

    async def disconnect(self) -> None:
        ...


SocketFactory = Callable[[], Socket]


def create_socketio_client(
    *,
    http_session: aiohttp.ClientSession | None,
    logger: logging.Logger,
) -> socketio.AsyncClient:
    """Build an ``AsyncClient`` whose reconnection is left to the supervisor."""
    return socketio.AsyncClient(
        reconnection=False,
        logger=logger.getChild("socketio"),
        engineio_logger=logger.getChild("engineio"),
        http_session=http_session,
    )
