"""Connection supervisor: port discovery, failure classification, reconnection.

Owns:
- the single Socket.IO socket and the in-flight connect attempt
- the reconnect timer (exponential backoff, optional attempt limit)
- forwarding of inbound messages and outbound ack calls
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import aiohttp
from socketio import exceptions as sio_exceptions

from pykrisp._constants import (
    CLIENT_DISCONNECT_REASONS,
    NAMESPACE_REJECTED_MARKER,
    RECONNECT_BACKOFF_MULTIPLIER,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DELAY,
    SERVER_DISCONNECT_REASONS,
)
from pykrisp._transport import Socket, SocketFactory, create_socketio_client
from pykrisp.config import KrispConfig
from pykrisp.exceptions import (
    KrispConnectionRefusedError,
    KrispConnectionTimeoutError,
    KrispError,
    KrispServiceUnreachableError,
    KrispUnknownError,
)
from pykrisp.models.connection import ConnectionStatus
from pykrisp.state.domains import SERVER_EVENTS
from pykrisp.state.events import EventHandler, HandlerRegistry

_logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, Any], None]
StatusCallback = Callable[[ConnectionStatus], None]


@dataclass
class ReconnectBackoff:
    """Exponential backoff counted in full connect cycles."""

    base_delay: float = RECONNECT_BASE_DELAY
    multiplier: float = RECONNECT_BACKOFF_MULTIPLIER
    max_delay: float = RECONNECT_MAX_DELAY
    max_attempts: int | None = None
    attempts: int = 0
    delay: float = field(init=False)

    def __post_init__(self) -> None:
        self.delay = self.base_delay

    @classmethod
    def from_config(cls, config: KrispConfig) -> ReconnectBackoff:
        return cls(
            base_delay=config.reconnect_delay,
            multiplier=config.reconnect_backoff_multiplier,
            max_delay=config.reconnect_max_delay,
            max_attempts=config.max_reconnect_attempts,
        )

    @property
    def exhausted(self) -> bool:
        return self.max_attempts is not None and self.attempts >= self.max_attempts

    def next_delay(self) -> float:
        """Consume one attempt and return its delay; grow the following one."""
        delay = self.delay
        self.attempts += 1
        self.delay = min(self.delay * self.multiplier, self.max_delay)
        return delay

    def reset(self) -> None:
        self.attempts = 0
        self.delay = self.base_delay


class ConnectionSupervisor:
    """Maintain one connection to the local service across its candidate ports.

    Every status transition is pushed through *on_status*; every inbound
    server message goes to *on_message* first and then to the raw
    listeners registered with :meth:`on`.
    """

    def __init__(
        self,
        config: KrispConfig,
        *,
        on_message: MessageCallback,
        on_status: StatusCallback,
        socket_factory: SocketFactory | None = None,
        http_session: aiohttp.ClientSession | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._on_message = on_message
        self._on_status = on_status
        self._socket_factory = socket_factory
        self.http_session = http_session
        self._logger = logger or _logger
        self._loop: asyncio.AbstractEventLoop | None = None

        self._socket: Socket | None = None
        self._port: int | None = None
        self._connecting = False
        # Bumped by disconnect() so an in-flight attempt can tell it was abandoned.
        self._generation = 0

        self._backoff = ReconnectBackoff.from_config(config)
        self._reconnect_timer: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._listeners: HandlerRegistry[str] = HandlerRegistry(logger=self._logger)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def port(self) -> int | None:
        return self._port

    @property
    def reconnect_attempts(self) -> int:
        return self._backoff.attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def is_connected(self) -> bool:
        return self._socket is not None and bool(self._socket.connected)

    def get_status(self) -> ConnectionStatus:
        return ConnectionStatus(
            connected=self.is_connected(),
            connecting=self._connecting,
            port=self._port,
        )

    def _publish(self, status: ConnectionStatus) -> None:
        self._logger.debug(
            "Connection status connected=%s connecting=%s port=%s error=%s",
            status.connected,
            status.connecting,
            status.port,
            status.error,
        )
        try:
            self._on_status(status)
        except Exception:
            self._logger.warning("Connection status callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect to the first reachable port.

        Returns immediately if already connected or if an attempt is in
        flight. When every port fails, raises the classified error if
        auto-reconnect is disabled, otherwise schedules a reconnect and
        returns normally.
        """
        await self._connect(manual=True)

    async def _connect(self, *, manual: bool) -> None:
        if self.is_connected() or self._connecting:
            return
        self._loop = asyncio.get_running_loop()
        if manual:
            # A manual call starts a fresh backoff sequence.
            self._cancel_reconnect_timer()
            self._backoff.reset()

        generation = self._generation
        self._connecting = True
        self._publish(ConnectionStatus(connecting=True))

        failure: KrispError | None = None
        for host, port in self._config.endpoints:
            self._port = port
            try:
                sock = await self._open_socket(host, port)
            except KrispServiceUnreachableError as exc:
                self._logger.debug("Port %s unreachable: %s", port, exc)
            except KrispError as exc:
                self._logger.debug("Port %s failed: %s", port, exc)
                failure = exc
            else:
                if generation != self._generation:
                    # disconnect() ran while we were connecting.
                    await self._close_socket(sock)
                    return
                if sock.connected:
                    self._socket = sock
                    self._connecting = False
                    self._backoff.reset()
                    self._install_forwarders(sock)
                    self._logger.debug("Connected to %s:%s", host, port)
                    self._publish(ConnectionStatus(connected=True, port=port))
                    return
                # Dropped before it was adopted; treat the port as unreachable.
                self._logger.debug("Port %s closed right after connecting", port)
                await self._close_socket(sock)
            if generation != self._generation:
                return

        self._connecting = False
        self._port = None
        error = failure or KrispServiceUnreachableError("Krisp Desktop is not reachable or API is disabled")
        self._publish(ConnectionStatus(error=error.to_info()))

        if self._config.auto_reconnect:
            self._schedule_reconnect()
            return
        raise error

    async def _open_socket(self, host: str, port: int) -> Socket:
        """Connect a fresh socket to one port, classifying any failure."""
        factory = self._socket_factory
        sock = factory() if factory is not None else create_socketio_client(
            http_session=self.http_session,
            logger=self._logger,
        )
        sock.on("disconnect", handler=self._make_disconnect_handler(sock))
        sock.on("connect_error", handler=self._make_connect_error_handler(port))

        url = f"http://{host}:{port}?{urlencode({'version': self._config.client_version})}"
        timeout = self._config.connection_timeout
        self._logger.debug("Connecting to %s", url)
        try:
            await asyncio.wait_for(
                sock.connect(url, transports=["websocket"], wait_timeout=timeout),
                timeout,
            )
        except asyncio.CancelledError:
            await self._close_socket(sock)
            raise
        except TimeoutError as exc:
            await self._close_socket(sock)
            raise KrispConnectionTimeoutError(f"Connection timeout after {timeout:g}s") from exc
        except sio_exceptions.ConnectionError as exc:
            await self._close_socket(sock)
            if NAMESPACE_REJECTED_MARKER in str(exc):
                raise KrispConnectionRefusedError(f"Connection refused: {exc}") from exc
            raise KrispServiceUnreachableError(f"Port {port} not reachable: {exc}") from exc
        except (OSError, aiohttp.ClientError) as exc:
            await self._close_socket(sock)
            raise KrispServiceUnreachableError(f"Port {port} not reachable: {exc}") from exc
        except Exception as exc:
            await self._close_socket(sock)
            raise KrispUnknownError(f"Connection error: {exc}") from exc
        return sock

    async def _close_socket(self, sock: Socket) -> None:
        # Handlers bound to this socket go inert once it is no longer current.
        try:
            await sock.disconnect()
        except Exception:
            self._logger.debug("Socket close failed", exc_info=True)

    async def disconnect(self) -> None:
        """Close the connection and stop reconnecting. Idempotent."""
        self._generation += 1
        self._cancel_reconnect_timer()
        self._cancel_reconnect_task()

        sock = self._socket
        self._socket = None
        self._port = None
        self._connecting = False
        self._backoff.reset()

        if sock is not None:
            await self._close_socket(sock)
        self._publish(ConnectionStatus())

    # ------------------------------------------------------------------
    # Socket callbacks
    # ------------------------------------------------------------------

    def _make_connect_error_handler(self, port: int) -> Callable[..., None]:
        def on_connect_error(data: Any = None) -> None:
            self._logger.debug("connect_error on port %s: %s", port, data)

        return on_connect_error

    def _make_disconnect_handler(self, sock: Socket) -> Callable[..., None]:
        def on_disconnect(reason: Any = None) -> None:
            self._handle_socket_closed(sock, reason)

        return on_disconnect

    def _handle_socket_closed(self, sock: Socket, reason: Any) -> None:
        if sock is not self._socket:
            # Stale socket, or one we are closing ourselves.
            return
        reason_text = str(reason) if reason is not None else "unknown"
        if reason_text in CLIENT_DISCONNECT_REASONS:
            return

        self._socket = None
        self._port = None

        if reason_text in SERVER_DISCONNECT_REASONS:
            self._logger.debug("Server closed the connection")
            self._publish(ConnectionStatus(error=KrispConnectionRefusedError("Server disconnected client").to_info()))
            return

        self._logger.debug("Connection lost: %s", reason_text)
        error = KrispConnectionRefusedError(f"Disconnected: {reason_text}")
        if self._config.auto_reconnect:
            self._publish(ConnectionStatus(connecting=True, error=error.to_info()))
            self._schedule_reconnect()
        else:
            self._publish(ConnectionStatus(error=error.to_info()))

    def _install_forwarders(self, sock: Socket) -> None:
        for event in SERVER_EVENTS:
            sock.on(event, handler=self._make_forwarder(sock, event))

    def _make_forwarder(self, sock: Socket, event: str) -> Callable[..., None]:
        def forward(data: Any = None) -> None:
            if sock is self._socket:
                self._dispatch(event, data)

        return forward

    def _dispatch(self, event: str, data: Any) -> None:
        try:
            self._on_message(event, data)
        except Exception:
            self._logger.warning("Message callback failed for %s", event, exc_info=True)
        self._listeners.dispatch(event, data)

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect_timer()
        if self._backoff.exhausted:
            limit = self._backoff.max_attempts
            self._logger.warning("Giving up after %s reconnect attempts", limit)
            self._publish(
                ConnectionStatus(error=KrispConnectionRefusedError(f"Max reconnect attempts ({limit}) reached").to_info())
            )
            return
        delay = self._backoff.next_delay()
        loop = self._loop or asyncio.get_running_loop()
        self._logger.debug("Reconnect attempt %d scheduled in %.2fs", self._backoff.attempts, delay)
        self._reconnect_timer = loop.call_later(delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        loop = self._loop or asyncio.get_running_loop()
        self._reconnect_task = loop.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self._connect(manual=False)
        except Exception:
            self._logger.warning("Reconnect attempt failed", exc_info=True)

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _cancel_reconnect_task(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def emit(self, event: str, payload: Any = None, callback: Callable[..., Any] | None = None) -> None:
        """Send *event*; *callback* receives the server acknowledgement.

        Raises :class:`KrispConnectionRefusedError` without touching the
        network when not connected.
        """
        sock = self._socket
        if sock is None or not sock.connected:
            raise KrispConnectionRefusedError("Not connected to server")
        try:
            await sock.emit(event, payload if payload is not None else {}, callback=callback)
        except sio_exceptions.SocketIOError as exc:
            raise KrispConnectionRefusedError(f"Emit of {event} failed: {exc}") from exc

    def on(self, event: str, handler: EventHandler) -> None:
        """Listen for a raw server event. Listeners survive reconnection."""
        self._listeners.add(event, handler)

    def off(self, event: str, handler: EventHandler | None = None) -> None:
        self._listeners.remove(event, handler)
