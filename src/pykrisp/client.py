"""High-level async client for the Krisp Desktop local monitoring API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

import aiohttp

from pykrisp._connection import ConnectionSupervisor
from pykrisp._transport import SocketFactory
from pykrisp._waiters import PendingRequest
from pykrisp.config import KrispConfig
from pykrisp.exceptions import (
    KrispConnectionRefusedError,
    KrispError,
    KrispInvalidMessageError,
    KrispUnknownError,
)
from pykrisp.models.call import InCallState
from pykrisp.models.connection import ConnectionStatus
from pykrisp.models.devices import DeviceState
from pykrisp.models.toggles import AccentConversionState, NoiseCancellationState
from pykrisp.state.cache import StateCache
from pykrisp.state.domains import DOMAINS, StateDomain, SubscriptionTopic
from pykrisp.state.events import ClientEvent, EventHandler, HandlerRegistry

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def _ack_success(response: Any) -> bool:
    return isinstance(response, Mapping) and bool(response.get("success"))


def _as_topics(topics: Iterable[SubscriptionTopic | str]) -> list[SubscriptionTopic]:
    """Validate *topics*, dropping duplicates but keeping order."""
    if isinstance(topics, str):
        topics = [topics]
    result: list[SubscriptionTopic] = []
    for topic in topics:
        try:
            value = SubscriptionTopic(topic)
        except ValueError:
            raise ValueError(f"unknown subscription topic: {topic!r}") from None
        if value not in result:
            result.append(value)
    return result


class KrispClient:
    """Async client for the Krisp Desktop local monitoring API.

    Usage::

        async with KrispClient() as client:
            client.on(ClientEvent.DEVICES_CHANGED, print)
            await client.connect()
            devices = await client.get_devices_state()

    The client keeps reconnecting in the background after a connection
    loss (unless ``auto_reconnect`` is disabled) and, once reconnected,
    re-fetches every state domain and restores its subscriptions.
    """

    def __init__(
        self,
        config: KrispConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        self._config = config or KrispConfig()
        self._external_session = session is not None
        self._http_session = session
        self._cache = StateCache()
        self._handlers: HandlerRegistry[ClientEvent] = HandlerRegistry(logger=_logger)
        self._supervisor = ConnectionSupervisor(
            self._config,
            on_message=self._on_message,
            on_status=self._on_status,
            socket_factory=socket_factory,
            http_session=session,
        )
        # Ordered set of server-confirmed topics.
        self._subscribed: dict[SubscriptionTopic, None] = {}
        self._pending: set[PendingRequest[Any]] = set()
        self._was_connected = False
        self._reconnecting = False
        self._recovery_task: asyncio.Task[None] | None = None

        # Forward cache notifications to client handlers (never back into the cache).
        for desc in DOMAINS.values():
            self._cache.on(desc.change_event, self._forwarder(desc.change_event))
        self._cache.on(ClientEvent.ERROR, self._forwarder(ClientEvent.ERROR))

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> KrispClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._supervisor.http_session = self._http_session
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._supervisor.http_session = None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def config(self) -> KrispConfig:
        return self._config

    @property
    def state(self) -> StateCache:
        """Last known snapshots, readable even while disconnected."""
        return self._cache

    @property
    def subscribed_topics(self) -> tuple[SubscriptionTopic, ...]:
        return tuple(self._subscribed)

    def is_connected(self) -> bool:
        return self._supervisor.is_connected()

    def get_connection_status(self) -> ConnectionStatus:
        return self._supervisor.get_status()

    async def connect(self) -> None:
        """Connect, fetch every state domain, and auto-subscribe.

        Raises the classified connection error when no port is reachable
        and auto-reconnect is disabled. With auto-reconnect enabled a
        failed attempt returns normally and retries in the background.
        """
        self._reconnecting = False
        await self._supervisor.connect()
        if not self._supervisor.is_connected():
            return

        await self._fetch_initial_states()

        if self._config.auto_subscribe:
            await self.subscribe(self._config.auto_subscribe_topics)

    async def disconnect(self, *, reset_state: bool = False) -> None:
        """Disconnect and stop reconnecting.

        Pending requests are rejected with
        :class:`~pykrisp.exceptions.KrispConnectionRefusedError`. Cached
        snapshots stay readable unless *reset_state* is true.
        """
        self._cancel_recovery()
        await self._supervisor.disconnect()
        for request in list(self._pending):
            request.reject(KrispConnectionRefusedError("Disconnected"))
        self._subscribed.clear()
        self._was_connected = False
        self._reconnecting = False
        if reset_state:
            self._cache.reset()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: ClientEvent | str, handler: EventHandler) -> None:
        """Register *handler* for *event*."""
        self._handlers.add(ClientEvent(event), handler)

    def off(self, event: ClientEvent | str, handler: EventHandler | None = None) -> None:
        """Unregister *handler*, or every handler for *event* when omitted."""
        self._handlers.remove(ClientEvent(event), handler)

    def _forwarder(self, event: ClientEvent) -> EventHandler:
        def forward(data: Any) -> None:
            self._handlers.dispatch(event, data)

        return forward

    def _emit_error(self, error: KrispError) -> None:
        self._handlers.dispatch(ClientEvent.ERROR, error.to_info())

    def _on_message(self, event: str, data: Any) -> None:
        try:
            self._cache.handle_message(event, data)
        except KrispError as exc:
            _logger.debug("Failed to process %s message", event, exc_info=True)
            self._emit_error(KrispInvalidMessageError(f"Failed to process message: {exc}"))

    def _on_status(self, status: ConnectionStatus) -> None:
        if status.connected and not self._was_connected:
            reconnected = self._reconnecting
            self._was_connected = True
            self._reconnecting = False
            if reconnected:
                self._start_recovery()
        elif not status.connected and self._was_connected:
            self._was_connected = False
            self._reconnecting = True

        self._handlers.dispatch(ClientEvent.CONNECTION_CHANGED, status)

    # ------------------------------------------------------------------
    # Reconnection recovery
    # ------------------------------------------------------------------

    def _start_recovery(self) -> None:
        self._cancel_recovery()
        self._recovery_task = asyncio.get_running_loop().create_task(self._recover())

    def _cancel_recovery(self) -> None:
        task = self._recovery_task
        self._recovery_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _recover(self) -> None:
        """Re-fetch state and restore subscriptions after a reconnection.

        Best-effort: failures are logged and never affect the connection.
        """
        try:
            # The connected status can arrive before the socket is usable.
            for _ in range(self._config.recovery_poll_attempts):
                if self._supervisor.is_connected():
                    break
                await asyncio.sleep(self._config.recovery_poll_interval)

            if not self._supervisor.is_connected():
                _logger.warning("Connection not ready after reconnection")
                return

            await self._fetch_initial_states()

            if self._config.auto_subscribe:
                topics = list(self._subscribed) or list(self._config.auto_subscribe_topics)
                await self.subscribe(topics)
                _logger.info(
                    "Re-subscribed to topics after reconnection: %s",
                    ", ".join(topic.value for topic in topics),
                )
        except Exception:
            _logger.warning("Failed to handle reconnection", exc_info=True)

    async def _fetch_initial_states(self) -> None:
        results = await asyncio.gather(
            self.get_devices_state(),
            self.get_noise_cancellation_state(),
            self.get_accent_conversion_state(),
            self.get_in_call_state(),
            return_exceptions=True,
        )
        for domain, result in zip(DOMAINS, results, strict=True):
            # Non-fatal: the state arrives with the next push once subscribed.
            if isinstance(result, BaseException):
                _logger.debug("Initial fetch of %s failed: %s", domain, result)

    # ------------------------------------------------------------------
    # Request / response
    # ------------------------------------------------------------------

    def _require_connected(self) -> None:
        if not self._supervisor.is_connected():
            raise KrispConnectionRefusedError("Not connected to server")

    async def _call(
        self,
        request: PendingRequest[T],
        event: str,
        payload: Any,
        on_ack: Callable[..., None],
    ) -> T:
        """Emit *event* and wait for *request* to settle."""
        self._pending.add(request)
        request.add_teardown(lambda: self._pending.discard(request))
        try:
            await self._supervisor.emit(event, payload, callback=on_ack)
        except KrispError as exc:
            request.reject(exc)
        except BaseException:
            request.close()
            raise
        return await request.wait()

    async def _request_state(self, domain: StateDomain, read: Callable[[], T | None]) -> T:
        """Ask for *domain* and resolve with the cached snapshot.

        Settles on whichever comes first: the domain's push, or a
        successful acknowledgement while the cache already holds a value.
        """
        desc = DOMAINS[domain]
        self._require_connected()
        request: PendingRequest[T] = PendingRequest(f"Get {desc.label}", timeout=self._config.request_timeout)

        def on_push(_data: Any = None) -> None:
            current = read()
            if current is not None:
                request.resolve(current)

        self._supervisor.on(desc.push_event, on_push)
        request.add_teardown(lambda: self._supervisor.off(desc.push_event, on_push))

        def on_ack(response: Any = None) -> None:
            if not _ack_success(response):
                request.reject(KrispUnknownError(f"Failed to get {desc.label}"))
                return
            current = read()
            if current is not None:
                request.resolve(current)

        return await self._call(request, desc.request_event, {}, on_ack)

    async def get_devices_state(self) -> DeviceState:
        """Fetch the microphone/speaker pairing state."""
        return await self._request_state(StateDomain.DEVICES, self._cache.get_device_state)

    async def get_noise_cancellation_state(self) -> NoiseCancellationState:
        """Fetch the per-channel noise cancellation state."""
        return await self._request_state(StateDomain.NOISE_CANCELLATION, self._cache.get_noise_cancellation_state)

    async def get_accent_conversion_state(self) -> AccentConversionState:
        """Fetch the per-channel accent conversion state."""
        return await self._request_state(StateDomain.ACCENT_CONVERSION, self._cache.get_accent_conversion_state)

    async def get_in_call_state(self) -> InCallState:
        """Fetch whether a call is in progress."""
        return await self._request_state(StateDomain.IN_CALL, self._cache.get_in_call_state)

    async def subscribe(self, topics: Iterable[SubscriptionTopic | str]) -> None:
        """Subscribe to push updates for *topics*.

        Only topics the server confirms are recorded. On failure nothing
        is recorded and the call raises.
        """
        requested = _as_topics(topics)
        self._require_connected()
        request: PendingRequest[None] = PendingRequest("Subscribe", timeout=self._config.request_timeout)

        def on_ack(response: Any = None) -> None:
            if request.done:
                return
            if not _ack_success(response):
                _logger.warning("Subscription failed: %s", response)
                request.reject(KrispUnknownError("Failed to subscribe"))
                return
            confirmed_raw = response.get("subscribed")
            if isinstance(confirmed_raw, Iterable) and not isinstance(confirmed_raw, str):
                confirmed = {str(topic) for topic in confirmed_raw}
            else:
                confirmed = {topic.value for topic in requested}
            for topic in requested:
                if topic.value in confirmed:
                    self._subscribed[topic] = None
            _logger.debug(
                "Subscribed to topics: %s, server confirmed: %s",
                ", ".join(topic.value for topic in requested),
                ", ".join(sorted(confirmed)),
            )
            request.resolve(None)

        await self._call(request, "subscribe", {"topics": [topic.value for topic in requested]}, on_ack)

    async def unsubscribe(self, topics: Iterable[SubscriptionTopic | str]) -> None:
        """Stop push updates for *topics*."""
        requested = _as_topics(topics)
        self._require_connected()
        request: PendingRequest[None] = PendingRequest("Unsubscribe", timeout=self._config.request_timeout)

        def on_ack(response: Any = None) -> None:
            if request.done:
                return
            if not _ack_success(response):
                request.reject(KrispUnknownError("Failed to unsubscribe"))
                return
            for topic in requested:
                self._subscribed.pop(topic, None)
            request.resolve(None)

        await self._call(request, "unsubscribe", {"topics": [topic.value for topic in requested]}, on_ack)

    async def ping(self) -> None:
        """Round-trip a ping through the server's acknowledgement."""
        self._require_connected()
        request: PendingRequest[None] = PendingRequest("Ping", timeout=self._config.request_timeout)

        def on_ack(response: Any = None) -> None:
            if _ack_success(response):
                request.resolve(None)
            else:
                request.reject(KrispUnknownError("Ping failed"))

        await self._call(request, "ping", {}, on_ack)
