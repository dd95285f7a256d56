from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

import pytest

Responder = Callable[["FakeSocket", Any, Callable[..., Any] | None], None]

STATE_EVENTS = {
    "get_device_state": "device_state",
    "get_nc_state": "nc_state",
    "get_ac_state": "ac_state",
    "get_in_call_state": "in_call_state",
}

SAMPLE_STATES: dict[str, Any] = {
    "device_state": {
        0: {
            "physicalDeviceInfo": {"id": "mic-1", "name": "USB Microphone", "isKrisp": False},
            "updatedAt": 1_700_000_000_000,
        },
        1: {"physicalDeviceInfo": None, "updatedAt": 1_700_000_000_000},
    },
    "nc_state": {
        0: {"enabled": True, "updatedAt": 1_700_000_000_000},
        1: {"enabled": False, "updatedAt": 1_700_000_000_000},
    },
    "ac_state": {
        0: {"enabled": False, "updatedAt": 1_700_000_000_000},
        1: {"enabled": False, "updatedAt": 1_700_000_000_000},
    },
    "in_call_state": {"inCall": False, "updatedAt": 1_700_000_000_000},
}


class FakeSocket:
    """In-memory stand-in for ``socketio.AsyncClient``."""

    def __init__(self, hub: FakeSocketHub) -> None:
        self._hub = hub
        self.connected = False
        self.url: str | None = None
        self.handlers: dict[str, Callable[..., Any]] = {}
        self.emitted: list[tuple[str, Any]] = []
        self.disconnect_calls = 0

    def on(self, event: str, handler: Callable[..., Any] | None = None, namespace: str | None = None) -> None:
        assert handler is not None
        self.handlers[event] = handler

    async def connect(self, url: str, *, transports: list[str] | None = None, wait_timeout: float = 1) -> None:
        self.url = url
        outcome = self._hub.failures.get(urlsplit(url).port)
        if outcome == "hang":
            await asyncio.sleep(3600)
        elif outcome == "slow":
            await asyncio.sleep(0.05)
        elif outcome == "dead":
            # Handshake completed but the transport is already gone.
            return
        elif outcome is not None:
            raise outcome
        self.connected = True

    async def emit(self, event: str, data: Any = None, callback: Callable[..., Any] | None = None) -> None:
        self.emitted.append((event, data))
        responder = self._hub.responders.get(event)
        if responder is not None:
            responder(self, data, callback)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    # Test helpers -----------------------------------------------------

    def push(self, event: str, data: Any = None) -> None:
        self.handlers[event](data)

    def drop(self, reason: str) -> None:
        self.connected = False
        self.handlers["disconnect"](reason)

    def emitted_events(self) -> list[str]:
        return [event for event, _ in self.emitted]


class FakeSocketHub:
    """Socket factory; ``failures`` maps a port to an exception or to ``"hang"``, ``"slow"`` or ``"dead"``."""

    def __init__(self) -> None:
        self.sockets: list[FakeSocket] = []
        self.failures: dict[int, Any] = {}
        self.responders: dict[str, Responder] = {}

    def __call__(self) -> FakeSocket:
        sock = FakeSocket(self)
        self.sockets.append(sock)
        return sock

    @property
    def current(self) -> FakeSocket:
        return self.sockets[-1]

    def serve_states(self, states: dict[str, Any] | None = None) -> None:
        """Ack every get-state request, then push the matching state."""
        served = dict(SAMPLE_STATES if states is None else states)

        for request_event, push_event in STATE_EVENTS.items():

            def respond(sock: FakeSocket, data: Any, callback: Any, push_event: str = push_event) -> None:
                callback({"success": True})
                sock.push(push_event, served[push_event])

            self.responders[request_event] = respond

    def confirm_subscriptions(self, confirmed: list[str] | None = None) -> None:
        def respond(sock: FakeSocket, data: Any, callback: Any) -> None:
            topics = data["topics"] if confirmed is None else confirmed
            callback({"success": True, "subscribed": topics})

        self.responders["subscribe"] = respond

    def ack(self, event: str, response: Any) -> None:
        def respond(sock: FakeSocket, data: Any, callback: Any) -> None:
            callback(response)

        self.responders[event] = respond


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def hub() -> FakeSocketHub:
    return FakeSocketHub()
