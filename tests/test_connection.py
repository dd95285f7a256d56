from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import FakeSocketHub, wait_until
from socketio import exceptions as sio_exceptions

from pykrisp._connection import ConnectionSupervisor, ReconnectBackoff
from pykrisp.config import KrispConfig
from pykrisp.exceptions import (
    KrispConnectionRefusedError,
    KrispConnectionTimeoutError,
    KrispServiceUnreachableError,
)
from pykrisp.models.connection import ConnectionStatus, ErrorCode


def _supervisor(
    hub: FakeSocketHub,
    statuses: list[ConnectionStatus],
    messages: list[tuple[str, Any]] | None = None,
    **config: Any,
) -> ConnectionSupervisor:
    sink = messages if messages is not None else []
    return ConnectionSupervisor(
        KrispConfig(**config),
        on_message=lambda event, data: sink.append((event, data)),
        on_status=statuses.append,
        socket_factory=hub,
    )


def _record_reconnects(monkeypatch: pytest.MonkeyPatch, supervisor: ConnectionSupervisor) -> list[Any]:
    """Capture reconnect timers instead of letting them fire."""
    loop = asyncio.get_running_loop()
    original = loop.call_later
    scheduled: list[Any] = []

    def call_later(delay: float, callback: Any, *args: Any, **kwargs: Any) -> asyncio.TimerHandle:
        if callback == supervisor._fire_reconnect:
            scheduled.append((delay, callback))
            return original(3600, callback)
        return original(delay, callback, *args, **kwargs)

    monkeypatch.setattr(loop, "call_later", call_later)
    return scheduled


def test_backoff_grows_by_multiplier_and_caps() -> None:
    backoff = ReconnectBackoff()
    delays = [backoff.next_delay() for _ in range(12)]

    assert delays[:4] == [1.0, 1.5, 2.25, 3.375]
    assert max(delays) == 30.0
    assert delays[-1] == 30.0
    assert backoff.attempts == 12


def test_backoff_reset_and_limit() -> None:
    backoff = ReconnectBackoff(max_attempts=2)
    backoff.next_delay()
    assert not backoff.exhausted
    backoff.next_delay()
    assert backoff.exhausted

    backoff.reset()
    assert backoff.attempts == 0
    assert backoff.next_delay() == 1.0


@pytest.mark.asyncio
async def test_connect_falls_through_ports_in_order(hub: FakeSocketHub) -> None:
    hub.failures = {50190: OSError("refused"), 50191: ConnectionRefusedError("refused")}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, auto_reconnect=False)

    await supervisor.connect()

    assert supervisor.is_connected()
    assert supervisor.port == 50192
    assert [sock.url.split("?")[0] for sock in hub.sockets] == [
        "http://127.0.0.1:50190",
        "http://127.0.0.1:50191",
        "http://127.0.0.1:50192",
    ]
    assert hub.current.url.endswith("?version=1.0.0")
    # Failed sockets are closed, the live one is not.
    assert [sock.disconnect_calls for sock in hub.sockets] == [1, 1, 0]

    assert statuses[0] == ConnectionStatus(connecting=True)
    connected = [status for status in statuses if status.connected]
    assert connected == [ConnectionStatus(connected=True, port=50192)]

    await supervisor.disconnect()


@pytest.mark.asyncio
async def test_all_ports_unreachable_raises_without_auto_reconnect(hub: FakeSocketHub) -> None:
    hub.failures = {port: OSError("refused") for port in (50190, 50191, 50192)}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, auto_reconnect=False)

    with pytest.raises(KrispServiceUnreachableError):
        await supervisor.connect()

    assert not supervisor.is_connected()
    assert not supervisor.reconnect_pending
    last = statuses[-1]
    assert not last.connected and not last.connecting
    assert last.error is not None
    assert last.error.code == ErrorCode.KRISP_NOT_REACHABLE


@pytest.mark.asyncio
async def test_specific_failure_wins_over_unreachable(hub: FakeSocketHub) -> None:
    hub.failures = {
        50190: sio_exceptions.ConnectionError("One or more namespaces failed to connect"),
        50191: OSError("refused"),
        50192: OSError("refused"),
    }
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, auto_reconnect=False)

    with pytest.raises(KrispConnectionRefusedError):
        await supervisor.connect()

    assert statuses[-1].error is not None
    assert statuses[-1].error.code == ErrorCode.CONNECTION_REFUSED


@pytest.mark.asyncio
async def test_connect_timeout_is_classified(hub: FakeSocketHub) -> None:
    hub.failures = {50190: "hang"}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, ports=(50190,), connection_timeout=0.05, auto_reconnect=False)

    with pytest.raises(KrispConnectionTimeoutError):
        await supervisor.connect()

    assert hub.current.disconnect_calls == 1
    assert statuses[-1].error is not None
    assert statuses[-1].error.code == ErrorCode.CONNECTION_TIMEOUT


@pytest.mark.asyncio
async def test_failed_connect_schedules_backoff(hub: FakeSocketHub, monkeypatch: pytest.MonkeyPatch) -> None:
    hub.failures = {port: OSError("refused") for port in (50190, 50191, 50192)}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses)
    scheduled = _record_reconnects(monkeypatch, supervisor)

    await supervisor.connect()

    assert not supervisor.is_connected()
    assert supervisor.reconnect_pending
    assert [delay for delay, _ in scheduled] == [1.0]

    # Fire the timer by hand: the cycle fails again and backs off further.
    scheduled[-1][1]()
    await supervisor._reconnect_task
    assert [delay for delay, _ in scheduled] == [1.0, 1.5]
    assert supervisor.reconnect_attempts == 2

    await supervisor.disconnect()
    assert not supervisor.reconnect_pending


@pytest.mark.asyncio
async def test_reconnect_gives_up_after_max_attempts(hub: FakeSocketHub, monkeypatch: pytest.MonkeyPatch) -> None:
    hub.failures = {port: OSError("refused") for port in (50190, 50191, 50192)}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, max_reconnect_attempts=1)
    scheduled = _record_reconnects(monkeypatch, supervisor)

    await supervisor.connect()
    scheduled[-1][1]()
    await supervisor._reconnect_task

    assert len(scheduled) == 1
    assert not supervisor.reconnect_pending
    last = statuses[-1]
    assert not last.connected and not last.connecting
    assert last.error is not None
    assert last.error.code == ErrorCode.CONNECTION_REFUSED
    assert last.error.message == "Max reconnect attempts (1) reached"


@pytest.mark.asyncio
async def test_successful_reconnect_resets_backoff(hub: FakeSocketHub, monkeypatch: pytest.MonkeyPatch) -> None:
    hub.failures = {port: OSError("refused") for port in (50190, 50191, 50192)}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses)
    scheduled = _record_reconnects(monkeypatch, supervisor)

    await supervisor.connect()
    hub.failures.clear()
    scheduled[-1][1]()
    await supervisor._reconnect_task

    assert supervisor.is_connected()
    assert supervisor.port == 50190
    assert supervisor.reconnect_attempts == 0
    assert statuses[-1] == ConnectionStatus(connected=True, port=50190)

    await supervisor.disconnect()


@pytest.mark.asyncio
async def test_server_disconnect_is_terminal(hub: FakeSocketHub, monkeypatch: pytest.MonkeyPatch) -> None:
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses)
    scheduled = _record_reconnects(monkeypatch, supervisor)
    await supervisor.connect()

    hub.current.drop("io server disconnect")

    assert not supervisor.is_connected()
    assert not supervisor.reconnect_pending
    assert scheduled == []
    last = statuses[-1]
    assert last.error is not None
    assert last.error.code == ErrorCode.CONNECTION_REFUSED
    assert last.error.message == "Server disconnected client"


@pytest.mark.asyncio
async def test_transient_loss_schedules_reconnect(hub: FakeSocketHub, monkeypatch: pytest.MonkeyPatch) -> None:
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses)
    scheduled = _record_reconnects(monkeypatch, supervisor)
    await supervisor.connect()

    hub.current.drop("transport close")

    last = statuses[-1]
    assert last.connecting and not last.connected
    assert last.error is not None
    assert last.error.message == "Disconnected: transport close"
    assert [delay for delay, _ in scheduled] == [1.0]

    await supervisor.disconnect()


@pytest.mark.asyncio
async def test_transient_loss_without_auto_reconnect_reports_error(hub: FakeSocketHub) -> None:
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, auto_reconnect=False)
    await supervisor.connect()

    hub.current.drop("transport error")

    last = statuses[-1]
    assert not last.connected and not last.connecting
    assert last.error is not None
    assert last.error.message == "Disconnected: transport error"
    assert not supervisor.reconnect_pending


@pytest.mark.asyncio
async def test_client_initiated_close_is_silent(hub: FakeSocketHub) -> None:
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses)
    await supervisor.connect()
    published = len(statuses)

    hub.current.drop("io client disconnect")

    assert len(statuses) == published
    assert not supervisor.reconnect_pending


@pytest.mark.asyncio
async def test_messages_forwarded_from_current_socket_only(hub: FakeSocketHub) -> None:
    statuses: list[ConnectionStatus] = []
    messages: list[tuple[str, Any]] = []
    raw: list[Any] = []
    supervisor = _supervisor(hub, statuses, messages)
    supervisor.on("nc_state", raw.append)
    await supervisor.connect()
    sock = hub.current

    sock.push("nc_state", {"0": {"enabled": True}})
    await supervisor.disconnect()
    sock.push("nc_state", {"0": {"enabled": False}})

    assert messages == [("nc_state", {"0": {"enabled": True}})]
    assert raw == [{"0": {"enabled": True}}]


@pytest.mark.asyncio
async def test_emit_requires_connection(hub: FakeSocketHub) -> None:
    supervisor = _supervisor(hub, [])

    with pytest.raises(KrispConnectionRefusedError, match="Not connected to server"):
        await supervisor.emit("ping")
    assert hub.sockets == []


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(hub: FakeSocketHub) -> None:
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses)
    await supervisor.connect()
    sock = hub.current

    await supervisor.disconnect()
    await supervisor.disconnect()

    assert sock.disconnect_calls == 1
    assert statuses[-1] == ConnectionStatus()
    assert supervisor.get_status() == ConnectionStatus()


@pytest.mark.asyncio
async def test_connect_while_connected_is_noop(hub: FakeSocketHub) -> None:
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses)
    await supervisor.connect()
    published = len(statuses)

    await supervisor.connect()

    assert len(hub.sockets) == 1
    assert len(statuses) == published
    await supervisor.disconnect()


@pytest.mark.asyncio
async def test_connect_during_attempt_does_not_stack(hub: FakeSocketHub) -> None:
    hub.failures = {50190: "slow"}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, ports=(50190,), auto_reconnect=False)

    first = asyncio.create_task(supervisor.connect())
    await wait_until(lambda: len(hub.sockets) == 1)
    await supervisor.connect()
    await first

    assert len(hub.sockets) == 1
    assert supervisor.is_connected()
    assert [status for status in statuses if status.connecting] == [ConnectionStatus(connecting=True)]
    assert [status for status in statuses if status.connected] == [ConnectionStatus(connected=True, port=50190)]
    await supervisor.disconnect()


@pytest.mark.asyncio
async def test_disconnect_during_attempt_abandons_it(hub: FakeSocketHub) -> None:
    hub.failures = {50190: "slow"}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, ports=(50190, 50191))

    attempt = asyncio.create_task(supervisor.connect())
    await wait_until(lambda: len(hub.sockets) == 1)
    await supervisor.disconnect()
    await attempt

    assert not supervisor.is_connected()
    assert not supervisor.reconnect_pending
    # The late socket is closed and the remaining port is never tried.
    assert len(hub.sockets) == 1
    assert hub.sockets[0].disconnect_calls == 1
    assert not any(status.connected for status in statuses)
    assert statuses[-1] == ConnectionStatus()


@pytest.mark.asyncio
async def test_socket_dropped_before_adoption_moves_to_next_port(hub: FakeSocketHub) -> None:
    hub.failures = {50190: "dead"}
    statuses: list[ConnectionStatus] = []
    supervisor = _supervisor(hub, statuses, ports=(50190, 50191), auto_reconnect=False)

    await supervisor.connect()

    assert supervisor.is_connected()
    assert supervisor.port == 50191
    assert hub.sockets[0].disconnect_calls == 1
    assert [status for status in statuses if status.connected] == [ConnectionStatus(connected=True, port=50191)]
    await supervisor.disconnect()
