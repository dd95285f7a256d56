"""In-memory cache of the four server-pushed state domains.

This is the only component allowed to replace cached snapshots.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pykrisp.models._base import KrispBaseModel
from pykrisp.models.call import InCallState
from pykrisp.models.connection import ErrorCode, ErrorInfo
from pykrisp.models.devices import AudioChannel, DeviceState
from pykrisp.models.toggles import AccentConversionState, NoiseCancellationState
from pykrisp.state.domains import DOMAIN_BY_PUSH_EVENT, DOMAINS, ERROR_EVENT, PONG_EVENT, StateDomain
from pykrisp.state.events import ClientEvent, EventHandler, HandlerRegistry
from pykrisp.state.normalize import (
    normalize_ac_state,
    normalize_device_state,
    normalize_in_call_state,
    normalize_nc_state,
)

_logger = logging.getLogger(__name__)


def _devices_changed(old: DeviceState, new: DeviceState) -> bool:
    return any(
        old.channel(channel).physical_device_info != new.channel(channel).physical_device_info
        for channel in AudioChannel
    )


def _toggles_changed(
    old: NoiseCancellationState | AccentConversionState,
    new: NoiseCancellationState | AccentConversionState,
) -> bool:
    return not old.same_values(new)


def _in_call_changed(old: InCallState, new: InCallState) -> bool:
    return old.in_call != new.in_call


def _server_error(data: Any) -> ErrorInfo:
    """Build the ``ERROR`` payload for a server ``error`` push."""
    payload = data if isinstance(data, Mapping) else {}
    message = payload.get("message")
    raw_code = payload.get("code")
    server_code = str(raw_code) if raw_code is not None else None
    try:
        code = ErrorCode(server_code) if server_code is not None else ErrorCode.UNKNOWN_ERROR
    except ValueError:
        code = ErrorCode.UNKNOWN_ERROR
    return ErrorInfo(code=code, message=str(message or "Server error"), server_code=server_code)


_NORMALIZERS: dict[StateDomain, Callable[[Any], KrispBaseModel]] = {
    StateDomain.DEVICES: normalize_device_state,
    StateDomain.NOISE_CANCELLATION: normalize_nc_state,
    StateDomain.ACCENT_CONVERSION: normalize_ac_state,
    StateDomain.IN_CALL: normalize_in_call_state,
}

# Value-only comparisons: timestamps alone never count as a change.
_COMPARATORS: dict[StateDomain, Callable[[Any, Any], bool]] = {
    StateDomain.DEVICES: _devices_changed,
    StateDomain.NOISE_CANCELLATION: _toggles_changed,
    StateDomain.ACCENT_CONVERSION: _toggles_changed,
    StateDomain.IN_CALL: _in_call_changed,
}


class StateCache:
    """Normalise pushes, suppress no-op updates, and notify on change.

    A snapshot, once stored, stays readable (including while
    disconnected) until :meth:`reset` is called.
    """

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger
        self._snapshots: dict[StateDomain, KrispBaseModel] = {}
        self._handlers: HandlerRegistry[ClientEvent] = HandlerRegistry(logger=self._logger)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on(self, event: ClientEvent, handler: EventHandler) -> None:
        self._handlers.add(ClientEvent(event), handler)

    def off(self, event: ClientEvent, handler: EventHandler | None = None) -> None:
        self._handlers.remove(ClientEvent(event), handler)

    def emit(self, event: ClientEvent, data: Any) -> None:
        """Dispatch *data* to the handlers registered for *event*."""
        self._handlers.dispatch(ClientEvent(event), data)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def handle_message(self, event: str, data: Any) -> None:
        """Route one inbound wire message.

        Raises :class:`~pykrisp.exceptions.KrispInvalidMessageError` when a
        state payload is not an object.
        """
        domain = DOMAIN_BY_PUSH_EVENT.get(event)
        if domain is not None:
            self.update(domain, data)
            return
        if event == ERROR_EVENT:
            self.emit(ClientEvent.ERROR, _server_error(data))
            return
        if event == PONG_EVENT:
            return
        self._logger.debug("Ignoring unknown message event=%s", event)

    def update(self, domain: StateDomain, payload: Any) -> bool:
        """Store the normalised *payload*; return whether observers were notified."""
        snapshot = _NORMALIZERS[domain](payload)
        previous = self._snapshots.get(domain)
        changed = previous is None or _COMPARATORS[domain](previous, snapshot)
        self._snapshots[domain] = snapshot
        if changed:
            self._logger.debug("State changed domain=%s", domain)
            self.emit(DOMAINS[domain].change_event, snapshot)
        return changed

    def reset(self) -> None:
        """Forget every cached snapshot."""
        self._snapshots.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, domain: StateDomain) -> KrispBaseModel | None:
        return self._snapshots.get(domain)

    def get_device_state(self) -> DeviceState | None:
        state = self._snapshots.get(StateDomain.DEVICES)
        return state if isinstance(state, DeviceState) else None

    def get_noise_cancellation_state(self) -> NoiseCancellationState | None:
        state = self._snapshots.get(StateDomain.NOISE_CANCELLATION)
        return state if isinstance(state, NoiseCancellationState) else None

    def get_accent_conversion_state(self) -> AccentConversionState | None:
        state = self._snapshots.get(StateDomain.ACCENT_CONVERSION)
        return state if isinstance(state, AccentConversionState) else None

    def get_in_call_state(self) -> InCallState | None:
        state = self._snapshots.get(StateDomain.IN_CALL)
        return state if isinstance(state, InCallState) else None
