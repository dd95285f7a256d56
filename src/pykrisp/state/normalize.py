"""Normalization of raw state pushes into canonical snapshots.

Only a payload that is not an object at all is rejected. Anything
partial is filled with safe defaults: absent device info becomes
``None``, missing flags become ``False``, and missing timestamps
become *now*.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

from pydantic import ValidationError

from pykrisp.exceptions import KrispInvalidMessageError
from pykrisp.models._base import KrispBaseModel
from pykrisp.models.call import InCallState
from pykrisp.models.devices import AudioChannel, DeviceState
from pykrisp.models.toggles import AccentConversionState, NoiseCancellationState

TModel = TypeVar("TModel", bound=KrispBaseModel)


def _require_object(payload: Any, label: str) -> Mapping[Any, Any]:
    if isinstance(payload, Mapping):
        return payload
    # JSON arrays index like the {0: ..., 1: ...} objects the service sends.
    if isinstance(payload, Sequence) and not isinstance(payload, (str, bytes, bytearray)):
        return dict(enumerate(payload))
    raise KrispInvalidMessageError(f"Invalid {label}: must be an object")


def _channel_entry(payload: Mapping[Any, Any], channel: AudioChannel) -> dict[str, Any]:
    """Return the entry for *channel*, keyed by int or (after JSON) by str."""
    for key in (int(channel), str(int(channel)), channel.name.lower()):
        entry = payload.get(key)
        if isinstance(entry, Mapping):
            return dict(entry)
    return {}


def _validate(model: type[TModel], data: dict[str, Any], label: str) -> TModel:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise KrispInvalidMessageError(f"Invalid {label}: {exc.error_count()} invalid field(s)") from exc


def _device_pair(entry: dict[str, Any]) -> dict[str, Any]:
    info = entry.get("physicalDeviceInfo")
    # An empty object means nothing is paired.
    return {
        "physicalDeviceInfo": dict(info) if isinstance(info, Mapping) and info else None,
        "updatedAt": entry.get("updatedAt"),
    }


def normalize_device_state(payload: Any) -> DeviceState:
    data = _require_object(payload, "device state")
    return _validate(
        DeviceState,
        {
            "microphone": _device_pair(_channel_entry(data, AudioChannel.MICROPHONE)),
            "speaker": _device_pair(_channel_entry(data, AudioChannel.SPEAKER)),
            "raw": dict(data),
        },
        "device state",
    )


def _normalize_toggles(model: type[TModel], payload: Any, label: str) -> TModel:
    data = _require_object(payload, label)
    return _validate(
        model,
        {
            "microphone": _channel_entry(data, AudioChannel.MICROPHONE),
            "speaker": _channel_entry(data, AudioChannel.SPEAKER),
            "raw": dict(data),
        },
        label,
    )


def normalize_nc_state(payload: Any) -> NoiseCancellationState:
    return _normalize_toggles(NoiseCancellationState, payload, "NC state")


def normalize_ac_state(payload: Any) -> AccentConversionState:
    return _normalize_toggles(AccentConversionState, payload, "AC state")


def normalize_in_call_state(payload: Any) -> InCallState:
    if not isinstance(payload, Mapping):
        raise KrispInvalidMessageError("Invalid in-call state: must be an object")
    return _validate(InCallState, dict(payload), "in-call state")
