"""Data models for Krisp monitoring payloads."""

from pykrisp.models._base import KrispBaseModel, KrispTimestamp, parse_timestamp
from pykrisp.models.call import InCallState
from pykrisp.models.connection import ConnectionStatus, ErrorCode, ErrorInfo
from pykrisp.models.devices import AudioChannel, DeviceInfo, DevicePairState, DeviceState
from pykrisp.models.toggles import AccentConversionState, ChannelToggle, NoiseCancellationState

__all__ = [
    "AccentConversionState",
    "AudioChannel",
    "ChannelToggle",
    "ConnectionStatus",
    "DeviceInfo",
    "DevicePairState",
    "DeviceState",
    "ErrorCode",
    "ErrorInfo",
    "InCallState",
    "KrispBaseModel",
    "KrispTimestamp",
    "NoiseCancellationState",
    "parse_timestamp",
]
