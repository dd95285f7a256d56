"""Audio device pairing state."""

from __future__ import annotations

from enum import IntEnum

from pydantic import ConfigDict, Field

from pykrisp.models._base import (
    KrispBaseModel,
    KrispTimestamp,
    LenientFlag,
    LenientText,
    RequiredText,
    utcnow,
)


class AudioChannel(IntEnum):
    """Channel identifier used as the key of per-channel wire payloads."""

    MICROPHONE = 0
    SPEAKER = 1


class DeviceInfo(KrispBaseModel):
    """Physical audio device currently paired with a channel.

    Unknown keys are kept so that any change in the reported device
    object counts as a change.
    """

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    id: RequiredText = ""
    name: RequiredText = ""
    description: LenientText = None
    manufacturer: LenientText = None
    model_id: LenientText = None
    bus: LenientText = None
    form_factor: LenientText = None
    is_muted: LenientFlag = None
    is_default_multimedia: LenientFlag = None
    is_default_communication: LenientFlag = None
    is_krisp: LenientFlag = None
    is_hid_headset: LenientFlag = Field(default=None, alias="isHIDHeadset")
    is_disabled: LenientFlag = None
    is_available: LenientFlag = None


class DevicePairState(KrispBaseModel):
    """Device paired with one channel; ``None`` when nothing is present."""

    physical_device_info: DeviceInfo | None = None
    updated_at: KrispTimestamp = Field(default_factory=utcnow)


class DeviceState(KrispBaseModel):
    """Microphone and speaker pairing snapshot."""

    microphone: DevicePairState = Field(default_factory=DevicePairState)
    speaker: DevicePairState = Field(default_factory=DevicePairState)

    def channel(self, channel: AudioChannel) -> DevicePairState:
        return self.microphone if channel == AudioChannel.MICROPHONE else self.speaker
