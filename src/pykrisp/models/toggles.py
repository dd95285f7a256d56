"""Per-channel on/off feature states (noise cancellation, accent conversion)."""

from __future__ import annotations

from pydantic import Field

from pykrisp.models._base import KrispBaseModel, KrispFlag, KrispTimestamp, utcnow
from pykrisp.models.devices import AudioChannel


class ChannelToggle(KrispBaseModel):
    """Whether a feature is enabled on one channel."""

    enabled: KrispFlag = False
    updated_at: KrispTimestamp = Field(default_factory=utcnow)


class _ChannelToggleState(KrispBaseModel):
    microphone: ChannelToggle = Field(default_factory=ChannelToggle)
    speaker: ChannelToggle = Field(default_factory=ChannelToggle)

    def channel(self, channel: AudioChannel) -> ChannelToggle:
        return self.microphone if channel == AudioChannel.MICROPHONE else self.speaker

    def same_values(self, other: _ChannelToggleState) -> bool:
        """Compare ``enabled`` per channel, ignoring timestamps."""
        return (
            self.microphone.enabled == other.microphone.enabled
            and self.speaker.enabled == other.speaker.enabled
        )


class NoiseCancellationState(_ChannelToggleState):
    """Noise cancellation on/off per channel."""


class AccentConversionState(_ChannelToggleState):
    """Accent conversion on/off per channel."""
