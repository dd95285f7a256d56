"""pykrisp - Async Python client for the Krisp Desktop local monitoring API."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pykrisp")
except PackageNotFoundError:
    __version__ = "0+local"
from pykrisp.client import KrispClient
from pykrisp.config import KrispConfig
from pykrisp.exceptions import (
    KrispConfigError,
    KrispConnectionRefusedError,
    KrispConnectionTimeoutError,
    KrispError,
    KrispInvalidMessageError,
    KrispServiceUnreachableError,
    KrispUnknownError,
)
from pykrisp.models import (
    AccentConversionState,
    AudioChannel,
    ChannelToggle,
    ConnectionStatus,
    DeviceInfo,
    DevicePairState,
    DeviceState,
    ErrorCode,
    ErrorInfo,
    InCallState,
    NoiseCancellationState,
)
from pykrisp.state.cache import StateCache
from pykrisp.state.domains import StateDomain, SubscriptionTopic
from pykrisp.state.events import ClientEvent

__all__ = [
    "__version__",
    "AccentConversionState",
    "AudioChannel",
    "ChannelToggle",
    "ClientEvent",
    "ConnectionStatus",
    "DeviceInfo",
    "DevicePairState",
    "DeviceState",
    "ErrorCode",
    "ErrorInfo",
    "InCallState",
    "KrispClient",
    "KrispConfig",
    "KrispConfigError",
    "KrispConnectionRefusedError",
    "KrispConnectionTimeoutError",
    "KrispError",
    "KrispInvalidMessageError",
    "KrispServiceUnreachableError",
    "KrispUnknownError",
    "NoiseCancellationState",
    "StateCache",
    "StateDomain",
    "SubscriptionTopic",
]
