"""Client configuration for pykrisp."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pykrisp._constants import (
    CLIENT_VERSION,
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_PORTS,
    DEFAULT_REQUEST_TIMEOUT,
    RECONNECT_BACKOFF_MULTIPLIER,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DELAY,
    RECOVERY_POLL_ATTEMPTS,
    RECOVERY_POLL_INTERVAL,
)
from pykrisp.exceptions import KrispConfigError
from pykrisp.state.domains import SubscriptionTopic


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclasses.dataclass(frozen=True)
class KrispConfig:
    """Client configuration.

    Parameters
    ----------
    host : str
        Address of the local monitoring service.
    ports : tuple of int
        Candidate ports, tried strictly in order on every connect cycle.
    connection_timeout : float
        Seconds allowed for a single port to accept the connection.
    request_timeout : float
        Seconds to wait for a get-state, subscribe, unsubscribe or ping
        call to settle.
    auto_reconnect : bool
        Reconnect with exponential backoff after a failed connect cycle
        or an unexpected connection loss. When disabled, a failed manual
        ``connect()`` raises instead.
    max_reconnect_attempts : int or None
        Maximum number of automatic reconnect cycles. ``None`` retries
        forever.
    reconnect_delay : float
        Delay in seconds before the first reconnect cycle.
    reconnect_backoff_multiplier : float
        Factor applied to the delay after each failed cycle.
    reconnect_max_delay : float
        Upper bound for the reconnect delay in seconds.
    auto_subscribe : bool
        Subscribe to ``auto_subscribe_topics`` after a manual connect and
        resubscribe after a reconnection.
    auto_subscribe_topics : tuple of SubscriptionTopic
        Topics used for auto-subscription.
    recovery_poll_attempts : int
        How many times the post-reconnect recovery checks that the
        socket has settled before giving up.
    recovery_poll_interval : float
        Seconds between those checks.
    client_version : str
        Version sent in the connection query string.
    """

    host: str = DEFAULT_HOST
    ports: tuple[int, ...] = DEFAULT_PORTS
    connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    auto_reconnect: bool = True
    max_reconnect_attempts: int | None = None
    reconnect_delay: float = RECONNECT_BASE_DELAY
    reconnect_backoff_multiplier: float = RECONNECT_BACKOFF_MULTIPLIER
    reconnect_max_delay: float = RECONNECT_MAX_DELAY
    auto_subscribe: bool = True
    auto_subscribe_topics: tuple[SubscriptionTopic, ...] = tuple(SubscriptionTopic)
    recovery_poll_attempts: int = RECOVERY_POLL_ATTEMPTS
    recovery_poll_interval: float = RECOVERY_POLL_INTERVAL
    client_version: str = CLIENT_VERSION

    def __post_init__(self) -> None:
        if not self.ports:
            raise KrispConfigError("ports must not be empty")
        object.__setattr__(self, "ports", tuple(int(port) for port in self.ports))
        for name in ("connection_timeout", "request_timeout", "reconnect_delay", "reconnect_max_delay"):
            if getattr(self, name) <= 0:
                raise KrispConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.reconnect_backoff_multiplier < 1:
            raise KrispConfigError(
                f"reconnect_backoff_multiplier must be >= 1, got {self.reconnect_backoff_multiplier}"
            )
        if self.max_reconnect_attempts is not None and self.max_reconnect_attempts < 0:
            raise KrispConfigError(f"max_reconnect_attempts must be >= 0, got {self.max_reconnect_attempts}")
        if self.recovery_poll_attempts < 0 or self.recovery_poll_interval < 0:
            raise KrispConfigError("recovery polling settings must not be negative")
        try:
            topics = tuple(SubscriptionTopic(topic) for topic in self.auto_subscribe_topics)
        except ValueError as exc:
            raise KrispConfigError(f"unknown subscription topic: {exc}") from exc
        object.__setattr__(self, "auto_subscribe_topics", topics)

    @property
    def endpoints(self) -> list[tuple[str, int]]:
        """``(host, port)`` candidates in connection order."""
        return [(self.host, port) for port in self.ports]

    @classmethod
    def from_env(cls, **overrides: Any) -> KrispConfig:
        """Create configuration from environment variables.

        Reads optional ``KRISP_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        KrispConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        host = env.get("KRISP_HOST")
        if host is not None:
            config_kwargs["host"] = host.strip()

        ports_env = env.get("KRISP_PORTS")
        if ports_env is not None:
            try:
                config_kwargs["ports"] = tuple(int(port) for port in _env_list(ports_env))
            except ValueError as exc:
                raise KrispConfigError(f"KRISP_PORTS must be a comma separated list of ints: {ports_env!r}") from exc

        for env_key, field_name in (
            ("KRISP_CONNECTION_TIMEOUT", "connection_timeout"),
            ("KRISP_REQUEST_TIMEOUT", "request_timeout"),
        ):
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = float(val)

        config_kwargs["auto_reconnect"] = _env_bool(env.get("KRISP_AUTO_RECONNECT"), True)
        config_kwargs["auto_subscribe"] = _env_bool(env.get("KRISP_AUTO_SUBSCRIBE"), True)

        attempts_env = env.get("KRISP_MAX_RECONNECT_ATTEMPTS")
        if attempts_env is not None and attempts_env.strip():
            config_kwargs["max_reconnect_attempts"] = int(attempts_env)

        topics_env = env.get("KRISP_AUTO_SUBSCRIBE_TOPICS")
        if topics_env is not None:
            config_kwargs["auto_subscribe_topics"] = tuple(_env_list(topics_env))

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
