"""Wire names and events for the four tracked state domains."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pykrisp.state.events import ClientEvent


class SubscriptionTopic(StrEnum):
    """Named subscription channel for one domain's push updates."""

    DEVICES = "devices"
    NC = "nc"
    AC = "ac"
    IN_CALL = "in_call"


class StateDomain(StrEnum):
    DEVICES = "devices"
    NOISE_CANCELLATION = "noise_cancellation"
    ACCENT_CONVERSION = "accent_conversion"
    IN_CALL = "in_call"


@dataclass(frozen=True, slots=True)
class DomainDescriptor:
    """How a domain is requested, pushed, announced and subscribed to."""

    domain: StateDomain
    push_event: str
    request_event: str
    change_event: ClientEvent
    topic: SubscriptionTopic
    label: str


DOMAINS: dict[StateDomain, DomainDescriptor] = {
    StateDomain.DEVICES: DomainDescriptor(
        domain=StateDomain.DEVICES,
        push_event="device_state",
        request_event="get_device_state",
        change_event=ClientEvent.DEVICES_CHANGED,
        topic=SubscriptionTopic.DEVICES,
        label="device state",
    ),
    StateDomain.NOISE_CANCELLATION: DomainDescriptor(
        domain=StateDomain.NOISE_CANCELLATION,
        push_event="nc_state",
        request_event="get_nc_state",
        change_event=ClientEvent.NOISE_CANCELLATION_CHANGED,
        topic=SubscriptionTopic.NC,
        label="NC state",
    ),
    StateDomain.ACCENT_CONVERSION: DomainDescriptor(
        domain=StateDomain.ACCENT_CONVERSION,
        push_event="ac_state",
        request_event="get_ac_state",
        change_event=ClientEvent.ACCENT_CONVERSION_CHANGED,
        topic=SubscriptionTopic.AC,
        label="AC state",
    ),
    StateDomain.IN_CALL: DomainDescriptor(
        domain=StateDomain.IN_CALL,
        push_event="in_call_state",
        request_event="get_in_call_state",
        change_event=ClientEvent.IN_CALL_CHANGED,
        topic=SubscriptionTopic.IN_CALL,
        label="in-call state",
    ),
}

DOMAIN_BY_PUSH_EVENT: dict[str, StateDomain] = {desc.push_event: desc.domain for desc in DOMAINS.values()}

ERROR_EVENT = "error"
PONG_EVENT = "pong"

#: Every server → client event the supervisor forwards.
SERVER_EVENTS: tuple[str, ...] = (*DOMAIN_BY_PUSH_EVENT, ERROR_EVENT, PONG_EVENT)
