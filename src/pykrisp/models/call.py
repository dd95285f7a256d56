"""Call status."""

from __future__ import annotations

from pydantic import Field

from pykrisp.models._base import KrispBaseModel, KrispFlag, KrispTimestamp, utcnow


class InCallState(KrispBaseModel):
    """Whether the desktop service currently detects an active call."""

    in_call: KrispFlag = False
    updated_at: KrispTimestamp = Field(default_factory=utcnow)
