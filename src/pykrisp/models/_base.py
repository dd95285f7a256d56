"""Base model and timestamp type for Krisp monitoring payloads.

Every snapshot model inherits from :class:`KrispBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase wire keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that drops ``None`` values so
  the field default is used instead.
* A ``raw`` dict that captures the original payload.

Timestamps use :data:`KrispTimestamp`, which coerces epoch seconds or
milliseconds to a UTC ``datetime`` and falls back to *now* for
missing, zero or unparseable values.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime:
    """Convert an epoch timestamp (seconds **or** milliseconds) to a UTC datetime.

    Returns the current time when the value is falsy or not numeric.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, bool) or not value:
        return utcnow()
    try:
        ts = float(value)
    except (TypeError, ValueError):
        return utcnow()
    if ts <= 0:
        return utcnow()
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    try:
        return datetime.fromtimestamp(ts, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return utcnow()


def truthy(value: Any) -> bool:
    """Coerce a wire flag using plain truthiness (missing means ``False``)."""
    return bool(value)


def lenient_text(value: Any) -> str | None:
    """Keep strings, stringify numbers, and map anything else to ``None``."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def lenient_flag(value: Any) -> bool | None:
    """Keep booleans and 0/1, and map anything else to ``None``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    return None


KrispTimestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces epoch ints (seconds or ms) to UTC datetimes."""

KrispFlag = Annotated[bool, BeforeValidator(truthy)]

# Descriptive fields never reject a snapshot: unexpected types become None.
LenientText = Annotated[str | None, BeforeValidator(lenient_text)]
LenientFlag = Annotated[bool | None, BeforeValidator(lenient_flag)]
RequiredText = Annotated[str, BeforeValidator(lambda value: lenient_text(value) or "")]


class KrispBaseModel(BaseModel):
    """Base for Krisp monitoring payload models.

    Handles:
    * camelCase → snake_case via ``alias_generator=to_camel``
    * ``None`` values → dropped so the field default is used instead
    * Stashes the original payload in ``raw``
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[Any, Any] = Field(default_factory=dict)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Drop ``None`` values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        cleaned = {key: value for key, value in values.items() if value is not None}
        # Keep a caller-supplied raw= when constructing with kwargs.
        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned

