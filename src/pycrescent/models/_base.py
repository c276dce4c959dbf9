"""Base model for backend rows and auth payloads.

Every response model inherits from :class:`CrescentBaseModel` which
provides a frozen, name-populated pydantic model and a ``raw`` dict that
captures the original payload as received.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def coerce_id(value: Any) -> Any:
    """Row ids arrive as uuid strings or integers; normalise to ``str``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


class CrescentBaseModel(BaseModel):
    """Base for pycrescent response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        """Stash the raw payload unless the caller provided one."""
        if not isinstance(values, dict):
            return values
        if "raw" in values:
            return values
        merged = dict(values)
        merged["raw"] = dict(values)
        return merged
