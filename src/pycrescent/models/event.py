"""Event table row model."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, field_validator

from pycrescent.models._base import CrescentBaseModel, coerce_id


class EventRow(CrescentBaseModel):
    """One row of the ``events`` table.

    Only ``id`` and ``name`` are interpreted; every other column is kept
    as an extra attribute so schema additions on the admin side flow
    through untouched.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    """Unique row id."""

    name: str
    """Display name; the cache orders rows by it."""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return coerce_id(value)

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        if not value:
            raise ValueError("id must be non-empty")
        return value

    @property
    def attributes(self) -> dict[str, Any]:
        """Columns other than ``id`` and ``name``."""
        return dict(self.model_extra or {})

    def sort_key(self) -> tuple[str, str]:
        return (self.name, self.id)
