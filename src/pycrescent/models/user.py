"""Authenticated user model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from pycrescent.models._base import CrescentBaseModel, coerce_id


class User(CrescentBaseModel):
    """Identity record returned by the authentication provider."""

    id: str
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    aud: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_sign_in_at: datetime | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    app_metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return coerce_id(value)

    @field_validator("email", "phone", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def registration_number(self) -> str | None:
        """The registration number encoded in the login email, if numeric."""
        if not self.email or "@" not in self.email:
            return None
        local = self.email.split("@", 1)[0]
        return local if local.isdigit() else None
