"""Session token bundle issued by the authentication provider."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pycrescent._constants import SESSION_EXPIRY_MARGIN
from pycrescent.models.user import User


class Session(BaseModel):
    """Opaque token bundle with an expiry.

    The tokens are never decoded or trusted on their own: a session is
    only proof of identity once the provider has re-validated it (see
    :meth:`pycrescent.state.holder.SessionHolder.validate_session`).

    Parameters
    ----------
    access_token : str
        Bearer token sent with authenticated requests.
    refresh_token : str
        Token exchanged for a new session once this one expires.
    token_type : str
        Always ``"bearer"`` in practice.
    expires_in : int
        Lifetime in seconds as reported by the provider.
    expires_at : float
        Wall-clock expiry (epoch seconds).  Derived from ``expires_in``
        when the provider omits it.
    user : User or None
        Identity the provider attached to the token response, if any.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        validate_default=True,
        str_strip_whitespace=True,
    )

    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_in: int = 3600
    expires_at: float = 0.0
    user: User | None = None
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)

    @model_validator(mode="before")
    @classmethod
    def _derive_expiry(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        merged.setdefault("raw", dict(values))
        if not merged.get("expires_at"):
            expires_in = merged.get("expires_in") or 3600
            merged["expires_at"] = time.time() + float(expires_in)
        return merged

    def expires_in_seconds(self) -> float:
        """Seconds until expiry (negative once expired)."""
        return self.expires_at - time.time()

    @property
    def is_expired(self) -> bool:
        """Whether the session is expired or about to be."""
        return self.expires_in_seconds() <= SESSION_EXPIRY_MARGIN

    @property
    def authorization(self) -> str:
        return f"Bearer {self.access_token}"
