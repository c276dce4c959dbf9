"""Custom exception hierarchy for pycrescent."""

from __future__ import annotations


class CrescentError(Exception):
    """Base exception for all pycrescent errors."""


class CrescentConfigError(CrescentError):
    """Invalid or missing configuration."""


class CrescentTransportError(CrescentError):
    """HTTP-level failure (network, unexpected status, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class CrescentApiError(CrescentError):
    """The backend answered with an error body (application-level error)."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)

    @property
    def message(self) -> str:
        """The provider's message, without the exception class decoration."""
        return str(self)


class AuthError(CrescentApiError):
    """Credentials or session rejected by the authentication provider.

    Surfaced to the caller and never retried automatically.
    """


class QueryError(CrescentApiError):
    """A table scan was rejected by the remote store."""


class FetchError(QueryError):
    """A full-table fetch failed; the cached rows were left untouched."""


class NotInitializedError(CrescentError):
    """An operation needed a backend client but none is bound."""


class ChannelError(CrescentError):
    """A realtime subscription channel failed or was dropped by the server."""

    def __init__(self, message: str, *, topic: str = "") -> None:
        self.topic = topic
        super().__init__(message)


class UnknownChangeError(CrescentError):
    """A change payload carried a variant other than INSERT, UPDATE or DELETE."""

    def __init__(self, message: str, *, change_type: str = "") -> None:
        self.change_type = change_type
        super().__init__(message)
