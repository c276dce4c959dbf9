"""Structural interfaces the session/cache layer consumes.

The state layer never talks HTTP itself.  It is handed something that
satisfies :class:`BackendClient`; :class:`pycrescent.client.CrescentClient`
is the production implementation and tests pass lightweight doubles.

Provider calls report failures as data, ``(value, error)``, mirroring the
hosted service's client contracts.  Only the state layer turns those into
raised exceptions.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from pycrescent.exceptions import AuthError, QueryError
from pycrescent.models.changes import DeleteChange, InsertChange, UpdateChange
from pycrescent.models.user import User
from pycrescent.session import Session
from pycrescent.state.events import SubscriptionStatus

T = TypeVar("T")

Change = InsertChange | UpdateChange | DeleteChange
ChangeCallback = Callable[[Change], None]
StatusCallback = Callable[[SubscriptionStatus, Exception | None], None]


@dataclass(frozen=True)
class AuthResult(Generic[T]):
    """Outcome of an authentication call: exactly one side is set."""

    data: T | None = None
    error: AuthError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None


@dataclass(frozen=True)
class QueryResult:
    """Outcome of a table scan."""

    rows: list[dict[str, Any]] | None = None
    error: QueryError | None = None


class AuthProvider(Protocol):
    async def get_session(self) -> Session | None: ...

    async def get_user(self) -> AuthResult[User]: ...

    async def sign_in_with_password(self, identifier: str, secret: str) -> AuthResult[Session]: ...

    async def sign_out(self) -> AuthError | None: ...


class SelectQuery(Protocol):
    def order_by(self, column: str, *, ascending: bool = True) -> SelectQuery: ...

    async def execute(self) -> QueryResult: ...


class ChangeSubscription(Protocol):
    @property
    def status(self) -> SubscriptionStatus: ...

    @property
    def table(self) -> str: ...

    async def close(self) -> None: ...


class BackendClient(Protocol):
    @property
    def auth(self) -> AuthProvider: ...

    def select(self, table: str) -> SelectQuery: ...

    async def subscribe(
        self,
        table: str,
        events: Sequence[str],
        *,
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> ChangeSubscription: ...

    async def unsubscribe(self, subscription: ChangeSubscription) -> None: ...
