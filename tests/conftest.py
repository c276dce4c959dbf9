"""In-memory doubles for the backend protocols."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from pycrescent.backend import AuthResult, QueryResult
from pycrescent.exceptions import AuthError, ChannelError, QueryError
from pycrescent.models.changes import DeleteChange, InsertChange, UpdateChange
from pycrescent.models.user import User
from pycrescent.session import Session
from pycrescent.state.events import SubscriptionStatus


class FakeAuth:
    def __init__(self) -> None:
        self.session: Session | None = None
        self.user: User | None = None
        self.user_error: AuthError | None = None
        self.sign_in_error: AuthError | None = None
        self.sign_out_error: AuthError | None = None
        self.raise_on_get_session: Exception | None = None
        self.raise_on_get_user: Exception | None = None
        self.sign_in_calls: list[tuple[str, str]] = []
        self.sign_out_calls = 0

    async def get_session(self) -> Session | None:
        if self.raise_on_get_session is not None:
            raise self.raise_on_get_session
        return self.session

    async def get_user(self) -> AuthResult[User]:
        if self.raise_on_get_user is not None:
            raise self.raise_on_get_user
        if self.user_error is not None:
            return AuthResult(error=self.user_error)
        return AuthResult(data=self.user)

    async def sign_in_with_password(self, identifier: str, secret: str) -> AuthResult[Session]:
        self.sign_in_calls.append((identifier, secret))
        if self.sign_in_error is not None:
            return AuthResult(error=self.sign_in_error)
        self.session = Session(access_token="access-after-login", refresh_token="refresh", expires_in=3600)
        return AuthResult(data=self.session)

    async def sign_out(self) -> AuthError | None:
        self.sign_out_calls += 1
        if self.sign_out_error is not None:
            return self.sign_out_error
        self.session = None
        return None


class FakeQuery:
    def __init__(self, backend: FakeBackend, table: str, order: tuple[tuple[str, bool], ...] = ()) -> None:
        self._backend = backend
        self.table = table
        self.order = order

    def order_by(self, column: str, *, ascending: bool = True) -> FakeQuery:
        return FakeQuery(self._backend, self.table, (*self.order, (column, ascending)))

    async def execute(self) -> QueryResult:
        self._backend.queries.append(self)
        if self._backend.query_gate is not None:
            await self._backend.query_gate.wait()
        if self._backend.query_error is not None:
            return QueryResult(error=self._backend.query_error)
        rows = [dict(row) for row in self._backend.rows]
        for column, ascending in reversed(self.order):
            rows.sort(key=lambda row: row.get(column), reverse=not ascending)
        return QueryResult(rows=rows)


class FakeSubscription:
    def __init__(self, backend: FakeBackend, table: str, on_change: Callable[..., None], on_status: Callable[..., None]) -> None:
        self.backend = backend
        self._table = table
        self.on_change = on_change
        self.on_status = on_status
        self._status = SubscriptionStatus.SUBSCRIBED
        self.closed = False

    @property
    def status(self) -> SubscriptionStatus:
        return self._status

    @property
    def table(self) -> str:
        return self._table

    async def close(self) -> None:
        self.closed = True
        self._status = SubscriptionStatus.CLOSED

    def emit(self, change: InsertChange | UpdateChange | DeleteChange) -> None:
        self.on_change(change)

    def fail(self, message: str = "socket dropped") -> None:
        self._status = SubscriptionStatus.ERROR
        self.on_status(SubscriptionStatus.ERROR, ChannelError(message))


class FakeBackend:
    def __init__(self, name: str = "backend") -> None:
        self.name = name
        self._auth = FakeAuth()
        self.rows: list[dict[str, Any]] = []
        self.query_error: QueryError | None = None
        self.query_gate: asyncio.Event | None = None
        self.queries: list[FakeQuery] = []
        self.subscriptions: list[FakeSubscription] = []
        self.subscribe_error: Exception | None = None
        self.log: list[tuple[str, str]] = []

    def __repr__(self) -> str:
        return f"FakeBackend({self.name!r})"

    @property
    def auth(self) -> FakeAuth:
        return self._auth

    def select(self, table: str) -> FakeQuery:
        return FakeQuery(self, table)

    async def subscribe(
        self,
        table: str,
        events: Sequence[str],
        *,
        on_change: Callable[..., None],
        on_status: Callable[..., None],
    ) -> FakeSubscription:
        on_status(SubscriptionStatus.CONNECTING, None)
        if self.subscribe_error is not None:
            on_status(SubscriptionStatus.ERROR, self.subscribe_error)
            raise self.subscribe_error
        subscription = FakeSubscription(self, table, on_change, on_status)
        self.subscriptions.append(subscription)
        self.log.append(("subscribe", self.name))
        on_status(SubscriptionStatus.SUBSCRIBED, None)
        return subscription

    async def unsubscribe(self, subscription: FakeSubscription) -> None:
        self.log.append(("unsubscribe", self.name))
        await subscription.close()

    @property
    def active(self) -> FakeSubscription | None:
        live = [sub for sub in self.subscriptions if not sub.closed]
        return live[-1] if live else None


@pytest.fixture
def make_backend() -> Callable[..., FakeBackend]:
    def _make(name: str = "backend", *, rows: list[dict[str, Any]] | None = None) -> FakeBackend:
        backend = FakeBackend(name)
        backend.rows = list(rows or [])
        return backend

    return _make


@pytest.fixture
def backend(make_backend: Callable[..., FakeBackend]) -> FakeBackend:
    return make_backend()


@pytest.fixture
def auth_session() -> Session:
    return Session(access_token="access", refresh_token="refresh", expires_in=3600)


@pytest.fixture
def student() -> User:
    return User(id="user-1", email="20231234@crescent.education", role="authenticated")
