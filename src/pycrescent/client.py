"""High-level async client for the Crescent event registration backend."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import aiohttp

from pycrescent._api import auth as _auth_api
from pycrescent._api.tables import TableSelect
from pycrescent._constants import ALL_CHANGES
from pycrescent._realtime import RealtimeChannel
from pycrescent._transport import RestTransport
from pycrescent.backend import AuthResult, ChangeCallback, ChangeSubscription, StatusCallback
from pycrescent.config import CrescentConfig
from pycrescent.exceptions import AuthError, CrescentError
from pycrescent.models.user import User
from pycrescent.session import Session

_logger = logging.getLogger(__name__)


class CrescentAuth:
    """Authentication provider bound to one client.

    Holds the current session locally.  :meth:`get_session` only reads
    that local copy (refreshing it if expired); it never proves identity.
    :meth:`get_user` asks the server and is the validating call.
    """

    def __init__(self, client: CrescentClient, session: Session | None = None) -> None:
        self._client = client
        self._session = session

    @property
    def current_session(self) -> Session | None:
        """The locally held session, without refresh."""
        return self._session

    def set_session(self, session: Session | None) -> None:
        """Restore a session from storage (e.g. request cookies)."""
        self._session = session

    async def get_session(self) -> Session | None:
        session = self._session
        if session is None or not session.is_expired:
            return session
        _logger.debug("Held session expired; refreshing")
        result = await _auth_api.refresh_session(self._client._require_transport(), session.refresh_token)
        if result.error is not None or result.data is None:
            _logger.debug("Session refresh failed: %s", result.error)
            self._session = None
            return None
        self._session = result.data
        return self._session

    async def get_user(self) -> AuthResult[User]:
        session = await self.get_session()
        if session is None:
            return AuthResult(error=AuthError("Auth session missing", code="session_missing"))
        return await _auth_api.fetch_user(self._client._require_transport(), session)

    async def sign_in_with_password(self, identifier: str, secret: str) -> AuthResult[Session]:
        result = await _auth_api.sign_in_with_password(self._client._require_transport(), identifier, secret)
        if result.data is not None:
            self._session = result.data
        return result

    async def sign_out(self) -> AuthError | None:
        session = self._session
        if session is None:
            return None
        error = await _auth_api.sign_out(self._client._require_transport(), session)
        if error is None:
            self._session = None
        return error

    async def access_token(self) -> str | None:
        session = await self.get_session()
        return session.access_token if session is not None else None


class CrescentClient:
    """Async client for the Crescent backend.

    Usage::

        async with CrescentClient(config) as client:
            result = await client.auth.sign_in_with_password(identifier, password)
            rows = await client.select("events").order_by("name").execute()
    """

    def __init__(
        self,
        config: CrescentConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        auth_session: Session | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: RestTransport | None = None
        self._auth = CrescentAuth(self, auth_session)
        self._channels: list[RealtimeChannel] = []

    @property
    def config(self) -> CrescentConfig:
        return self._config

    @property
    def auth(self) -> CrescentAuth:
        return self._auth

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CrescentClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = RestTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for channel in list(self._channels):
            await self.unsubscribe(channel)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> RestTransport:
        if self._transport is None:
            raise CrescentError("Client not initialized. Use 'async with CrescentClient(...) as client:'")
        return self._transport

    def _require_http(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._transport is None:
            raise CrescentError("Client not initialized. Use 'async with CrescentClient(...) as client:'")
        return self._http_session

    # ------------------------------------------------------------------
    # Table store
    # ------------------------------------------------------------------

    def select(self, table: str) -> TableSelect:
        """Start an ordered scan of *table* (all columns)."""
        return TableSelect(self._require_transport(), table, token_getter=self._auth.access_token)

    async def subscribe(
        self,
        table: str,
        events: Sequence[str] = (ALL_CHANGES,),
        *,
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> ChangeSubscription:
        """Open a realtime channel delivering row changes on *table*.

        Raises
        ------
        ChannelError
            The channel could not be joined.
        """
        channel = RealtimeChannel(
            config=self._config,
            http_session=self._require_http(),
            table=table,
            events=events,
            access_token=await self._auth.access_token(),
            on_change=on_change,
            on_status=on_status,
            logger=_logger,
        )
        await channel.start()
        self._channels.append(channel)
        return channel

    async def unsubscribe(self, subscription: ChangeSubscription) -> None:
        """Close *subscription* and forget it."""
        if subscription in self._channels:
            self._channels.remove(subscription)  # type: ignore[arg-type]
        await subscription.close()
