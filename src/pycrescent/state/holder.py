"""Per-context holder of authentication state and the live events cache.

One :class:`SessionHolder` is created per request or client session and
passed explicitly to whatever needs it; there is no global instance.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from typing import Any, NamedTuple

from pycrescent._api.auth import build_login_identifier
from pycrescent._constants import INSTITUTION_DOMAIN
from pycrescent.backend import BackendClient
from pycrescent.config import CrescentConfig
from pycrescent.exceptions import AuthError, NotInitializedError
from pycrescent.models.event import EventRow
from pycrescent.models.user import User
from pycrescent.session import Session
from pycrescent.state.cache import LiveTableCache, Rows
from pycrescent.state.events import SubscriptionStatus
from pycrescent.state.observable import Observable

_logger = logging.getLogger(__name__)


class _Unset(enum.Enum):
    UNSET = enum.auto()


UNSET = _Unset.UNSET
"""Marker for "leave this field alone" in :meth:`SessionHolder.update_state`."""


class ValidatedSession(NamedTuple):
    """A session together with the user the provider vouched for.

    Both are ``None`` unless the provider re-validated the session.
    """

    session: Session | None
    user: User | None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.user is not None


_ANONYMOUS = ValidatedSession(None, None)


class SessionHolder:
    """Owns the session, the user, the backend client and the events cache.

    Fields change only through :meth:`update_state`, :meth:`log_in`,
    :meth:`refresh`, :meth:`log_out` and :meth:`fetch_all`.  Each exposed
    field can be observed; listeners receive the new value.

    Usage::

        async with CrescentClient(config) as client:
            holder = await SessionHolder.create(client=client, config=config)
            await holder.log_in("20231234", password)
            await holder.fetch_all()
    """

    def __init__(
        self,
        cache: LiveTableCache | None = None,
        *,
        config: CrescentConfig | None = None,
    ) -> None:
        self._config = config
        if cache is None:
            if config is not None:
                cache = LiveTableCache(
                    config.events_table,
                    order_column=config.events_order_column,
                    stale_fetch_policy=config.stale_fetch_policy,
                )
            else:
                cache = LiveTableCache()
        self._cache = cache
        self._session: Observable[Session | None] = Observable(None, name="session")
        self._user: Observable[User | None] = Observable(None, name="user")
        self._client: Observable[BackendClient | None] = Observable(None, name="client")
        # Access token held when the current subscription was opened.
        self._joined_token: str | None = None

    @classmethod
    async def create(
        cls,
        *,
        client: BackendClient | None = None,
        session: Session | None = None,
        user: User | None = None,
        events: Iterable[EventRow] | None = None,
        cache: LiveTableCache | None = None,
        config: CrescentConfig | None = None,
    ) -> SessionHolder:
        """Build a holder and bind its initial state (opening the subscription)."""
        holder = cls(cache, config=config)
        await holder.update_state(
            session=session,
            user=user,
            client=client,
            events=UNSET if events is None else events,
        )
        return holder

    async def __aenter__(self) -> SessionHolder:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Snapshots and observers
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session | None:
        return self._session.get()

    @property
    def user(self) -> User | None:
        return self._user.get()

    @property
    def client(self) -> BackendClient | None:
        return self._client.get()

    @property
    def events(self) -> Rows:
        return self._cache.events

    @property
    def subscription_status(self) -> SubscriptionStatus | None:
        return self._cache.status

    @property
    def cache(self) -> LiveTableCache:
        return self._cache

    def observe_session(self, listener: Callable[[Session | None], None]) -> Callable[[], None]:
        return self._session.subscribe(listener)

    def observe_user(self, listener: Callable[[User | None], None]) -> Callable[[], None]:
        return self._user.subscribe(listener)

    def observe_client(self, listener: Callable[[BackendClient | None], None]) -> Callable[[], None]:
        return self._client.subscribe(listener)

    def observe_events(self, listener: Callable[[Rows], None]) -> Callable[[], None]:
        return self._cache.observe(listener)

    def observe_subscription_status(self, listener: Callable[[SubscriptionStatus | None], None]) -> Callable[[], None]:
        return self._cache.observe_status(listener)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def update_state(
        self,
        *,
        session: Session | None | _Unset = UNSET,
        user: User | None | _Unset = UNSET,
        client: BackendClient | None | _Unset = UNSET,
        events: Iterable[EventRow] | _Unset = UNSET,
    ) -> None:
        """Assign the given fields and leave the others alone.

        Passing ``client`` (even the same one, or ``None``) always closes
        the current subscription; a non-null client then gets a fresh one.
        A session whose access token differs from the one the live
        subscription was opened with also reopens it, so the channel
        carries the new token.  Never raises.
        """
        new_session = self._session.get() if isinstance(session, _Unset) else session
        new_user = self._user.get() if isinstance(user, _Unset) else user
        if new_session is None and new_user is not None:
            _logger.debug("Dropping user without a session")
            new_user = None
        # Clear the user before the session so observers never see a user
        # without a session.
        if new_session is None:
            self._user.set(new_user)
            self._session.set(new_session)
        else:
            self._session.set(new_session)
            self._user.set(new_user)

        if not isinstance(events, _Unset):
            self._cache.replace(events)

        new_token = new_session.access_token if new_session is not None else None
        if not isinstance(client, _Unset):
            self._client.set(client)
            await self._rebind(client, new_token)
        elif self._cache.subscription is not None and new_token != self._joined_token:
            _logger.debug("Session token changed; rejoining %s", self._cache.table)
            await self._rebind(self._client.get(), new_token)

    async def _rebind(self, client: BackendClient | None, token: str | None) -> None:
        await self._cache.close_subscription()
        self._joined_token = token
        if client is not None:
            await self._cache.open_subscription(client, self._cache.table)

    def _require_client(self) -> BackendClient:
        client = self._client.get()
        if client is None:
            raise NotInitializedError("Backend client not initialized")
        return client

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def validate_session(self) -> ValidatedSession:
        """Return the held client's session only if the provider vouches for it.

        A session object alone is not proof of identity: it is re-checked
        with the provider, and any failure (no session, rejected token,
        provider error) yields ``(None, None)``.  Does not mutate state.
        """
        client = self._client.get()
        if client is None:
            return _ANONYMOUS
        try:
            session = await client.auth.get_session()
        except Exception:
            _logger.debug("Session lookup failed", exc_info=True)
            return _ANONYMOUS
        if session is None:
            return _ANONYMOUS

        try:
            result = await client.auth.get_user()
        except Exception:
            _logger.debug("Session validation failed", exc_info=True)
            return _ANONYMOUS
        if result.error is not None or result.data is None:
            _logger.debug("Session validation rejected: %s", result.error)
            return _ANONYMOUS
        return ValidatedSession(session, result.data)

    async def refresh(self) -> ValidatedSession:
        """Re-validate with the provider and store the outcome."""
        validated = await self.validate_session()
        await self.update_state(session=validated.session, user=validated.user)
        return validated

    async def log_in(self, registration_number: str, password: str) -> ValidatedSession:
        """Sign in with a registration number and password.

        Raises
        ------
        NotInitializedError
            No backend client is held.
        ValueError
            The registration number is not numeric.
        AuthError
            The provider rejected the credentials or the new session could
            not be validated.
        """
        client = self._require_client()
        domain = self._config.institution_domain if self._config is not None else INSTITUTION_DOMAIN
        identifier = build_login_identifier(registration_number, domain)

        result = await client.auth.sign_in_with_password(identifier, password)
        if result.error is not None:
            raise AuthError(
                f"Login failed: {result.error}",
                code=result.error.code,
                endpoint=result.error.endpoint,
            ) from result.error
        if result.data is None:
            raise AuthError("Unable to create session")

        validated = await self.validate_session()
        if not validated.is_authenticated:
            raise AuthError("Session could not be validated after sign-in")
        await self.update_state(session=validated.session, user=validated.user)
        _logger.info("Logged in as %s", validated.user.id if validated.user else "?")
        return validated

    async def log_out(self) -> None:
        """Sign out with the provider and reset session, user and rows.

        Raises
        ------
        NotInitializedError
            No backend client is held; nothing is changed.
        AuthError
            The provider refused the sign-out; nothing is changed.
        """
        client = self._require_client()
        error = await client.auth.sign_out()
        if error is not None:
            raise AuthError(f"Logout failed: {error}", code=error.code, endpoint=error.endpoint) from error

        await self._cache.close_subscription()
        await self.update_state(session=None, user=None, events=())
        _logger.info("Logged out; session state cleared")

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def fetch_all(self) -> Rows:
        """Replace the cached events with a fresh ordered scan.

        Raises :class:`NotInitializedError` without a client and
        :class:`FetchError` when the scan fails.
        """
        return await self._cache.fetch_all(self._client.get())

    async def aclose(self) -> None:
        """Release the subscription; the held state is kept."""
        await self._cache.close_subscription()
