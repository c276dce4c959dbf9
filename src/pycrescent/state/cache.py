"""Live in-memory mirror of one remote table.

This is the only component allowed to mutate cached rows.  Rows arrive
either wholesale (:meth:`LiveTableCache.fetch_all`) or one change at a
time from the realtime channel (:meth:`LiveTableCache.apply_change`).
"""

from __future__ import annotations

import asyncio
import bisect
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from pycrescent._constants import ALL_CHANGES, DEFAULT_ORDER_COLUMN, EVENTS_TABLE
from pycrescent.backend import BackendClient, ChangeSubscription
from pycrescent.exceptions import ChannelError, FetchError, NotInitializedError, UnknownChangeError
from pycrescent.models.changes import DeleteChange, InsertChange, UpdateChange, parse_change
from pycrescent.models.event import EventRow
from pycrescent.state.events import StaleFetchPolicy, SubscriptionStatus
from pycrescent.state.observable import Observable
from pycrescent.state.policy import should_apply_fetch

_logger = logging.getLogger(__name__)

Rows = tuple[EventRow, ...]


def _dedupe_by_id(rows: Iterable[EventRow]) -> list[EventRow]:
    """Keep one row per id (the last one seen) at its first position."""
    by_id: dict[str, EventRow] = {}
    for row in rows:
        by_id[row.id] = row
    return list(by_id.values())


class LiveTableCache:
    """Ordered, id-unique collection of rows kept current by a change feed.

    Holds at most one open subscription.  Changes are applied in the order
    they are delivered, and re-delivery is harmless: an insert or update
    for a known id replaces that row, a delete for an unknown id does
    nothing.
    """

    def __init__(
        self,
        table: str = EVENTS_TABLE,
        *,
        order_column: str = DEFAULT_ORDER_COLUMN,
        stale_fetch_policy: StaleFetchPolicy = StaleFetchPolicy.APPLY,
    ) -> None:
        self._table = table
        self._order_column = order_column
        self._stale_fetch_policy = StaleFetchPolicy(stale_fetch_policy)
        self._rows: Observable[Rows] = Observable((), name=f"{table} rows")
        self._status: Observable[SubscriptionStatus | None] = Observable(None, name=f"{table} subscription")
        self._subscription: ChangeSubscription | None = None
        self._client: BackendClient | None = None
        # Bumped whenever the channel binding changes; callbacks from an
        # older binding compare against it and are dropped.
        self._generation = 0
        self._releases: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Snapshots and observers
    # ------------------------------------------------------------------

    @property
    def table(self) -> str:
        return self._table

    @property
    def events(self) -> Rows:
        """Current rows, ordered by the order column ascending."""
        return self._rows.get()

    @property
    def status(self) -> SubscriptionStatus | None:
        """Subscription status, or ``None`` when no channel is held."""
        return self._status.get()

    @property
    def subscription(self) -> ChangeSubscription | None:
        return self._subscription

    @property
    def bound_client(self) -> BackendClient | None:
        return self._client

    @property
    def stale_fetch_policy(self) -> StaleFetchPolicy:
        return self._stale_fetch_policy

    def observe(self, listener: Callable[[Rows], None]) -> Callable[[], None]:
        return self._rows.subscribe(listener)

    def observe_status(self, listener: Callable[[SubscriptionStatus | None], None]) -> Callable[[], None]:
        return self._status.subscribe(listener)

    def find(self, event_id: str) -> EventRow | None:
        """Look up a cached row by id."""
        wanted = str(event_id).strip()
        if not wanted:
            return None
        for row in self._rows.get():
            if row.id == wanted:
                return row
        return None

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def _sort_key(self, row: EventRow) -> tuple[Any, ...]:
        value = getattr(row, self._order_column, None)
        if value is None:
            return (1, "", row.id)
        return (0, value, row.id)

    def apply_change(self, change: InsertChange | UpdateChange | DeleteChange) -> bool:
        """Merge one change by id; return whether the rows changed."""
        current = self._rows.get()
        if isinstance(change, DeleteChange):
            rows = [row for row in current if row.id != change.id]
        elif isinstance(change, (InsertChange, UpdateChange)):
            rows = [row for row in current if row.id != change.row.id]
            bisect.insort(rows, change.row, key=self._sort_key)
        else:
            _logger.warning("Rejecting unrecognised change notification: %r", change)
            return False
        return self._rows.set(tuple(rows))

    def apply_payload(self, payload: Mapping[str, Any]) -> bool:
        """Parse a raw change payload and merge it.

        Unrecognised or malformed payloads are logged and dropped.
        """
        try:
            change = parse_change(payload)
        except UnknownChangeError as exc:
            _logger.warning("Dropping change for %s: %s", self._table, exc)
            return False
        except ValidationError as exc:
            _logger.warning("Dropping malformed change for %s: %s errors", self._table, exc.error_count())
            return False
        return self.apply_change(change)

    def _ordered(self, rows: Iterable[EventRow]) -> Rows:
        return tuple(sorted(_dedupe_by_id(rows), key=self._sort_key))

    def replace(self, rows: Iterable[EventRow]) -> Rows:
        """Replace every cached row, re-sorting them by the order column."""
        snapshot = self._ordered(rows)
        self._rows.set(snapshot)
        return snapshot

    def clear(self) -> None:
        self._rows.set(())

    # ------------------------------------------------------------------
    # Remote scan
    # ------------------------------------------------------------------

    async def fetch_all(self, client: BackendClient | None) -> Rows:
        """Replace the cache with a full ordered scan of the table.

        Raises
        ------
        NotInitializedError
            No client was given.
        FetchError
            The scan failed or returned malformed rows; the cache is left
            as it was.
        """
        if client is None:
            raise NotInitializedError("Backend client not initialized")

        bound_at_issue = self._client
        query = client.select(self._table).order_by(self._order_column, ascending=True)
        result = await query.execute()
        if result.error is not None:
            raise FetchError(
                f"Failed to fetch {self._table}: {result.error}",
                code=result.error.code,
                endpoint=result.error.endpoint,
            ) from result.error

        try:
            fetched = [EventRow.model_validate(row) for row in result.rows or []]
        except ValidationError as exc:
            raise FetchError(f"Failed to fetch {self._table}: {exc.error_count()} malformed rows") from exc
        # Server collation can differ from ours; merges rely on our order.
        rows = self._ordered(fetched)

        if not should_apply_fetch(
            policy=self._stale_fetch_policy,
            bound_at_issue=bound_at_issue,
            bound_now=self._client,
        ):
            _logger.debug("Discarding stale fetch of %s: client changed while in flight", self._table)
            return rows

        self._rows.set(rows)
        return rows

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    async def open_subscription(self, client: BackendClient | None, table_name: str | None = None) -> None:
        """Close any current channel and open a new one on *table_name*.

        Never raises: a missing client is logged and ignored, and a channel
        that fails to open leaves the cache without a subscription.
        """
        if client is None:
            _logger.error("Cannot open subscription: backend client not initialized")
            return

        await self.close_subscription()
        table = table_name or self._table
        self._generation += 1
        generation = self._generation
        self._client = client

        def on_change(change: InsertChange | UpdateChange | DeleteChange) -> None:
            if generation != self._generation:
                return
            self.apply_change(change)

        def on_status(status: SubscriptionStatus, error: Exception | None) -> None:
            if generation != self._generation:
                return
            self._on_status(status, error)

        self._status.set(SubscriptionStatus.CONNECTING)
        _logger.debug("Opening subscription to %s", table)
        try:
            subscription = await client.subscribe(table, (ALL_CHANGES,), on_change=on_change, on_status=on_status)
        except Exception as exc:
            if generation == self._generation:
                _logger.error("Subscription to %s failed: %s", table, exc)
                self._status.set(None)
            return

        if generation != self._generation:
            # Closed or replaced while the join was in flight.
            await self._release(client, subscription)
            return

        self._subscription = subscription
        if subscription.status in (SubscriptionStatus.ERROR, SubscriptionStatus.CLOSED):
            self._on_status(subscription.status, None)
        else:
            self._status.set(SubscriptionStatus.SUBSCRIBED)

    def _on_status(self, status: SubscriptionStatus, error: Exception | None) -> None:
        if status not in (SubscriptionStatus.ERROR, SubscriptionStatus.CLOSED):
            self._status.set(status)
            return

        self._status.set(status)
        if status == SubscriptionStatus.ERROR:
            failure = error if isinstance(error, ChannelError) else ChannelError(str(error or "channel error"))
            _logger.error("Subscription to %s dropped: %s", self._table, failure)
        else:
            _logger.debug("Subscription to %s closed by server", self._table)

        subscription = self._subscription
        if subscription is None:
            # Still joining; open_subscription settles the state.
            return
        self._subscription = None
        self._generation += 1
        client = self._client
        if client is not None:
            task = asyncio.get_running_loop().create_task(self._release(client, subscription))
            self._releases.add(task)
            task.add_done_callback(self._releases.discard)
        self._status.set(None)

    async def _release(self, client: BackendClient, subscription: ChangeSubscription) -> None:
        try:
            await client.unsubscribe(subscription)
        except Exception:
            _logger.debug("Releasing subscription to %s failed", self._table, exc_info=True)

    async def close_subscription(self) -> None:
        """Release the current channel, if any.  Idempotent."""
        subscription = self._subscription
        client = self._client
        self._subscription = None
        self._client = None
        self._generation += 1
        if subscription is not None and client is not None:
            _logger.debug("Closing subscription to %s", subscription.table)
            await self._release(client, subscription)
        if self._releases:
            await asyncio.gather(*self._releases)
        self._status.set(None)
