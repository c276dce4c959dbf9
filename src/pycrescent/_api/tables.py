"""Table API (ordered scans).

Endpoint:
  - GET /rest/v1/<table>?select=*&order=<column>.<asc|desc>
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from pycrescent._constants import REST_PATH
from pycrescent._transport import Transport
from pycrescent.backend import QueryResult
from pycrescent.exceptions import CrescentApiError, CrescentTransportError, QueryError

TokenGetter = Callable[[], Awaitable[str | None]]


class TableSelect:
    """Immutable scan builder for one table.

    Each :meth:`order_by` returns a new builder, so a base query can be
    shared and refined without surprises.
    """

    def __init__(
        self,
        transport: Transport,
        table: str,
        *,
        token_getter: TokenGetter | None = None,
        columns: str = "*",
        order: tuple[str, ...] = (),
    ) -> None:
        self._transport = transport
        self._table = table
        self._token_getter = token_getter
        self._columns = columns
        self._order = order

    @property
    def path(self) -> str:
        return f"{REST_PATH}/{self._table}"

    def params(self) -> dict[str, str]:
        params = {"select": self._columns}
        if self._order:
            params["order"] = ",".join(self._order)
        return params

    def order_by(self, column: str, *, ascending: bool = True) -> TableSelect:
        direction = "asc" if ascending else "desc"
        return TableSelect(
            self._transport,
            self._table,
            token_getter=self._token_getter,
            columns=self._columns,
            order=(*self._order, f"{column}.{direction}"),
        )

    async def execute(self) -> QueryResult:
        token = await self._token_getter() if self._token_getter is not None else None
        try:
            payload = await self._transport.request("GET", self.path, params=self.params(), access_token=token)
        except CrescentApiError as exc:
            return QueryResult(error=QueryError(str(exc), code=exc.code, endpoint=self.path))
        except CrescentTransportError as exc:
            return QueryResult(error=QueryError(str(exc), code="network", endpoint=self.path))

        if payload is None:
            return QueryResult(rows=[])
        if not isinstance(payload, list):
            return QueryResult(error=QueryError(f"Scan of {self._table} did not return a list", endpoint=self.path))
        return QueryResult(rows=[row for row in payload if isinstance(row, dict)])
