"""Change notifications delivered by the realtime feed.

The feed's payload is loosely typed; :func:`parse_change` turns it into one
of three closed variants and rejects anything else with
:class:`~pycrescent.exceptions.UnknownChangeError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from pycrescent.exceptions import UnknownChangeError
from pycrescent.models._base import coerce_id
from pycrescent.models.event import EventRow
from pycrescent.state.events import ChangeKind


class _Change(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str | None = None
    commit_timestamp: datetime | None = None


class InsertChange(_Change):
    kind: Literal[ChangeKind.INSERT] = ChangeKind.INSERT
    row: EventRow

    @property
    def row_id(self) -> str:
        return self.row.id


class UpdateChange(_Change):
    kind: Literal[ChangeKind.UPDATE] = ChangeKind.UPDATE
    row: EventRow

    @property
    def row_id(self) -> str:
        return self.row.id


class DeleteChange(_Change):
    kind: Literal[ChangeKind.DELETE] = ChangeKind.DELETE
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return coerce_id(value)

    @property
    def row_id(self) -> str:
        return self.id


ChangeNotification = Annotated[InsertChange | UpdateChange | DeleteChange, Field(discriminator="kind")]

_CHANGE_ADAPTER: TypeAdapter[InsertChange | UpdateChange | DeleteChange] = TypeAdapter(ChangeNotification)


def _first_mapping(payload: Mapping[str, Any], *keys: str) -> dict[str, Any]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, Mapping) and value:
            return dict(value)
    return {}


def parse_change(payload: Mapping[str, Any]) -> InsertChange | UpdateChange | DeleteChange:
    """Build a typed notification from a realtime ``postgres_changes`` payload.

    Accepts both the wire shape (``type``/``record``/``old_record``) and
    the client-library shape (``eventType``/``new``/``old``).

    Raises
    ------
    UnknownChangeError
        The payload names no recognised change type.
    pydantic.ValidationError
        The row (or the deleted id) is malformed.
    """
    raw_type = payload.get("type", payload.get("eventType"))
    change_type = str(raw_type or "").strip().upper()
    try:
        kind = ChangeKind(change_type)
    except ValueError:
        raise UnknownChangeError(
            f"Unrecognised change type: {raw_type!r}",
            change_type=change_type,
        ) from None

    common: dict[str, Any] = {
        "kind": kind,
        "table": payload.get("table"),
        "commit_timestamp": payload.get("commit_timestamp"),
    }
    if kind == ChangeKind.DELETE:
        old = _first_mapping(payload, "old_record", "old")
        return _CHANGE_ADAPTER.validate_python({**common, "id": old.get("id")})

    new = _first_mapping(payload, "record", "new")
    return _CHANGE_ADAPTER.validate_python({**common, "row": new})
