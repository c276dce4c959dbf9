"""Data models for backend rows, users and change notifications."""

from pycrescent.models._base import CrescentBaseModel
from pycrescent.models.changes import (
    ChangeNotification,
    DeleteChange,
    InsertChange,
    UpdateChange,
    parse_change,
)
from pycrescent.models.event import EventRow
from pycrescent.models.user import User

__all__ = [
    "ChangeNotification",
    "CrescentBaseModel",
    "DeleteChange",
    "EventRow",
    "InsertChange",
    "UpdateChange",
    "User",
    "parse_change",
]
