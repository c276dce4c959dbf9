"""Enumerations shared by the state layer."""

from __future__ import annotations

from enum import StrEnum


class ChangeKind(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SubscriptionStatus(StrEnum):
    """Observable lifecycle of a realtime channel.

    A cache with no channel reports ``None`` rather than a member.
    """

    CONNECTING = "CONNECTING"
    SUBSCRIBED = "SUBSCRIBED"
    CLOSED = "CLOSED"
    ERROR = "CHANNEL_ERROR"


class StaleFetchPolicy(StrEnum):
    APPLY = "apply"
    DISCARD = "discard"
