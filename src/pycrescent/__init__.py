"""pycrescent - Async Python client and live session cache for the Crescent event registration backend."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pycrescent")
except PackageNotFoundError:
    __version__ = "0+local"
from pycrescent.backend import AuthResult, BackendClient, ChangeSubscription, QueryResult
from pycrescent.client import CrescentAuth, CrescentClient
from pycrescent.config import CrescentConfig
from pycrescent.exceptions import (
    AuthError,
    ChannelError,
    CrescentApiError,
    CrescentConfigError,
    CrescentError,
    CrescentTransportError,
    FetchError,
    NotInitializedError,
    QueryError,
    UnknownChangeError,
)
from pycrescent.models import (
    ChangeNotification,
    DeleteChange,
    EventRow,
    InsertChange,
    UpdateChange,
    User,
    parse_change,
)
from pycrescent.session import Session
from pycrescent.state.cache import LiveTableCache
from pycrescent.state.events import ChangeKind, StaleFetchPolicy, SubscriptionStatus
from pycrescent.state.holder import UNSET, SessionHolder, ValidatedSession

__all__ = [
    "__version__",
    "AuthError",
    "AuthResult",
    "BackendClient",
    "ChangeKind",
    "ChangeNotification",
    "ChangeSubscription",
    "ChannelError",
    "CrescentApiError",
    "CrescentAuth",
    "CrescentClient",
    "CrescentConfig",
    "CrescentConfigError",
    "CrescentError",
    "CrescentTransportError",
    "DeleteChange",
    "EventRow",
    "FetchError",
    "InsertChange",
    "LiveTableCache",
    "NotInitializedError",
    "QueryError",
    "QueryResult",
    "Session",
    "SessionHolder",
    "StaleFetchPolicy",
    "SubscriptionStatus",
    "UNSET",
    "UnknownChangeError",
    "UpdateChange",
    "User",
    "ValidatedSession",
    "parse_change",
]
