"""Client configuration for pycrescent."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pycrescent._constants import DEFAULT_ORDER_COLUMN, DEFAULT_SCHEMA, EVENTS_TABLE, INSTITUTION_DOMAIN
from pycrescent.exceptions import CrescentConfigError
from pycrescent.state.events import StaleFetchPolicy


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class CrescentConfig:
    """Client configuration.

    Parameters
    ----------
    url : str
        Project base URL, e.g. ``https://<project>.supabase.co``.
    anon_key : str
        Public (anon) api key sent as ``apikey`` with every request.
    institution_domain : str
        Domain appended to a registration number to form the login
        identifier (``<rrn>@<domain>``).
    events_table : str
        Remote table mirrored by the live cache.
    events_order_column : str
        Column the cache orders by (ascending).
    schema : str
        Database schema the realtime channel listens on.
    stale_fetch_policy : StaleFetchPolicy
        What to do with a ``fetch_all`` result that resolves after the
        bound client was replaced.  ``apply`` keeps the observed behavior
        of applying it anyway; ``discard`` drops it.
    realtime_heartbeat_interval : float
        Seconds between Phoenix heartbeats on the realtime socket.
    realtime_join_timeout : float
        Seconds to wait for the channel join reply before giving up.
    request_timeout : float
        Total timeout in seconds for each HTTP request.
    api_trace_enabled : bool
        Log redacted request/response bodies at DEBUG level.
    """

    url: str
    anon_key: str
    institution_domain: str = INSTITUTION_DOMAIN
    events_table: str = EVENTS_TABLE
    events_order_column: str = DEFAULT_ORDER_COLUMN
    schema: str = DEFAULT_SCHEMA
    stale_fetch_policy: StaleFetchPolicy = StaleFetchPolicy.APPLY
    realtime_heartbeat_interval: float = 25.0
    realtime_join_timeout: float = 10.0
    request_timeout: float = 30.0
    api_trace_enabled: bool = False

    def __post_init__(self) -> None:
        url = (self.url or "").strip().rstrip("/")
        if not url:
            raise CrescentConfigError("url is required")
        if not url.startswith(("http://", "https://")):
            raise CrescentConfigError(f"url must be http(s), got {url!r}")
        if not (self.anon_key or "").strip():
            raise CrescentConfigError("anon_key is required")
        object.__setattr__(self, "url", url)
        try:
            policy = StaleFetchPolicy(str(self.stale_fetch_policy).strip().lower())
        except ValueError as exc:
            raise CrescentConfigError(f"Unknown stale_fetch_policy: {self.stale_fetch_policy!r}") from exc
        object.__setattr__(self, "stale_fetch_policy", policy)

    @property
    def realtime_url(self) -> str:
        """Websocket URL of the realtime endpoint."""
        if self.url.startswith("https://"):
            return "wss://" + self.url[len("https://") :]
        return "ws://" + self.url[len("http://") :]

    @classmethod
    def from_env(cls, **overrides: Any) -> CrescentConfig:
        """Create configuration from environment variables.

        Reads ``CRESCENT_URL``, ``CRESCENT_ANON_KEY`` and the optional
        ``CRESCENT_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        CrescentConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "CRESCENT_URL": "url",
            "CRESCENT_ANON_KEY": "anon_key",
            "CRESCENT_INSTITUTION_DOMAIN": "institution_domain",
            "CRESCENT_EVENTS_TABLE": "events_table",
            "CRESCENT_EVENTS_ORDER_COLUMN": "events_order_column",
            "CRESCENT_SCHEMA": "schema",
            "CRESCENT_STALE_FETCH_POLICY": "stale_fetch_policy",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # Numeric fields are parsed separately
        heartbeat_env = env.get("CRESCENT_REALTIME_HEARTBEAT")
        if heartbeat_env is not None and "realtime_heartbeat_interval" not in overrides:
            config_kwargs["realtime_heartbeat_interval"] = float(heartbeat_env)

        join_env = env.get("CRESCENT_REALTIME_JOIN_TIMEOUT")
        if join_env is not None and "realtime_join_timeout" not in overrides:
            config_kwargs["realtime_join_timeout"] = float(join_env)

        timeout_env = env.get("CRESCENT_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = float(timeout_env)

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("CRESCENT_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)
        config_kwargs.setdefault("url", "")
        config_kwargs.setdefault("anon_key", "")

        return cls(**config_kwargs)
