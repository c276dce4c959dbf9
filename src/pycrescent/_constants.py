"""Internal constants shared across the library."""

USER_AGENT = "pycrescent"
CLIENT_INFO = "pycrescent-python"

INSTITUTION_DOMAIN = "crescent.education"

EVENTS_TABLE = "events"
COURSES_TABLE = "courses"
USERS_TABLE = "users"

DEFAULT_SCHEMA = "public"
DEFAULT_ORDER_COLUMN = "name"

# ------------------------------------------------------------------
# Auth service (GoTrue) endpoints
# ------------------------------------------------------------------

AUTH_TOKEN_PATH = "/auth/v1/token"
AUTH_USER_PATH = "/auth/v1/user"
AUTH_LOGOUT_PATH = "/auth/v1/logout"

# Seconds before expiry at which a held session is treated as expired.
SESSION_EXPIRY_MARGIN = 10.0

# ------------------------------------------------------------------
# Table API (PostgREST)
# ------------------------------------------------------------------

REST_PATH = "/rest/v1"

# ------------------------------------------------------------------
# Realtime (Phoenix channels, v1 JSON serializer)
# ------------------------------------------------------------------

REALTIME_PATH = "/realtime/v1/websocket"
REALTIME_VSN = "1.0.0"
PHOENIX_TOPIC = "phoenix"

PHX_JOIN = "phx_join"
PHX_LEAVE = "phx_leave"
PHX_REPLY = "phx_reply"
PHX_ERROR = "phx_error"
PHX_CLOSE = "phx_close"
PHX_HEARTBEAT = "heartbeat"
POSTGRES_CHANGES = "postgres_changes"
SYSTEM_EVENT = "system"
ACCESS_TOKEN_EVENT = "access_token"

ALL_CHANGES = "*"
