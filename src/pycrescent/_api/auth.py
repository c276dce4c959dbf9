"""Authentication service endpoints.

Endpoints:
  - POST /auth/v1/token?grant_type=password
  - POST /auth/v1/token?grant_type=refresh_token
  - GET  /auth/v1/user
  - POST /auth/v1/logout

Every call reports failure as an :class:`AuthError` value rather than
raising; callers in the state layer decide whether to surface it.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from pycrescent._constants import AUTH_LOGOUT_PATH, AUTH_TOKEN_PATH, AUTH_USER_PATH
from pycrescent._transport import Transport
from pycrescent.backend import AuthResult
from pycrescent.exceptions import AuthError, CrescentApiError, CrescentTransportError
from pycrescent.models.user import User
from pycrescent.session import Session

_logger = logging.getLogger(__name__)


def build_login_identifier(registration_number: str, domain: str) -> str:
    """Combine a numeric registration number with the institutional domain.

    Raises :class:`ValueError` if the registration number is empty or
    not purely numeric.
    """
    rrn = (registration_number or "").strip()
    if not rrn:
        raise ValueError("registration number is required")
    if not rrn.isdigit():
        raise ValueError(f"registration number must be numeric, got {rrn!r}")
    suffix = domain.strip().lstrip("@")
    if not suffix:
        raise ValueError("institution domain is required")
    return f"{rrn}@{suffix}"


def _as_auth_error(exc: CrescentApiError | CrescentTransportError, endpoint: str) -> AuthError:
    if isinstance(exc, CrescentApiError):
        return AuthError(str(exc), code=exc.code, endpoint=exc.endpoint or endpoint)
    return AuthError(str(exc), code="network", endpoint=endpoint)


def parse_session_response(payload: Any, endpoint: str = AUTH_TOKEN_PATH) -> Session:
    """Parse a token-grant response into a :class:`Session`.

    Raises
    ------
    AuthError
        The response carried no access token or could not be parsed.
    """
    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise AuthError("Token response missing access_token", endpoint=endpoint)
    try:
        return Session.model_validate(payload)
    except ValidationError as exc:
        raise AuthError(f"Malformed token response: {exc.error_count()} errors", endpoint=endpoint) from exc


def parse_user_response(payload: Any, endpoint: str = AUTH_USER_PATH) -> User:
    """Parse the ``/user`` response.

    Raises
    ------
    AuthError
        The response carried no user id or could not be parsed.
    """
    if not isinstance(payload, dict) or not payload.get("id"):
        raise AuthError("User response missing id", endpoint=endpoint)
    try:
        return User.model_validate(payload)
    except ValidationError as exc:
        raise AuthError(f"Malformed user response: {exc.error_count()} errors", endpoint=endpoint) from exc


async def sign_in_with_password(transport: Transport, identifier: str, password: str) -> AuthResult[Session]:
    """Exchange an identifier and password for a session."""
    try:
        payload = await transport.request(
            "POST",
            AUTH_TOKEN_PATH,
            params={"grant_type": "password"},
            body={"email": identifier, "password": password},
        )
        session = parse_session_response(payload)
    except AuthError as exc:
        return AuthResult(error=exc)
    except (CrescentApiError, CrescentTransportError) as exc:
        return AuthResult(error=_as_auth_error(exc, AUTH_TOKEN_PATH))
    _logger.debug("Password sign-in succeeded for %s", identifier)
    return AuthResult(data=session)


async def refresh_session(transport: Transport, refresh_token: str) -> AuthResult[Session]:
    """Exchange a refresh token for a new session."""
    if not refresh_token:
        return AuthResult(error=AuthError("No refresh token available", endpoint=AUTH_TOKEN_PATH))
    try:
        payload = await transport.request(
            "POST",
            AUTH_TOKEN_PATH,
            params={"grant_type": "refresh_token"},
            body={"refresh_token": refresh_token},
        )
        session = parse_session_response(payload)
    except AuthError as exc:
        return AuthResult(error=exc)
    except (CrescentApiError, CrescentTransportError) as exc:
        return AuthResult(error=_as_auth_error(exc, AUTH_TOKEN_PATH))
    return AuthResult(data=session)


async def fetch_user(transport: Transport, session: Session) -> AuthResult[User]:
    """Ask the provider who owns *session*; this validates the token server-side."""
    try:
        payload = await transport.request("GET", AUTH_USER_PATH, access_token=session.access_token)
        user = parse_user_response(payload)
    except AuthError as exc:
        return AuthResult(error=exc)
    except (CrescentApiError, CrescentTransportError) as exc:
        return AuthResult(error=_as_auth_error(exc, AUTH_USER_PATH))
    return AuthResult(data=user)


async def sign_out(transport: Transport, session: Session) -> AuthError | None:
    """Revoke *session* on the provider."""
    try:
        await transport.request("POST", AUTH_LOGOUT_PATH, access_token=session.access_token)
    except (CrescentApiError, CrescentTransportError) as exc:
        return _as_auth_error(exc, AUTH_LOGOUT_PATH)
    return None
