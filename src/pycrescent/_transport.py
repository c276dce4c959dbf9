"""JSON-over-HTTP transport for the auth and table APIs."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pycrescent._constants import CLIENT_INFO, USER_AGENT
from pycrescent._redact import redact_for_log
from pycrescent.config import CrescentConfig
from pycrescent.exceptions import CrescentApiError, CrescentTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`RestTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
        access_token: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any: ...


def error_message(payload: Any, fallback: str) -> tuple[str, str]:
    """Extract ``(message, code)`` from an auth or table error body.

    The auth service answers with ``error_description``/``msg`` and the
    table API with ``message``; both carry some form of code.
    """
    if not isinstance(payload, Mapping):
        return fallback, ""
    message = ""
    for key in ("error_description", "msg", "message", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            message = value.strip()
            break
    code = ""
    for key in ("error_code", "code", "error"):
        value = payload.get(key)
        if value is not None and str(value).strip():
            code = str(value).strip()
            break
    return message or fallback, code


class RestTransport:
    """HTTP transport that adds project and bearer headers and decodes JSON."""

    def __init__(
        self,
        config: CrescentConfig,
        http_session: aiohttp.ClientSession,
    ) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self, access_token: str | None, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "apikey": self._config.anon_key,
            "authorization": f"Bearer {access_token or self._config.anon_key}",
            "user-agent": USER_AGENT,
            "x-client-info": CLIENT_INFO,
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
        access_token: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Returns ``None`` for empty bodies (e.g. ``204 No Content``).

        Raises
        ------
        CrescentApiError
            The service answered with a non-2xx status and a JSON error body.
        CrescentTransportError
            Network failure, or a response that is not valid JSON.
        """
        url = f"{self._config.url}{path}"
        request_headers = self._headers(access_token, headers)
        data: str | None = None
        if body is not None:
            request_headers["content-type"] = "application/json"
            data = json.dumps(body, separators=(",", ":"))

        _logger.debug("%s %s", method, url)
        if self._config.api_trace_enabled:
            _logger.debug(
                "Request trace path=%s params=%s body=%s",
                path,
                redact_for_log(dict(params or {})),
                redact_for_log(dict(body or {})),
            )

        try:
            async with self._http.request(
                method,
                url,
                params=dict(params) if params else None,
                data=data,
                headers=request_headers,
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientError as exc:
            raise CrescentTransportError(
                f"Request to {path} failed: {exc}",
                endpoint=path,
            ) from exc
        except TimeoutError as exc:
            raise CrescentTransportError(
                f"Request to {path} timed out",
                endpoint=path,
            ) from exc

        payload: Any = None
        if text.strip():
            try:
                payload = json.loads(text)
            except json.JSONDecodeError as exc:
                raise CrescentTransportError(
                    f"Invalid JSON from {path} (HTTP {status}): {text[:200]}",
                    status_code=status,
                    endpoint=path,
                ) from exc

        if self._config.api_trace_enabled:
            _logger.debug("Response trace path=%s status=%s body=%s", path, status, redact_for_log(payload))

        if status >= 400:
            message, code = error_message(payload, f"HTTP {status} from {path}")
            if payload is None:
                raise CrescentTransportError(message, status_code=status, endpoint=path)
            raise CrescentApiError(message, code=code or str(status), endpoint=path)

        return payload
