"""Internal realtime channel: Phoenix v1 JSON over an aiohttp websocket."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import aiohttp
from pydantic import ValidationError

from pycrescent._constants import (
    ALL_CHANGES,
    PHOENIX_TOPIC,
    PHX_CLOSE,
    PHX_ERROR,
    PHX_HEARTBEAT,
    PHX_JOIN,
    PHX_LEAVE,
    PHX_REPLY,
    POSTGRES_CHANGES,
    REALTIME_PATH,
    REALTIME_VSN,
    SYSTEM_EVENT,
)
from pycrescent._redact import redact_for_log
from pycrescent.backend import ChangeCallback, StatusCallback
from pycrescent.config import CrescentConfig
from pycrescent.exceptions import ChannelError, UnknownChangeError
from pycrescent.models.changes import parse_change
from pycrescent.state.events import ChangeKind, SubscriptionStatus


@dataclass(frozen=True)
class PhoenixMessage:
    """One decoded frame of the Phoenix channel protocol."""

    topic: str
    event: str
    payload: dict[str, Any]
    ref: str | None = None


def channel_topic(schema: str, table: str) -> str:
    return f"realtime:{schema}:{table}"


def decode_message(text: str) -> PhoenixMessage:
    """Decode a text frame into a :class:`PhoenixMessage`.

    Raises :class:`ValueError` on anything that is not a JSON object
    carrying ``topic`` and ``event``.
    """
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("Realtime frame is not a JSON object")
    topic = parsed.get("topic")
    event = parsed.get("event")
    if not isinstance(topic, str) or not isinstance(event, str):
        raise ValueError("Realtime frame missing topic/event")
    payload = parsed.get("payload")
    ref = parsed.get("ref")
    return PhoenixMessage(
        topic=topic,
        event=event,
        payload=payload if isinstance(payload, dict) else {},
        ref=str(ref) if ref is not None else None,
    )


def build_join_message(
    topic: str,
    *,
    schema: str,
    table: str,
    events: Sequence[str],
    access_token: str | None,
    ref: str,
) -> dict[str, Any]:
    """Build the ``phx_join`` frame subscribing to row changes on *table*."""
    wanted = list(events) or [ALL_CHANGES]
    payload: dict[str, Any] = {
        "config": {
            "broadcast": {"ack": False, "self": False},
            "presence": {"key": ""},
            "postgres_changes": [{"event": event, "schema": schema, "table": table} for event in wanted],
            "private": False,
        },
    }
    if access_token:
        payload["access_token"] = access_token
    return {"topic": topic, "event": PHX_JOIN, "payload": payload, "ref": ref, "join_ref": ref}


def extract_change_payload(message: PhoenixMessage) -> dict[str, Any] | None:
    """Return the row-change body carried by *message*, if any.

    Current servers wrap it as ``postgres_changes`` → ``payload.data``;
    older ones used the change type itself as the event name.
    """
    if message.event == POSTGRES_CHANGES:
        data = message.payload.get("data")
        return data if isinstance(data, dict) else None
    if message.event.upper() in {kind.value for kind in ChangeKind}:
        return message.payload
    return None


class RealtimeChannel:
    """One subscription to row changes on a single table.

    Frames are read by a single task, so change callbacks fire in
    delivery order.  The channel never reconnects on its own: after a
    failure it reports :attr:`SubscriptionStatus.ERROR` and stays down.
    """

    def __init__(
        self,
        *,
        config: CrescentConfig,
        http_session: aiohttp.ClientSession,
        table: str,
        on_change: ChangeCallback,
        on_status: StatusCallback,
        events: Sequence[str] = (ALL_CHANGES,),
        access_token: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._table = table
        self._events = tuple(events)
        self._access_token = access_token
        self._on_change = on_change
        self._on_status = on_status
        self._logger = logger or logging.getLogger(__name__)
        self._topic = channel_topic(config.schema, table)
        self._refs = itertools.count(1)
        self._join_ref: str | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None
        self._status = SubscriptionStatus.CLOSED
        self._closing = False

    @property
    def status(self) -> SubscriptionStatus:
        return self._status

    @property
    def table(self) -> str:
        return self._table

    @property
    def topic(self) -> str:
        return self._topic

    def _next_ref(self) -> str:
        return str(next(self._refs))

    def _set_status(self, status: SubscriptionStatus, error: Exception | None = None) -> None:
        if status == self._status and error is None:
            return
        self._status = status
        self._logger.debug("Realtime channel %s status=%s", self._topic, status)
        try:
            self._on_status(status, error)
        except Exception:
            self._logger.debug("Realtime status callback failed", exc_info=True)

    async def _send(self, frame: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            raise ChannelError("Realtime socket is not open", topic=self._topic)
        await ws.send_str(json.dumps(frame, separators=(",", ":")))

    async def start(self) -> None:
        """Connect, join the channel and start delivering changes.

        Raises
        ------
        ChannelError
            The socket could not be opened or the join was refused or
            timed out.  The channel is left in ``ERROR``.
        """
        self._closing = False
        self._set_status(SubscriptionStatus.CONNECTING)
        url = f"{self._config.realtime_url}{REALTIME_PATH}"
        try:
            self._ws = await self._http.ws_connect(
                url,
                params={"apikey": self._config.anon_key, "vsn": REALTIME_VSN},
                heartbeat=None,
            )
            self._join_ref = self._next_ref()
            await self._send(
                build_join_message(
                    self._topic,
                    schema=self._config.schema,
                    table=self._table,
                    events=self._events,
                    access_token=self._access_token,
                    ref=self._join_ref,
                )
            )
            await asyncio.wait_for(self._await_join_reply(), self._config.realtime_join_timeout)
        except ChannelError as exc:
            await self._abort(exc)
            raise
        except TimeoutError as exc:
            error = ChannelError(f"Join of {self._topic} timed out", topic=self._topic)
            await self._abort(error)
            raise error from exc
        except (aiohttp.ClientError, ConnectionError) as exc:
            error = ChannelError(f"Realtime connect failed: {exc}", topic=self._topic)
            await self._abort(error)
            raise error from exc

        self._reader = asyncio.create_task(self._read_loop(), name=f"pycrescent-realtime-{self._table}")
        self._heartbeat = asyncio.create_task(self._heartbeat_loop(), name=f"pycrescent-heartbeat-{self._table}")
        self._set_status(SubscriptionStatus.SUBSCRIBED)

    async def _await_join_reply(self) -> None:
        ws = self._ws
        assert ws is not None  # noqa: S101
        async for frame in ws:
            if frame.type != aiohttp.WSMsgType.TEXT:
                break
            try:
                message = decode_message(frame.data)
            except ValueError:
                self._logger.debug("Ignoring undecodable realtime frame", exc_info=True)
                continue
            if message.topic != self._topic or message.event != PHX_REPLY or message.ref != self._join_ref:
                continue
            if message.payload.get("status") == "ok":
                return
            response = message.payload.get("response")
            reason = response.get("reason") if isinstance(response, dict) else None
            raise ChannelError(f"Join of {self._topic} refused: {reason or 'unknown reason'}", topic=self._topic)
        raise ChannelError(f"Realtime socket closed before join of {self._topic}", topic=self._topic)

    async def _heartbeat_loop(self) -> None:
        interval = self._config.realtime_heartbeat_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self._send({"topic": PHOENIX_TOPIC, "event": PHX_HEARTBEAT, "payload": {}, "ref": self._next_ref()})
            except (ChannelError, ConnectionError, aiohttp.ClientError):
                self._logger.debug("Realtime heartbeat failed", exc_info=True)
                return

    async def _read_loop(self) -> None:
        ws = self._ws
        assert ws is not None  # noqa: S101
        try:
            async for frame in ws:
                if frame.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(frame.data)
                elif frame.type == aiohttp.WSMsgType.ERROR:
                    raise ChannelError(f"Realtime socket error: {ws.exception()}", topic=self._topic)
                else:
                    break
                if self._status != SubscriptionStatus.SUBSCRIBED:
                    return
        except ChannelError as exc:
            if not self._closing:
                self._logger.error("Realtime channel %s failed: %s", self._topic, exc)
                self._set_status(SubscriptionStatus.ERROR, exc)
            return
        if not self._closing and self._status == SubscriptionStatus.SUBSCRIBED:
            error = ChannelError(f"Realtime socket for {self._topic} closed by server", topic=self._topic)
            self._logger.error("%s", error)
            self._set_status(SubscriptionStatus.ERROR, error)

    def _handle_text(self, text: str) -> None:
        try:
            message = decode_message(text)
        except ValueError:
            self._logger.debug("Ignoring undecodable realtime frame", exc_info=True)
            return
        if message.topic != self._topic:
            return

        if message.event == PHX_ERROR:
            error = ChannelError(f"Channel {self._topic} reported an error", topic=self._topic)
            self._logger.error("%s", error)
            self._set_status(SubscriptionStatus.ERROR, error)
            return
        if message.event == PHX_CLOSE:
            self._set_status(SubscriptionStatus.CLOSED)
            return
        if message.event == SYSTEM_EVENT:
            if message.payload.get("status") == "error":
                error = ChannelError(
                    f"Channel {self._topic}: {message.payload.get('message') or 'system error'}",
                    topic=self._topic,
                )
                self._logger.error("%s", error)
                self._set_status(SubscriptionStatus.ERROR, error)
            return

        body = extract_change_payload(message)
        if body is None:
            return
        try:
            change = parse_change(body)
        except UnknownChangeError as exc:
            self._logger.warning("Dropping realtime change: %s", exc)
            return
        except ValidationError:
            self._logger.warning("Dropping malformed realtime change: %s", redact_for_log(body))
            return
        try:
            self._on_change(change)
        except Exception:
            self._logger.debug("Realtime change callback failed", exc_info=True)

    async def _abort(self, error: Exception) -> None:
        self._set_status(SubscriptionStatus.ERROR, error)
        await self._teardown()

    async def _teardown(self) -> None:
        tasks = [task for task in (self._reader, self._heartbeat) if task is not None]
        self._reader = None
        self._heartbeat = None
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is not current:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            await ws.close()

    async def close(self) -> None:
        """Leave the channel and close the socket.  Safe to call repeatedly."""
        if self._closing and self._ws is None:
            return
        self._closing = True
        ws = self._ws
        if ws is not None and not ws.closed and self._join_ref is not None:
            try:
                await self._send({"topic": self._topic, "event": PHX_LEAVE, "payload": {}, "ref": self._next_ref()})
            except (ChannelError, ConnectionError, aiohttp.ClientError):
                self._logger.debug("Realtime leave failed", exc_info=True)
        await self._teardown()
        if self._status != SubscriptionStatus.ERROR:
            self._set_status(SubscriptionStatus.CLOSED)
        self._logger.debug("Realtime channel %s closed", self._topic)
