from __future__ import annotations

import json

import pytest

from pycrescent._realtime import (
    RealtimeChannel,
    build_join_message,
    channel_topic,
    decode_message,
    extract_change_payload,
)
from pycrescent.config import CrescentConfig
from pycrescent.exceptions import ChannelError
from pycrescent.models.changes import DeleteChange, InsertChange
from pycrescent.state.events import SubscriptionStatus

TOPIC = "realtime:public:events"


def _config() -> CrescentConfig:
    return CrescentConfig(url="https://project.example.co", anon_key="anon-key")


def _frame(event: str, payload: dict, *, topic: str = TOPIC, ref: str | None = None) -> str:
    return json.dumps({"topic": topic, "event": event, "payload": payload, "ref": ref})


class _Recorder:
    def __init__(self) -> None:
        self.changes: list[object] = []
        self.statuses: list[tuple[SubscriptionStatus, Exception | None]] = []

    def on_change(self, change: object) -> None:
        self.changes.append(change)

    def on_status(self, status: SubscriptionStatus, error: Exception | None) -> None:
        self.statuses.append((status, error))


def _subscribed_channel(recorder: _Recorder) -> RealtimeChannel:
    channel = RealtimeChannel(
        config=_config(),
        http_session=None,  # type: ignore[arg-type]
        table="events",
        on_change=recorder.on_change,
        on_status=recorder.on_status,
    )
    channel._status = SubscriptionStatus.SUBSCRIBED  # noqa: SLF001
    return channel


def test_channel_topic_and_realtime_url() -> None:
    assert channel_topic("public", "events") == TOPIC
    assert _config().realtime_url == "wss://project.example.co"


def test_decode_message() -> None:
    message = decode_message(_frame("phx_reply", {"status": "ok"}, ref="1"))

    assert message.topic == TOPIC
    assert message.event == "phx_reply"
    assert message.payload == {"status": "ok"}
    assert message.ref == "1"


@pytest.mark.parametrize("text", ["[]", '{"event": "x"}', "not json"])
def test_decode_message_rejects_garbage(text: str) -> None:
    with pytest.raises(ValueError):
        decode_message(text)


def test_join_message_requests_all_changes_on_table() -> None:
    frame = build_join_message(TOPIC, schema="public", table="events", events=["*"], access_token="jwt", ref="1")

    assert frame["event"] == "phx_join"
    assert frame["ref"] == frame["join_ref"] == "1"
    assert frame["payload"]["config"]["postgres_changes"] == [{"event": "*", "schema": "public", "table": "events"}]
    assert frame["payload"]["access_token"] == "jwt"


def test_join_message_without_token_omits_it() -> None:
    frame = build_join_message(TOPIC, schema="public", table="events", events=[], access_token=None, ref="3")

    assert "access_token" not in frame["payload"]
    assert frame["payload"]["config"]["postgres_changes"][0]["event"] == "*"


def test_extract_change_payload_current_and_legacy_shapes() -> None:
    data = {"type": "INSERT", "record": {"id": "e1", "name": "Spring Fest"}}
    current = decode_message(_frame("postgres_changes", {"data": data, "ids": [1]}))
    legacy = decode_message(_frame("INSERT", data))
    other = decode_message(_frame("presence_state", {}))

    assert extract_change_payload(current) == data
    assert extract_change_payload(legacy) == data
    assert extract_change_payload(other) is None


def test_changes_are_delivered_in_order() -> None:
    recorder = _Recorder()
    channel = _subscribed_channel(recorder)

    channel._handle_text(  # noqa: SLF001
        _frame("postgres_changes", {"data": {"type": "INSERT", "record": {"id": "e1", "name": "Spring Fest"}}})
    )
    channel._handle_text(  # noqa: SLF001
        _frame("postgres_changes", {"data": {"type": "DELETE", "old_record": {"id": "e1"}}})
    )

    assert [type(change) for change in recorder.changes] == [InsertChange, DeleteChange]


def test_frames_for_other_topics_are_ignored() -> None:
    recorder = _Recorder()
    channel = _subscribed_channel(recorder)

    channel._handle_text(  # noqa: SLF001
        _frame(
            "postgres_changes",
            {"data": {"type": "INSERT", "record": {"id": "e1", "name": "x"}}},
            topic="realtime:public:courses",
        )
    )

    assert recorder.changes == []


def test_unknown_and_malformed_changes_are_dropped(caplog: pytest.LogCaptureFixture) -> None:
    recorder = _Recorder()
    channel = _subscribed_channel(recorder)

    channel._handle_text(_frame("postgres_changes", {"data": {"type": "TRUNCATE"}}))  # noqa: SLF001
    channel._handle_text(_frame("postgres_changes", {"data": {"type": "INSERT", "record": {"id": "e1"}}}))  # noqa: SLF001
    channel._handle_text("garbage")  # noqa: SLF001

    assert recorder.changes == []
    assert "TRUNCATE" in caplog.text
    assert "malformed" in caplog.text


def test_phx_error_moves_channel_to_error() -> None:
    recorder = _Recorder()
    channel = _subscribed_channel(recorder)

    channel._handle_text(_frame("phx_error", {}))  # noqa: SLF001

    assert channel.status == SubscriptionStatus.ERROR
    status, error = recorder.statuses[-1]
    assert status == SubscriptionStatus.ERROR
    assert isinstance(error, ChannelError)
    assert error.topic == TOPIC


def test_system_error_moves_channel_to_error() -> None:
    recorder = _Recorder()
    channel = _subscribed_channel(recorder)

    channel._handle_text(  # noqa: SLF001
        _frame("system", {"status": "error", "message": "Unable to subscribe to changes", "extension": "postgres_changes"})
    )

    assert channel.status == SubscriptionStatus.ERROR


def test_system_ok_is_informational() -> None:
    recorder = _Recorder()
    channel = _subscribed_channel(recorder)

    channel._handle_text(_frame("system", {"status": "ok", "message": "Subscribed to PostgreSQL"}))  # noqa: SLF001

    assert channel.status == SubscriptionStatus.SUBSCRIBED
    assert recorder.statuses == []


def test_phx_close_moves_channel_to_closed() -> None:
    recorder = _Recorder()
    channel = _subscribed_channel(recorder)

    channel._handle_text(_frame("phx_close", {}))  # noqa: SLF001

    assert channel.status == SubscriptionStatus.CLOSED
    assert recorder.statuses == [(SubscriptionStatus.CLOSED, None)]


def test_failing_change_callback_does_not_break_channel() -> None:
    recorder = _Recorder()

    def explode(_change: object) -> None:
        raise RuntimeError("consumer bug")

    channel = RealtimeChannel(
        config=_config(),
        http_session=None,  # type: ignore[arg-type]
        table="events",
        on_change=explode,
        on_status=recorder.on_status,
    )
    channel._status = SubscriptionStatus.SUBSCRIBED  # noqa: SLF001

    channel._handle_text(  # noqa: SLF001
        _frame("postgres_changes", {"data": {"type": "INSERT", "record": {"id": "e1", "name": "x"}}})
    )

    assert channel.status == SubscriptionStatus.SUBSCRIBED


@pytest.mark.asyncio
async def test_close_without_socket_is_safe() -> None:
    recorder = _Recorder()
    channel = _subscribed_channel(recorder)

    await channel.close()
    await channel.close()

    assert channel.status == SubscriptionStatus.CLOSED


class _ResettingSocket:
    closed = False

    async def send_str(self, _data: str) -> None:
        raise ConnectionResetError("peer reset")

    async def close(self) -> None:
        self.closed = True


class _HttpSession:
    def __init__(self, ws: _ResettingSocket) -> None:
        self.ws = ws

    async def ws_connect(self, _url: str, **_kwargs: object) -> _ResettingSocket:
        return self.ws


@pytest.mark.asyncio
async def test_reset_during_join_aborts_channel() -> None:
    recorder = _Recorder()
    ws = _ResettingSocket()
    channel = RealtimeChannel(
        config=_config(),
        http_session=_HttpSession(ws),  # type: ignore[arg-type]
        table="events",
        on_change=recorder.on_change,
        on_status=recorder.on_status,
    )

    with pytest.raises(ChannelError, match="peer reset"):
        await channel.start()

    assert channel.status == SubscriptionStatus.ERROR
    assert ws.closed
