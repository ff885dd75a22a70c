import asyncio
import json
import logging

import pytest

from roslink import ConnectionState, Publish, Rosbridge, TransportError
from roslink.bridge import ABNORMAL_CLOSURE, CloseEvent, OpenEvent, normalize_url

from conftest import URL


def test_normalize_url():

    assert normalize_url("http://robot:9090") == "ws://robot:9090"
    assert normalize_url("https://robot/bridge") == "wss://robot/bridge"
    assert normalize_url("ws://robot:9090") == "ws://robot:9090"
    assert normalize_url("wss://robot") == "wss://robot"


@pytest.mark.asyncio
async def test_connect_opens_and_emits(client, connector, settle):

    events = []
    client.on_open.subscribe(events.append)

    assert client.state is ConnectionState.DISCONNECTED
    await client.connect("http://localhost:9090", transport_options={"ping_interval": 5})
    await settle()

    assert client.is_connected
    assert connector.calls == [{"url": "ws://localhost:9090", "ping_interval": 5}]
    assert events == [OpenEvent("ws://localhost:9090")]

    await client.close()


@pytest.mark.asyncio
async def test_sends_before_open_are_flushed_in_order(client, connector, settle):

    connector.gate = asyncio.Event()
    await client.connect(URL)
    await settle()
    assert client.state is ConnectionState.CONNECTING

    for n in range(5):
        client.send_request(Publish(topic="/t", msg={"n": n}))
    assert client.bridge.pending_count == 5
    # Nothing can have been written: the transport does not exist yet.
    assert connector.sockets == []

    connector.gate.set()
    await settle()

    socket = connector.socket
    assert [m["msg"]["n"] for m in socket.messages] == [0, 1, 2, 3, 4]
    assert client.bridge.pending_count == 0

    # Later sends go after the flushed ones and nothing is repeated.
    client.send_request(Publish(topic="/t", msg={"n": 5}))
    await client.drain()
    assert [m["msg"]["n"] for m in socket.messages] == [0, 1, 2, 3, 4, 5]

    await client.close()


@pytest.mark.asyncio
async def test_sends_before_connect_are_queued(client, connector, settle):

    client.send_request(Publish(topic="/early", msg={}))
    assert client.bridge.pending_count == 1

    await client.connect(URL)
    await settle()

    assert connector.socket.ops() == ["publish"]
    await client.close()


@pytest.mark.asyncio
async def test_queue_is_flushed_before_open_listeners_run(client, connector, settle):

    def on_open(event):
        client.send_request(Publish(topic="/from_listener", msg={}))

    client.on_open.subscribe(on_open)
    client.send_request(Publish(topic="/queued", msg={}))

    await client.connect(URL)
    await settle()

    assert [m["topic"] for m in connector.socket.messages] == ["/queued", "/from_listener"]
    await client.close()


@pytest.mark.asyncio
async def test_connect_while_open_is_a_no_op(ros, connector):

    await ros.connect("ws://elsewhere:9090", transport_options={"ping_interval": 1})

    assert len(connector.calls) == 1
    assert ros.bridge.url == URL
    assert ros.url == URL
    assert ros.transport_options == {}


@pytest.mark.asyncio
async def test_unsupported_transport_does_not_connect(client, connector, settle):

    await client.connect(URL, transport_library="workerSocket")
    await settle()

    assert connector.calls == []
    assert client.state is ConnectionState.DISCONNECTED
    assert client.url is None


@pytest.mark.asyncio
async def test_connection_failure_is_reported_not_raised(client, connector, settle):

    errors = []
    closes = []
    client.on_error.subscribe(errors.append)
    client.on_close.subscribe(closes.append)
    connector.fail_with = ConnectionRefusedError("refused")

    await client.connect(URL)
    await settle()

    assert client.state is ConnectionState.CLOSED
    assert len(errors) == 1
    assert isinstance(errors[0], TransportError)
    assert isinstance(errors[0].cause, ConnectionRefusedError)
    assert closes[0].code == ABNORMAL_CLOSURE
    assert closes[0].requested is False


@pytest.mark.asyncio
async def test_close_emits_close_event(ros, connector, settle):

    closes = []
    ros.on_close.subscribe(closes.append)

    await ros.close()

    assert closes == [CloseEvent(1000, "Client closing", True)]
    assert ros.state is ConnectionState.CLOSED


@pytest.mark.asyncio
async def test_server_drop_then_manual_reconnect(ros, connector, settle):

    closes = []
    ros.on_close.subscribe(closes.append)

    connector.socket.drop(1006)
    await settle()
    assert closes[0].code == 1006
    assert not ros.is_connected

    # Held back until the next connection opens.
    ros.send_request(Publish(topic="/t", msg={"after": "drop"}))
    await ros.connect()
    await settle()

    assert len(connector.sockets) == 2
    assert connector.socket.messages[0]["msg"] == {"after": "drop"}


@pytest.mark.asyncio
async def test_invalid_frames_are_dropped(ros, connector, settle):

    received = []
    ros.router.add_topic_listener("/t", received.append)

    connector.socket.feed("not json")
    connector.socket.feed({"op": "teleport"})
    connector.socket.feed(json.dumps({"op": "publish", "topic": "/t", "msg": {"ok": True}}).encode("utf-8"))
    await settle()

    assert received == [{"ok": True}]
    assert ros.is_connected


@pytest.mark.asyncio
async def test_unmodelled_operations_are_ignored_quietly(ros, connector, settle, caplog):

    with caplog.at_level(logging.DEBUG, logger="roslink"):
        connector.socket.feed({"op": "fragment", "id": "f1", "data": "{", "num": 0, "total": 2})
        connector.socket.feed({"op": "png", "data": "iVBORw0KGgo="})
        connector.socket.feed({"op": "teleport"})
        await settle()

    errors = [r.getMessage() for r in caplog.records if r.levelno >= logging.ERROR]
    assert len(errors) == 1
    assert "Invalid message" in errors[0]
    assert "Ignoring incoming 'fragment' message." in caplog.text
    assert "Ignoring incoming 'png' message." in caplog.text
    assert ros.is_connected


@pytest.mark.asyncio
async def test_close_during_handshake(client, connector, settle):

    connector.gate = asyncio.Event()
    await client.connect(URL)
    await settle()

    await client.close()

    assert client.state is ConnectionState.CLOSED
    assert connector.sockets == []


def test_clients_do_not_share_ids():

    first = Rosbridge()
    second = Rosbridge()
    assert first.ids is not second.ids
