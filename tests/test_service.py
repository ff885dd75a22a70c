import asyncio

import pytest

from roslink import Service, ServiceCallError, ServiceTimeoutError


def response(request, result=True, values=None, **overrides):
    message = {
        "op": "service_response",
        "service": request["service"],
        "id": request["id"],
        "result": result,
        "values": values,
    }
    message.update(overrides)
    return message


TOPICS = {"topics": ["/rosout"], "types": ["rosgraph_msgs/Log"]}


@pytest.mark.asyncio
async def test_call_rosapi_topics(ros, connector, settle):

    successes, failures = [], []
    service = Service(ros, "/rosapi/topics", "rosapi/Topics")
    future = service.call({}, successes.append, failures.append)
    await settle()

    request = connector.socket.messages[0]
    assert request["op"] == "call_service"
    assert request["service"] == "/rosapi/topics"
    assert request["args"] == {}
    assert request["id"].startswith("call_service:/rosapi/topics:")

    connector.socket.feed(response(request, values=TOPICS))
    await settle()

    assert successes == [TOPICS]
    assert failures == []
    assert await future == TOPICS
    assert ros.router.pending_call_count == 0


@pytest.mark.asyncio
async def test_failure_goes_to_failed_callback(ros, connector, settle):

    successes, failures = [], []
    future = Service(ros, "/fails").call({}, successes.append, failures.append)
    await settle()

    connector.socket.feed(response(connector.socket.messages[0], result=False, values={"err": "no"}))
    await settle()

    assert failures == [{"err": "no"}]
    assert successes == []
    with pytest.raises(ServiceCallError) as excinfo:
        await future
    assert excinfo.value.values == {"err": "no"}


@pytest.mark.asyncio
async def test_failure_without_failed_callback_is_silent(ros, connector, settle):

    successes = []
    Service(ros, "/fails").call({}, successes.append)
    await settle()

    connector.socket.feed(response(connector.socket.messages[0], result=False, values={"err": "no"}))
    await settle()

    assert successes == []
    assert ros.router.pending_call_count == 0
    assert ros.is_connected


@pytest.mark.asyncio
async def test_non_matching_responses_are_ignored(ros, connector, settle):

    successes = []
    future = Service(ros, "/svc").call({}, successes.append)
    await settle()
    request = connector.socket.messages[0]

    connector.socket.feed(response(request, values={"wrong": "id"}, id="call_service:/svc:999"))
    connector.socket.feed(response(request, values={"wrong": "service"}, service="/other"))
    await settle()

    assert successes == []
    assert not future.done()

    connector.socket.feed(response(request, values={"right": True}))
    await settle()
    assert successes == [{"right": True}]


@pytest.mark.asyncio
async def test_callback_fires_at_most_once(ros, connector, settle):

    successes, failures = [], []
    Service(ros, "/svc").call({}, successes.append, failures.append)
    await settle()
    request = connector.socket.messages[0]

    connector.socket.feed(response(request, values={"n": 1}))
    connector.socket.feed(response(request, values={"n": 2}))
    connector.socket.feed(response(request, result=False, values={"n": 3}))
    await settle()

    assert successes == [{"n": 1}]
    assert failures == []


@pytest.mark.asyncio
async def test_concurrent_calls_are_correlated_by_id(ros, connector, settle):

    service = Service(ros, "/add", "example/Add")
    first = service.call({"a": 1})
    second = service.call({"a": 2})
    await settle()
    request_one, request_two = connector.socket.messages

    assert request_one["id"] != request_two["id"]
    connector.socket.feed(response(request_two, values={"sum": 2}))
    connector.socket.feed(response(request_one, values={"sum": 1}))
    await settle()

    assert await first == {"sum": 1}
    assert await second == {"sum": 2}


@pytest.mark.asyncio
async def test_non_object_request_becomes_empty(ros, connector, settle):

    Service(ros, "/svc").call([1, 2, 3])
    Service(ros, "/svc").call(None)
    await settle()

    assert [m["args"] for m in connector.socket.messages] == [{}, {}]


@pytest.mark.asyncio
async def test_unserializable_request_raises_type_error(ros, connector, settle):

    with pytest.raises(TypeError):
        Service(ros, "/svc").call({"handle": object()})

    await settle()
    assert connector.socket.sent == []
    assert ros.router.pending_call_count == 0


@pytest.mark.asyncio
async def test_call_before_open_is_queued(client, connector, settle):

    future = Service(client, "/rosapi/topics").call({})
    assert client.bridge.pending_count == 1

    await client.connect("ws://localhost:9090")
    await settle()
    connector.socket.feed(response(connector.socket.messages[0], values=TOPICS))

    assert await asyncio.wait_for(future, 1) == TOPICS
    await client.close()


@pytest.mark.asyncio
async def test_timeout_removes_pending_call(ros, connector, settle):

    successes = []
    future = Service(ros, "/slow").call({}, successes.append, timeout=0.01)

    with pytest.raises(ServiceTimeoutError):
        await future
    assert ros.router.pending_call_count == 0

    # A late answer is discarded.
    connector.socket.feed(response(connector.socket.messages[0], values={}))
    await settle()
    assert successes == []


@pytest.mark.asyncio
async def test_client_default_timeout(ros, settle):

    ros.call_timeout = 0.01
    with pytest.raises(ServiceTimeoutError):
        await Service(ros, "/slow").call({})


@pytest.mark.asyncio
async def test_no_timeout_keeps_pending_call(ros, settle):

    future = Service(ros, "/slow").call({})
    await settle()

    assert not future.done()
    assert ros.router.pending_call_count == 1


@pytest.mark.asyncio
async def test_advertised_service_answers_calls(ros, connector, settle):

    service = Service(ros, "/test/topics", "rosapi/Topics")
    service.advertise(lambda args: {"topics": ["plotte1", "plotte2"], "types": ["t1", "t2"]})
    await settle()
    assert connector.socket.messages[0] == {
        "op": "advertise_service",
        "type": "rosapi/Topics",
        "service": "/test/topics",
    }

    connector.socket.feed({"op": "call_service", "service": "/test/topics", "id": "server:1", "args": {}})
    await settle()

    assert connector.socket.messages[1] == {
        "op": "service_response",
        "id": "server:1",
        "service": "/test/topics",
        "result": True,
        "values": {"topics": ["plotte1", "plotte2"], "types": ["t1", "t2"]},
    }


@pytest.mark.asyncio
async def test_advertised_coroutine_handler_receives_args(ros, connector, settle):

    seen = []

    async def handler(args):
        seen.append(args)
        return {"sum": args["a"] + args["b"]}

    Service(ros, "/add", "example/Add").advertise(handler)
    connector.socket.feed({"op": "call_service", "service": "/add", "id": "c1", "args": {"a": 2, "b": 3}})
    await settle()

    assert seen == [{"a": 2, "b": 3}]
    assert connector.socket.messages[-1]["values"] == {"sum": 5}


@pytest.mark.asyncio
async def test_failing_handler_reports_failure(ros, connector, settle):

    def handler(args):
        raise ValueError("cannot serve")

    Service(ros, "/broken", "example/Broken").advertise(handler)
    connector.socket.feed({"op": "call_service", "service": "/broken", "id": "c1", "args": {}})
    await settle()

    reply = connector.socket.messages[-1]
    assert reply["result"] is False
    assert reply["values"] == {"error": "cannot serve"}


@pytest.mark.asyncio
async def test_unadvertise_service(ros, connector, settle):

    service = Service(ros, "/svc", "example/Svc")
    service.unadvertise()
    await settle()
    assert connector.socket.sent == []

    service.advertise(lambda args: {})
    service.unadvertise()
    service.unadvertise()
    await settle()
    assert connector.socket.ops() == ["advertise_service", "unadvertise_service"]

    # Calls for a withdrawn service are not answered.
    connector.socket.feed({"op": "call_service", "service": "/svc", "id": "c1", "args": {}})
    await settle()
    assert len(connector.socket.sent) == 2


@pytest.mark.asyncio
async def test_advertise_without_type_omits_it(ros, connector, settle):

    service = Service(ros, "/untyped")
    service.advertise(lambda args: {})
    await settle()

    assert service.is_advertised
    assert connector.socket.messages == [{"op": "advertise_service", "service": "/untyped"}]
