"""
roslink test configuration.

The transport is replaced by an in-memory websocket double: the client is
given a `FakeConnector`, and each `connect()` produces a `FakeWebSocket`
that records what was sent and lets a test feed server messages in.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from roslink import Rosbridge

URL = "ws://localhost:9090"

_CLOSED = object()


class FakeWebSocket:
    """Stands in for a `websockets` client connection."""

    def __init__(self):
        self.sent: List[str] = []
        self.close_code: Optional[int] = None
        self.close_reason: str = ""
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    @property
    def messages(self) -> List[Dict[str, Any]]:
        """Everything sent so far, decoded."""
        return [json.loads(raw) for raw in self.sent]

    def ops(self) -> List[str]:
        return [message["op"] for message in self.messages]

    def feed(self, message: Any) -> None:
        """Queues a frame as if the server had sent it."""
        if isinstance(message, dict):
            message = json.dumps(message)
        self._inbox.put_nowait(message)

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Ends the connection from the server side."""
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.drop(code, reason)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Replaces `websockets.connect`."""

    def __init__(self):
        self.sockets: List[FakeWebSocket] = []
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[BaseException] = None
        self.gate: Optional[asyncio.Event] = None

    @property
    def socket(self) -> FakeWebSocket:
        return self.sockets[-1]

    async def __call__(self, url: str, **options: Any) -> FakeWebSocket:
        self.calls.append({"url": url, **options})
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        socket = FakeWebSocket()
        self.sockets.append(socket)
        return socket


async def _settle() -> None:
    """Lets the listener and writer tasks catch up."""
    for _ in range(3):
        await asyncio.sleep(0.01)


@pytest.fixture
def settle():
    return _settle


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def client(connector):
    """A client that has not connected yet."""
    return Rosbridge(connector=connector)


@pytest_asyncio.fixture
async def ros(client, settle):
    """A client with an open connection."""
    await client.connect(URL)
    await settle()
    assert client.is_connected
    yield client
    await client.close()
