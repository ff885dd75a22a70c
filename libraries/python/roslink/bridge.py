"""
roslink.bridge
~~~~~~~~~~~~~~

This module implements the low-level connection manager.
It owns the single websocket to the rosbridge server, serializes outgoing
envelopes, decodes incoming ones and reports the connection lifecycle on
three broadcast streams (`on_open`, `on_close`, `on_error`).

The bridge never reconnects by itself. A closed bridge is reopened with a
fresh `connect()` call; see `roslink.reconnect` for an opt-in policy.
"""

import asyncio
import json
import logging
import re
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

# We will use the 'websockets' library for client connections
try:
    import websockets
    from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException
except ImportError:
    print("Websockets library not installed. Please run 'pip install websockets'")
    raise

from .errors import TransportError
from .events import EventStream
from .protocol import (
    RosbridgeMessage,
    TransportLibrary,
    UNMODELLED_OPERATIONS,
    ValidationError,
    parse_message,
    serialize_message,
)

# Set up a logger for this module
logger = logging.getLogger(__name__)

# Type hint for the message handling callback
# The handler must be a coroutine that accepts a parsed envelope
MessageCallback = Callable[[RosbridgeMessage], Awaitable[None]]

# Opens a transport: `await connector(url, **options)` returns an object with
# async `send()`, async iteration over incoming frames and async `close()`.
Connector = Callable[..., Awaitable[Any]]

_HTTP_SCHEME = re.compile(r"^http(s)?://", re.IGNORECASE)

# Close code reported when the handshake itself fails.
ABNORMAL_CLOSURE = 1006


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class OpenEvent:
    """Emitted on `on_open` once a connection is established."""
    url: str


@dataclass(frozen=True)
class CloseEvent:
    """Emitted on `on_close` when the connection ends."""
    code: Optional[int]
    reason: str = ""
    requested: bool = False


def normalize_url(url: str) -> str:
    """Rewrites `http://` and `https://` URLs to `ws://` and `wss://`."""
    return _HTTP_SCHEME.sub(lambda m: "wss://" if m.group(1) else "ws://", url)


class WebsocketBridge:
    """
    Manages the websocket connection to a rosbridge server.

    This class provides:
    - Connection and disconnection logic.
    - A non-blocking `send` that holds envelopes until the connection opens
      and then writes them in the order they were sent.
    - A listener task that parses every incoming frame and passes it to
      the registered callback, one message at a time.
    - `on_open`, `on_close` and `on_error` broadcast streams.
    """

    def __init__(
        self,
        on_message: MessageCallback,
        connector: Optional[Connector] = None,
        label: str = "rosbridge",
    ):
        """
        Initializes the WebsocketBridge.

        Args:
            on_message: An async function (coroutine) that will be called
                        with each envelope received from the server.
            connector: Opens the transport. Defaults to `websockets.connect`.
            label: Prefix used in log messages.
        """
        self.on_message_callback = on_message
        self.label = label

        self.on_open = EventStream("open")
        self.on_close = EventStream("close")
        self.on_error = EventStream("error")

        self.url: Optional[str] = None
        self.transport_library: TransportLibrary = TransportLibrary.WEBSOCKET
        self.transport_options: Dict[str, Any] = {}

        self._connector: Connector = connector or websockets.connect
        self._websocket: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED
        self._close_requested = False

        # Envelopes sent before the connection opened, oldest first.
        self._pending: Deque[RosbridgeMessage] = deque()
        # Envelopes accepted while open, consumed by the writer task.
        self._outbox: "asyncio.Queue[RosbridgeMessage]" = asyncio.Queue()

        self._listen_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Returns True if the bridge is currently connected, False otherwise."""
        return self._state is ConnectionState.OPEN

    @property
    def pending_count(self) -> int:
        """Number of envelopes waiting for the connection to open."""
        return len(self._pending)

    async def connect(
        self,
        url: str,
        transport_library: TransportLibrary = TransportLibrary.WEBSOCKET,
        transport_options: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Starts connecting to `url` in the background.

        Returns as soon as the listener task is running. Failures are
        reported on `on_error`, never raised. If a connection is already
        open or being opened, or the transport is not supported, this does
        nothing and leaves the current settings untouched.

        Returns:
            True if a new connection attempt was started.
        """
        transport_library = TransportLibrary(transport_library)
        if transport_library is not TransportLibrary.WEBSOCKET:
            logger.warning(
                f"[{self.label}] Transport '{transport_library.value}' is not supported; "
                f"connection to {url} not opened."
            )
            return False

        if self._state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            logger.warning(f"[{self.label}] Already connected or connecting to {self.url}.")
            return False

        self.transport_library = transport_library
        self.transport_options = dict(transport_options or {})
        self.url = normalize_url(url)
        self._state = ConnectionState.CONNECTING
        self._close_requested = False
        self._listen_task = asyncio.create_task(
            self._connection_listener(),
            name=f"roslink-bridge-{self.label}"
        )
        logger.info(f"[{self.label}] Connection listener started.")
        return True

    async def close(self, code: int = 1000, reason: str = "Client closing") -> None:
        """
        Closes the connection and waits for the listener to stop.
        """
        if not self._listen_task or self._listen_task.done():
            logger.info(f"[{self.label}] Already disconnected.")
            return

        logger.info(f"[{self.label}] Disconnecting...")
        self._close_requested = True

        if self._websocket is None:
            # Still in the handshake; nothing to close gracefully.
            self._listen_task.cancel()
        else:
            try:
                await self._websocket.close(code=code, reason=reason)
            except WebSocketException as e:
                logger.warning(f"[{self.label}] Error during close: {e}")

        try:
            # Wait for the listener task to fully stop
            await asyncio.wait_for(self._listen_task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.label}] Listener task did not stop gracefully.")
            self._listen_task.cancel()
        except asyncio.CancelledError:
            pass

        self._listen_task = None
        logger.info(f"[{self.label}] Disconnected.")

    def send(self, message: RosbridgeMessage) -> None:
        """
        Sends an envelope without blocking.

        While the connection is open the envelope goes straight to the
        writer. Otherwise it is held back and written, in order and exactly
        once, when the connection opens.
        """
        if self._state is ConnectionState.OPEN:
            self._outbox.put_nowait(message)
        else:
            logger.debug(f"[{self.label}] Not connected, holding {message.op} until open.")
            self._pending.append(message)

    async def drain(self) -> None:
        """Waits until every envelope handed to the writer has been written."""
        await self._outbox.join()

    async def _connection_listener(self) -> None:
        """
        Opens the transport, then receives until the connection ends.
        """
        logger.info(f"[{self.label}] Connecting to {self.url}...")
        try:
            websocket = await self._connector(self.url, **self.transport_options)
        except asyncio.CancelledError:
            self._state = ConnectionState.CLOSED
            raise
        except Exception as e:
            logger.warning(f"[{self.label}] Connection to {self.url} failed: {type(e).__name__} {e}")
            self._state = ConnectionState.CLOSED
            await self.on_error.emit(TransportError(f"Could not connect to {self.url}: {e}", cause=e))
            await self.on_close.emit(CloseEvent(ABNORMAL_CLOSURE, str(e), self._close_requested))
            return

        self._websocket = websocket
        self._writer_task = asyncio.create_task(
            self._send_loop(websocket),
            name=f"roslink-writer-{self.label}"
        )
        self._state = ConnectionState.OPEN
        self._flush_pending()
        logger.info(f"[{self.label}] Connection established.")
        await self.on_open.emit(OpenEvent(self.url))

        try:
            # This loop runs as long as the connection is open
            async for raw_message in websocket:
                await self._handle_raw(raw_message)

        except ConnectionClosedOK:
            pass
        except (ConnectionClosed, WebSocketException, OSError) as e:
            logger.warning(f"[{self.label}] Connection lost: {type(e).__name__} {e}")
            await self.on_error.emit(TransportError(f"Connection lost: {e}", cause=e))

        finally:
            self._state = ConnectionState.CLOSED
            self._websocket = None
            await self._stop_writer()

        event = CloseEvent(
            getattr(websocket, "close_code", None),
            getattr(websocket, "close_reason", None) or "",
            self._close_requested,
        )
        logger.info(f"[{self.label}] Connection closed (code={event.code}).")
        await self.on_close.emit(event)

    async def _handle_raw(self, raw_message: Any) -> None:
        data = raw_message
        try:
            if isinstance(data, (str, bytes, bytearray)):
                data = json.loads(data)
            message = parse_message(data)
        except ValidationError as e:
            op = data.get("op") if isinstance(data, dict) else None
            if op in UNMODELLED_OPERATIONS:
                logger.debug(f"[{self.label}] Ignoring incoming '{op}' message.")
            else:
                logger.error(f"[{self.label}] Invalid message: {e}")
                logger.debug(f"[{self.label}] Raw invalid message: {raw_message!r}")
            return
        except ValueError as e:
            logger.error(f"[{self.label}] Failed to parse message: {e}")
            logger.debug(f"[{self.label}] Raw invalid message: {raw_message!r}")
            return

        try:
            # Pass the valid message to the client's handler
            await self.on_message_callback(message)
        except Exception as e:
            logger.error(f"[{self.label}] Error in on_message callback: {e}", exc_info=True)

    def _flush_pending(self) -> None:
        if self._pending:
            logger.info(f"[{self.label}] Sending {len(self._pending)} queued message(s).")
        while self._pending:
            self._outbox.put_nowait(self._pending.popleft())

    async def _send_loop(self, websocket: Any) -> None:
        """Writes queued envelopes to the transport, oldest first."""
        while True:
            message = await self._outbox.get()
            try:
                await websocket.send(serialize_message(message))
            except ConnectionClosed as e:
                logger.error(f"[{self.label}] Failed to send {message.op}: Connection closed. {e}")
            except WebSocketException as e:
                logger.error(f"[{self.label}] Failed to send {message.op}: WebSocket error. {e}")
            except (TypeError, ValueError) as e:
                logger.error(f"[{self.label}] Failed to serialize {message.op}: {e}")
            finally:
                self._outbox.task_done()

    async def _stop_writer(self) -> None:
        if self._writer_task:
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
            self._writer_task = None

        # Unwritten envelopes go back to the front of the pending queue.
        unsent = []
        while not self._outbox.empty():
            unsent.append(self._outbox.get_nowait())
            self._outbox.task_done()
        self._pending.extendleft(reversed(unsent))


__all__ = [
    "WebsocketBridge",
    "MessageCallback",
    "Connector",
    "ConnectionState",
    "OpenEvent",
    "CloseEvent",
    "normalize_url",
]
