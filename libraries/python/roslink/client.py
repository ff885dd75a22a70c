"""
roslink.client
~~~~~~~~~~~~~~

This module implements the high-level `Rosbridge` client, the primary
interface an application uses to talk to a rosbridge server.

It combines the `WebsocketBridge` (transport and send queue), the
`MessageRouter` (incoming dispatch and response correlation) and an
`IdGenerator` owned by this client, and provides:
1. Connecting, closing and the open/close/error event streams.
2. Sending arbitrary envelopes, including auth and status-level requests.
3. Shortcuts for common rosapi queries (`get_topics`, `get_nodes`, ...).

Topics, services and parameters are separate handles that take the client
as their first argument (see `roslink.topic`, `roslink.service`,
`roslink.param`).
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .bridge import ConnectionState, Connector, WebsocketBridge
from .config import ClientConfig
from .protocol import (
    Auth,
    IdGenerator,
    RosbridgeMessage,
    SetLevel,
    StatusLevel,
    TransportLibrary,
)
from .router import MessageHandler, MessageRouter
from .service import Service, map_future

logger = logging.getLogger(__name__)


class Rosbridge:
    """
    A client for one rosbridge server connection.

    Example:
        ros = Rosbridge()
        ros.on_open.subscribe(lambda event: print("connected to", event.url))
        await ros.connect("ws://localhost:9090")
        topics = await ros.get_topics()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        transport_library: TransportLibrary = TransportLibrary.WEBSOCKET,
        transport_options: Optional[Dict[str, Any]] = None,
        connector: Optional[Connector] = None,
        id_generator: Optional[IdGenerator] = None,
        call_timeout: Optional[float] = None,
        label: str = "rosbridge",
    ):
        """
        Initializes the client. Nothing is opened until `connect()`.

        Args:
            url: Default server URL for `connect()`.
            transport_library: Default transport kind.
            transport_options: Default keyword arguments for the connector.
            connector: Opens the transport. Defaults to `websockets.connect`.
            id_generator: Source of correlation ids. Each client gets its own by default.
            call_timeout: Default deadline for service calls, in seconds.
            label: Prefix used in log messages.
        """
        self.url = url
        self.transport_library = TransportLibrary(transport_library)
        self.transport_options: Dict[str, Any] = dict(transport_options or {})
        self.call_timeout = call_timeout
        self.label = label
        self.ids = id_generator or IdGenerator()

        self.router = MessageRouter(send=self.send_request, label=label)
        self._bridge = WebsocketBridge(
            on_message=self.router.dispatch,
            connector=connector,
            label=label,
        )
        self._status_level: Optional[StatusLevel] = None

        self.on_open = self._bridge.on_open
        self.on_close = self._bridge.on_close
        self.on_error = self._bridge.on_error
        self.on_status = self.router.on_status

    @classmethod
    def from_config(cls, config: ClientConfig, connector: Optional[Connector] = None) -> "Rosbridge":
        """Creates a client from a `ClientConfig`."""
        ros = cls(
            url=config.url,
            transport_library=config.transport_library,
            transport_options=config.transport_options,
            connector=connector,
            call_timeout=config.call_timeout,
        )
        if config.status_level is not None:
            ros.status_level = config.status_level
        return ros

    @property
    def is_connected(self) -> bool:
        """Checks if the client is currently connected to the server."""
        return self._bridge.is_connected

    @property
    def state(self) -> ConnectionState:
        return self._bridge.state

    @property
    def bridge(self) -> WebsocketBridge:
        return self._bridge

    # --- Connection Management ---

    async def connect(
        self,
        url: Optional[str] = None,
        transport_library: Optional[TransportLibrary] = None,
        transport_options: Optional[Dict[str, Any]] = None,
    ) -> "Rosbridge":
        """
        Starts connecting to the server.

        Arguments left as None fall back to the values given at construction.
        They replace those values only if a new connection is actually
        started, so a call ignored while already connected changes nothing.
        Returns immediately; wait on `on_open` / `on_error` to learn the outcome.
        """
        url = url or self.url
        if not url:
            raise ValueError("No URL given to connect to.")
        if transport_library is None:
            transport_library = self.transport_library
        transport_library = TransportLibrary(transport_library)
        if transport_options is None:
            transport_options = self.transport_options

        logger.info(f"[{self.label}] Initializing connection to {url}")
        if await self._bridge.connect(url, transport_library, transport_options):
            self.url = url
            self.transport_library = transport_library
            self.transport_options = dict(transport_options)
        return self

    async def close(self) -> None:
        """Closes the connection to the server."""
        await self._bridge.close()

    async def drain(self) -> None:
        """Waits until everything sent while connected has been written."""
        await self._bridge.drain()

    # --- Outbound Messaging ---

    def send_request(self, message: RosbridgeMessage) -> None:
        """Sends an envelope now, or once the connection opens."""
        logger.debug(f"[{self.label}] Sending {message.op}")
        self._bridge.send(message)

    @property
    def status_level(self) -> Optional[StatusLevel]:
        return self._status_level

    @status_level.setter
    def status_level(self, level: StatusLevel) -> None:
        self.set_status_level(level)

    def set_status_level(self, level: StatusLevel, id: Optional[str] = None) -> None:
        """Asks the server to report status messages at `level` and above."""
        self._status_level = StatusLevel(level)
        self.send_request(SetLevel(id=id, level=self._status_level))

    def authenticate(
        self,
        mac: str,
        client: str,
        dest: str,
        rand: str,
        t: float,
        level: str,
        end: float,
    ) -> None:
        """Sends an `auth` request. The MAC is computed by the caller."""
        self.send_request(Auth(
            mac=mac,
            client=client,
            dest=dest,
            rand=rand,
            t=t,
            level=level,
            end=end,
        ))

    # --- rosapi shortcuts ---

    def get_topics(
        self,
        callback: Optional[MessageHandler] = None,
        failed_callback: Optional[MessageHandler] = None,
        timeout: Optional[float] = None,
    ) -> "asyncio.Future[List[str]]":
        """Lists the topics known to the server."""
        return self._rosapi_list("/rosapi/topics", "rosapi/Topics", "topics", callback, failed_callback, timeout)

    def get_nodes(
        self,
        callback: Optional[MessageHandler] = None,
        failed_callback: Optional[MessageHandler] = None,
        timeout: Optional[float] = None,
    ) -> "asyncio.Future[List[str]]":
        """Lists the nodes known to the server."""
        return self._rosapi_list("/rosapi/nodes", "rosapi/Nodes", "nodes", callback, failed_callback, timeout)

    def get_services(
        self,
        callback: Optional[MessageHandler] = None,
        failed_callback: Optional[MessageHandler] = None,
        timeout: Optional[float] = None,
    ) -> "asyncio.Future[List[str]]":
        """Lists the services known to the server."""
        return self._rosapi_list("/rosapi/services", "rosapi/Services", "services", callback, failed_callback, timeout)

    def _rosapi_list(
        self,
        name: str,
        service_type: str,
        key: str,
        callback: Optional[MessageHandler],
        failed_callback: Optional[MessageHandler],
        timeout: Optional[float],
    ) -> "asyncio.Future[List[str]]":
        def pluck(values: Any) -> List[str]:
            return list(values.get(key, [])) if isinstance(values, dict) else []

        service = Service(self, name, service_type)
        future = service.call(
            {},
            callback=(lambda values: callback(pluck(values))) if callback else None,
            failed_callback=failed_callback,
            timeout=timeout,
        )
        return map_future(future, pluck)


__all__ = ["Rosbridge"]
