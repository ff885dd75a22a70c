"""
roslink
~~~~~~~

An asyncio client for the rosbridge JSON-over-websocket protocol.

It exposes the protocol envelopes, the connection bridge, the high-level
client and the topic, service and parameter handles.

Example:
    from roslink import Rosbridge, Topic, Service

    ros = Rosbridge()
    await ros.connect("ws://localhost:9090")

    rosout = Topic(ros, "/rosout", "rosgraph_msgs/Log")
    rosout.subscribe(lambda msg: print(msg["msg"]))

    topics = await ros.get_topics()

"""

import logging

# Set up a default logger for the library.
# The user can override this by configuring their own logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())

from .protocol import (
    # --- Enums ---
    Operation,
    StatusLevel,
    Compression,
    TransportLibrary,

    # --- Constants ---
    DEFAULT_QUEUE_SIZE,

    # --- Envelopes ---
    RosbridgeMessage,
    SetLevel,
    Status,
    Auth,
    Advertise,
    Unadvertise,
    Publish,
    Subscribe,
    Unsubscribe,
    CallService,
    AdvertiseService,
    UnadvertiseService,
    ServiceResponse,

    # --- Helper Functions ---
    IdGenerator,
    check_json_compatible,
    serialize_message,
    parse_message,
    ValidationError
)
from .errors import RosbridgeError, ServiceCallError, ServiceTimeoutError, TransportError
from .events import EventStream
from .bridge import CloseEvent, ConnectionState, OpenEvent, WebsocketBridge
from .router import MessageRouter
from .client import Rosbridge
from .topic import Topic
from .service import Service
from .param import Param
from .config import ClientConfig
from .reconnect import ReconnectSupervisor

# Define __all__ to control `from roslink import *`
__all__ = [
    # from protocol.py
    "Operation",
    "StatusLevel",
    "Compression",
    "TransportLibrary",
    "DEFAULT_QUEUE_SIZE",
    "RosbridgeMessage",
    "SetLevel",
    "Status",
    "Auth",
    "Advertise",
    "Unadvertise",
    "Publish",
    "Subscribe",
    "Unsubscribe",
    "CallService",
    "AdvertiseService",
    "UnadvertiseService",
    "ServiceResponse",
    "IdGenerator",
    "check_json_compatible",
    "serialize_message",
    "parse_message",
    "ValidationError",

    # errors and events
    "RosbridgeError",
    "ServiceCallError",
    "ServiceTimeoutError",
    "TransportError",
    "EventStream",

    # connection
    "CloseEvent",
    "ConnectionState",
    "OpenEvent",
    "WebsocketBridge",
    "MessageRouter",
    "Rosbridge",

    # handles
    "Topic",
    "Service",
    "Param",

    # configuration
    "ClientConfig",
    "ReconnectSupervisor",
]

__version__ = "0.1.0"
