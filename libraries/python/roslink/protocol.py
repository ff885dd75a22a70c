"""
roslink.protocol
~~~~~~~~~~~~~~~~

This module defines the rosbridge v2 protocol envelopes.

Every operation the client sends or understands is modelled as a frozen
Pydantic `BaseModel` carrying a literal `op` tag, so the set of envelopes
forms a closed tagged union (`Envelope`). Each model serializes to exactly
one JSON object on the wire.

Core Concepts:
1.  **Envelopes:** One model per operation (`Subscribe`, `Publish`,
    `CallService`, ...). Optional fields that are unset are omitted
    from the wire form.
2.  **Correlation ids:** Strings of the form `<op>:<name>:<counter>`,
    produced by an `IdGenerator`. Each client owns its own generator.
3.  **Enums (Controlled Vocabularies):** Operation tags, status levels,
    compression modes and transport kinds.
"""

import itertools
import json
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

try:
    from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
except ImportError:
    print("Pydantic not installed. Please run 'pip install pydantic'")
    raise

# --- Constants ---

DEFAULT_QUEUE_SIZE = 100
"""Queue size used by publish/advertise when none (or zero) is given."""

PARAM_GET_SERVICE = "/rosapi/get_param"
PARAM_SET_SERVICE = "/rosapi/set_param"
PARAM_DELETE_SERVICE = "/rosapi/delete_param"

# Fields that stay on the wire even when they are null.
_ALWAYS_SENT = frozenset({"msg", "args", "values"})

# --- Controlled Vocabularies (Enums) ---

class Operation(str, Enum):
    """The `op` tag of a rosbridge envelope."""
    FRAGMENT = "fragment"
    PNG = "png"
    SET_LEVEL = "set_level"
    STATUS = "status"
    AUTH = "auth"
    ADVERTISE = "advertise"
    UNADVERTISE = "unadvertise"
    PUBLISH = "publish"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    CALL_SERVICE = "call_service"
    ADVERTISE_SERVICE = "advertise_service"
    UNADVERTISE_SERVICE = "unadvertise_service"
    SERVICE_REQUEST = "service_request"
    SERVICE_RESPONSE = "service_response"


# Valid operations that have no envelope model here (fragmented or
# png-compressed frames are not reassembled).
UNMODELLED_OPERATIONS = frozenset({
    Operation.FRAGMENT.value,
    Operation.PNG.value,
    Operation.SERVICE_REQUEST.value,
})


class StatusLevel(str, Enum):
    """Verbosity of the status messages the server reports back."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    NONE = "none"


class Compression(str, Enum):
    """Compression modes a subscriber may request. Passed through opaquely."""
    PNG = "png"
    CBOR = "cbor"
    CBOR_RAW = "cbor-raw"
    NONE = "none"


class TransportLibrary(str, Enum):
    """Transport kinds a connection may be configured with."""
    WEBSOCKET = "websocket"
    SOCKET_IO = "socket.io"
    RTC_PEER_CONNECTION = "RTCPeerConnection"
    WORKER_SOCKET = "workerSocket"

# --- Correlation ids ---

class IdGenerator:
    """
    Produces correlation ids of the form `<op>:<name>:<counter>`.

    The counter is monotonic and shared by every operation and name that
    goes through the same generator, so no two ids it hands out are equal.
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def next_id(self, op: Union[Operation, str], name: str) -> str:
        op = op.value if isinstance(op, Operation) else op
        return f"{op}:{name}:{next(self._counter)}"


default_id_generator = IdGenerator()
"""Generator used by envelopes built outside of a client."""

# --- JSON compatibility ---

def check_json_compatible(value: Any) -> bool:
    """
    Checks that `value` survives a JSON serialize/deserialize cycle.

    Returns:
        True if the value is a JSON object (a dict), False otherwise.

    Raises:
        TypeError: If the value cannot be serialized to JSON at all.
    """
    try:
        json.loads(json.dumps(value, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise TypeError("The argument is not a JSON compatible object") from e
    return isinstance(value, dict)


def json_object_or_empty(value: Any) -> Any:
    """Returns `value` if it is a JSON object, else an empty one."""
    return value if check_json_compatible(value) else {}

# --- Envelope Models ---

class RosbridgeMessage(BaseModel):
    """Base class for all envelopes."""

    model_config = ConfigDict(frozen=True, extra="ignore", use_enum_values=True)

    def to_wire(self) -> Dict[str, Any]:
        """Returns the JSON-compatible dict sent over the connection."""
        data = self.model_dump(mode="json")
        return {
            key: value for key, value in data.items()
            if value is not None or key in _ALWAYS_SENT
        }


def _non_negative(value: Optional[int]) -> int:
    return max(0, value or 0)


def _queue_size(value: Optional[int]) -> int:
    # Zero and unset both mean "use the default".
    if not value:
        return DEFAULT_QUEUE_SIZE
    return max(0, value)


class SetLevel(RosbridgeMessage):
    """Asks the server to report status messages at `level` and above."""
    op: Literal["set_level"] = "set_level"
    id: Optional[str] = None
    level: StatusLevel


class Status(RosbridgeMessage):
    """A status report sent by the server."""
    op: Literal["status"] = "status"
    id: Optional[str] = None
    level: str
    msg: str = ""


class Auth(RosbridgeMessage):
    """Authentication request using a MAC computed by the caller."""
    op: Literal["auth"] = "auth"
    mac: str
    client: str
    dest: str
    rand: str
    t: float
    level: str
    end: float


class Advertise(RosbridgeMessage):
    op: Literal["advertise"] = "advertise"
    id: Optional[str] = None
    topic: str
    # Omitted from the wire when unknown.
    type: Optional[str] = None
    latch: bool = False
    queue_size: int = DEFAULT_QUEUE_SIZE

    @field_validator("queue_size", mode="before")
    @classmethod
    def default_queue_size(cls, value):
        return _queue_size(value)


class Unadvertise(RosbridgeMessage):
    op: Literal["unadvertise"] = "unadvertise"
    id: Optional[str] = None
    topic: str


class Publish(RosbridgeMessage):
    """
    A message on a topic.

    Sent by the client to publish, and by the server to deliver a message
    to subscribers. `msg` is an opaque JSON-compatible payload.
    """
    op: Literal["publish"] = "publish"
    id: Optional[str] = None
    topic: str
    msg: Any = None
    latch: bool = False
    queue_size: int = DEFAULT_QUEUE_SIZE

    @field_validator("queue_size", mode="before")
    @classmethod
    def default_queue_size(cls, value):
        return _queue_size(value)


class Subscribe(RosbridgeMessage):
    op: Literal["subscribe"] = "subscribe"
    id: Optional[str] = None
    topic: str
    type: Optional[str] = None
    throttle_rate: int = 0
    queue_length: int = 0
    fragment_size: Optional[int] = None
    compression: Compression = Compression.NONE

    @field_validator("throttle_rate", "queue_length", mode="before")
    @classmethod
    def clamp_rates(cls, value):
        return _non_negative(value)


class Unsubscribe(RosbridgeMessage):
    op: Literal["unsubscribe"] = "unsubscribe"
    id: Optional[str] = None
    topic: str


class CallService(RosbridgeMessage):
    """
    A service request.

    Sent by the client to call a remote service, and by the server to call
    a service this client advertised.
    """
    op: Literal["call_service"] = "call_service"
    id: Optional[str] = None
    service: str
    args: Any = Field(default_factory=dict)
    fragment_size: Optional[int] = None
    compression: Optional[str] = None


class AdvertiseService(RosbridgeMessage):
    op: Literal["advertise_service"] = "advertise_service"
    type: Optional[str] = None
    service: str


class UnadvertiseService(RosbridgeMessage):
    op: Literal["unadvertise_service"] = "unadvertise_service"
    service: str


class ServiceResponse(RosbridgeMessage):
    """
    The answer to a `call_service`, correlated by `id` and `service`.

    `values` holds the response on success; on failure the server puts its
    error description there.
    """
    op: Literal["service_response"] = "service_response"
    id: Optional[str] = None
    service: str
    result: bool
    values: Any = None


Envelope = Annotated[
    Union[
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
    ],
    Field(discriminator="op"),
]

_envelope_adapter: TypeAdapter = TypeAdapter(Envelope)

# --- Helper Functions ---

def serialize_message(message: RosbridgeMessage) -> str:
    """
    Serializes an envelope into the JSON text sent over the wire.

    Args:
        message: Any `RosbridgeMessage` instance.

    Returns:
        A JSON string.
    """
    return json.dumps(message.to_wire())


def parse_message(data: Union[str, bytes, Dict[str, Any]]) -> RosbridgeMessage:
    """
    Parses raw JSON text (or an already decoded dict) into its envelope model.

    Binary frames are decoded as UTF-8.

    Raises:
        ValueError: If the data is not valid JSON.
        ValidationError: If the `op` is unknown or required fields are missing.
    """
    if isinstance(data, (str, bytes, bytearray)):
        data = json.loads(data)
    return _envelope_adapter.validate_python(data)


__all__ = [
    # Models
    "RosbridgeMessage",
    "Envelope",
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

    # Enums
    "Operation",
    "StatusLevel",
    "Compression",
    "TransportLibrary",

    # Constants
    "DEFAULT_QUEUE_SIZE",
    "UNMODELLED_OPERATIONS",
    "PARAM_GET_SERVICE",
    "PARAM_SET_SERVICE",
    "PARAM_DELETE_SERVICE",

    # Helpers
    "IdGenerator",
    "default_id_generator",
    "check_json_compatible",
    "json_object_or_empty",
    "serialize_message",
    "parse_message",
    "ValidationError",
]
