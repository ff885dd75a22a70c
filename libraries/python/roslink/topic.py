"""
roslink.topic
~~~~~~~~~~~~~

The `Topic` handle: subscribe to, advertise and publish on one named topic.

Subscribing and advertising are independent; a handle may be both at once
(for example to echo its own messages).
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from .protocol import (
    DEFAULT_QUEUE_SIZE,
    Advertise,
    Compression,
    Operation,
    Publish,
    Subscribe,
    Unadvertise,
    Unsubscribe,
)
from .router import MessageHandler

if TYPE_CHECKING:
    from .client import Rosbridge

logger = logging.getLogger(__name__)


class Topic:
    """
    A named pub/sub channel on the rosbridge server.

    Example:
        topic = Topic(ros, "/rosout", "rosgraph_msgs/Log")
        topic.subscribe(lambda msg: print(msg["msg"]))
    """

    def __init__(
        self,
        ros: "Rosbridge",
        name: str,
        message_type: Optional[str] = None,
        compression: Compression = Compression.NONE,
        throttle_rate: int = 0,
        latch: bool = False,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        queue_length: int = 0,
        fragment_size: Optional[int] = None,
        reconnect_on_close: bool = True,
    ):
        """
        Args:
            ros: The client whose connection this topic uses.
            name: Topic name, e.g. "/rosout".
            message_type: Message type, e.g. "std_msgs/String". Optional for subscribers.
            compression: Compression requested for incoming messages.
            throttle_rate: Minimum time in ms between messages sent to us.
            latch: Whether the server latches what we publish.
            queue_size: Publisher queue size on the server.
            queue_length: Subscriber queue length on the server.
            fragment_size: Maximum size of a message before the server fragments it.
            reconnect_on_close: Whether a `ReconnectSupervisor` re-subscribes this topic.
        """
        self.ros = ros
        self.name = name
        self.message_type = message_type
        self.compression = Compression(compression)
        self.throttle_rate = max(throttle_rate, 0)
        self.latch = latch
        self.queue_size = queue_size
        self.queue_length = max(queue_length, 0)
        self.fragment_size = fragment_size
        self.reconnect_on_close = reconnect_on_close

        self._callback: Optional[MessageHandler] = None
        self._listener_token: Optional[int] = None
        self._subscribe_id: Optional[str] = None
        self._advertise_id: Optional[str] = None
        self._advertised = False

    def __repr__(self) -> str:
        return f"Topic({self.name!r}, {self.message_type!r})"

    @property
    def is_subscribed(self) -> bool:
        return self._listener_token is not None

    @property
    def is_advertised(self) -> bool:
        return self._advertised

    @property
    def subscribe_id(self) -> Optional[str]:
        return self._subscribe_id

    def subscribe(self, callback: MessageHandler) -> None:
        """
        Delivers every message on this topic to `callback`.

        Subscribing again replaces the callback and sends a new `subscribe`.
        """
        request = Subscribe(
            id=self.ros.ids.next_id(Operation.SUBSCRIBE, self.name),
            topic=self.name,
            type=self.message_type,
            throttle_rate=self.throttle_rate,
            queue_length=self.queue_length,
            fragment_size=self.fragment_size,
            compression=self.compression,
        )
        if self._listener_token is not None:
            self.ros.router.remove_topic_listener(self.name, self._listener_token)
        self._listener_token = self.ros.router.add_topic_listener(self.name, callback)
        self._callback = callback
        self._subscribe_id = request.id
        logger.debug(f"[{self.ros.label}] Subscribing to {self.name} ({request.id}).")
        self.ros.send_request(request)

    def resubscribe(self) -> bool:
        """Repeats the last `subscribe` if still subscribed. Returns whether it did."""
        if not self.is_subscribed or self._callback is None:
            return False
        self.subscribe(self._callback)
        return True

    def unsubscribe(self) -> None:
        """
        Stops delivery to the callback.

        The `unsubscribe` message is sent whenever a subscription id was
        ever assigned, even if the handle is no longer subscribed.
        """
        if self._subscribe_id is not None:
            self.ros.send_request(Unsubscribe(id=self._subscribe_id, topic=self.name))
        if self._listener_token is not None:
            self.ros.router.remove_topic_listener(self.name, self._listener_token)
            self._listener_token = None

    def advertise(self) -> None:
        """Announces this client as a publisher of the topic."""
        request = Advertise(
            id=self.ros.ids.next_id(Operation.ADVERTISE, self.name),
            topic=self.name,
            type=self.message_type,
            latch=self.latch,
            queue_size=self.queue_size,
        )
        self._advertise_id = request.id
        self._advertised = True
        self.ros.send_request(request)

    def publish(self, message: Any) -> None:
        """
        Publishes `message` on the topic.

        No prior `advertise()` is required and the payload is passed
        through unchecked.
        """
        self.ros.send_request(Publish(
            id=self.ros.ids.next_id(Operation.PUBLISH, self.name),
            topic=self.name,
            msg=message,
            latch=self.latch,
            queue_size=self.queue_size,
        ))

    def unadvertise(self) -> None:
        """Withdraws the advertisement. Does nothing if not advertised."""
        if not self._advertised:
            return
        self.ros.send_request(Unadvertise(id=self._advertise_id, topic=self.name))
        self._advertised = False


__all__ = ["Topic"]
