"""
roslink.router
~~~~~~~~~~~~~~

Demultiplexes incoming envelopes.

The router holds the three lookup tables of a client:
- topic name -> subscriber callbacks (for `publish`),
- (service name, correlation id) -> pending call (for `service_response`),
- service name -> handler of a service this client advertised
  (for `call_service` coming from the server).

It is driven by the bridge's listener task and processes one envelope at a
time, so callbacks run in the order the messages arrived.
"""

import asyncio
import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import ServiceCallError
from .events import EventStream, invoke
from .protocol import (
    CallService,
    Publish,
    RosbridgeMessage,
    ServiceResponse,
    Status,
    json_object_or_empty,
)

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Any]
ServiceHandler = Callable[[Any], Any]

_STATUS_LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
}


def consume_exception(future: "asyncio.Future[Any]") -> None:
    """Marks a failed future's exception as retrieved so it is not logged when nobody awaits it."""
    if not future.cancelled():
        future.exception()


@dataclass
class PendingCall:
    """One outstanding `call_service`, answered at most once."""
    future: "asyncio.Future[Any]"
    callback: Optional[MessageHandler] = None
    failed_callback: Optional[MessageHandler] = None
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class MessageRouter:
    """
    Routes parsed envelopes to the callbacks registered by topics and services.
    """

    def __init__(self, send: Callable[[RosbridgeMessage], None], label: str = "rosbridge"):
        """
        Args:
            send: Used to answer calls to services this client advertised.
            label: Prefix used in log messages.
        """
        self._send = send
        self.label = label
        self._topic_listeners: Dict[str, Dict[int, MessageHandler]] = defaultdict(dict)
        self._pending_calls: Dict[Tuple[str, str], PendingCall] = {}
        self._service_handlers: Dict[str, ServiceHandler] = {}
        self._tokens = itertools.count(1)
        self.on_status = EventStream("status")

    # --- Registration ---

    def add_topic_listener(self, topic: str, callback: MessageHandler) -> int:
        """Registers `callback` for messages on `topic`. Returns a token for removal."""
        token = next(self._tokens)
        self._topic_listeners[topic][token] = callback
        return token

    def remove_topic_listener(self, topic: str, token: int) -> None:
        listeners = self._topic_listeners.get(topic)
        if listeners is None:
            return
        listeners.pop(token, None)
        if not listeners:
            del self._topic_listeners[topic]

    def listener_count(self, topic: str) -> int:
        return len(self._topic_listeners.get(topic, ()))

    def add_pending_call(self, service: str, call_id: str, pending: PendingCall) -> None:
        self._pending_calls[(service, call_id)] = pending

    def pop_pending_call(self, service: str, call_id: str) -> Optional[PendingCall]:
        return self._pending_calls.pop((service, call_id), None)

    @property
    def pending_call_count(self) -> int:
        return len(self._pending_calls)

    def add_service_handler(self, service: str, handler: ServiceHandler) -> None:
        self._service_handlers[service] = handler

    def remove_service_handler(self, service: str) -> None:
        self._service_handlers.pop(service, None)

    # --- Dispatch ---

    async def dispatch(self, message: RosbridgeMessage) -> None:
        """
        The central handler for all incoming envelopes.
        Passed directly to the WebsocketBridge.
        """
        if isinstance(message, Publish):
            await self._handle_publish(message)
        elif isinstance(message, ServiceResponse):
            await self._handle_service_response(message)
        elif isinstance(message, CallService):
            await self._handle_service_request(message)
        elif isinstance(message, Status):
            await self._handle_status(message)
        else:
            logger.debug(f"[{self.label}] Ignoring incoming '{message.op}' message.")

    async def _handle_publish(self, message: Publish) -> None:
        listeners = list(self._topic_listeners.get(message.topic, {}).values())
        if not listeners:
            logger.debug(f"[{self.label}] No subscriber for message on {message.topic}.")
            return

        for callback in listeners:
            try:
                await invoke(callback, message.msg)
            except Exception as e:
                logger.error(f"[{self.label}] Error in subscriber of {message.topic}: {e}", exc_info=True)

    async def _handle_service_response(self, message: ServiceResponse) -> None:
        pending = self.pop_pending_call(message.service, message.id)
        if pending is None:
            logger.debug(
                f"[{self.label}] Dropping response from {message.service} "
                f"with no pending call (id {message.id})."
            )
            return

        pending.cancel_timer()
        if message.result:
            if not pending.future.done():
                pending.future.set_result(message.values)
            callback = pending.callback
        else:
            if not pending.future.done():
                pending.future.set_exception(ServiceCallError(message.service, message.values))
            callback = pending.failed_callback

        if callback is None:
            return
        try:
            await invoke(callback, message.values)
        except Exception as e:
            logger.error(f"[{self.label}] Error in callback for {message.service}: {e}", exc_info=True)

    async def _handle_service_request(self, message: CallService) -> None:
        handler = self._service_handlers.get(message.service)
        if handler is None:
            logger.warning(f"[{self.label}] Received call for {message.service}, which is not advertised here.")
            return

        try:
            result = await invoke(handler, message.args)
            response = ServiceResponse(
                id=message.id,
                service=message.service,
                result=True,
                values=json_object_or_empty(result),
            )
        except Exception as e:
            logger.error(f"[{self.label}] Handler for {message.service} failed: {e}", exc_info=True)
            response = ServiceResponse(
                id=message.id,
                service=message.service,
                result=False,
                values={"error": str(e)},
            )
        self._send(response)

    async def _handle_status(self, message: Status) -> None:
        level = _STATUS_LOG_LEVELS.get(message.level, logging.INFO)
        logger.log(level, f"[{self.label}] Server status ({message.id or 'no id'}): {message.msg}")
        await self.on_status.emit(message)


__all__ = ["MessageRouter", "PendingCall", "consume_exception"]
