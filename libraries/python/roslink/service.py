"""
roslink.service
~~~~~~~~~~~~~~~

The `Service` handle: call a remote service, or advertise one that the
server forwards calls to.

A call returns an `asyncio.Future` that the router resolves exactly once,
and the optional success/failure callbacks fire alongside it. Either style
works; mixing them is fine.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from .errors import ServiceTimeoutError
from .protocol import (
    AdvertiseService,
    CallService,
    Operation,
    UnadvertiseService,
    json_object_or_empty,
)
from .router import MessageHandler, PendingCall, ServiceHandler, consume_exception

if TYPE_CHECKING:
    from .client import Rosbridge

logger = logging.getLogger(__name__)


def map_future(source: "asyncio.Future[Any]", func: Callable[[Any], Any]) -> "asyncio.Future[Any]":
    """
    Returns a future resolved with `func(result)` once `source` succeeds.

    Failures and cancellation of `source` are passed on unchanged.
    """
    target = source.get_loop().create_future()
    target.add_done_callback(consume_exception)

    def _relay(done: "asyncio.Future[Any]") -> None:
        if target.done():
            return
        if done.cancelled():
            target.cancel()
        elif done.exception() is not None:
            target.set_exception(done.exception())
        else:
            try:
                target.set_result(func(done.result()))
            except Exception as e:
                target.set_exception(e)

    source.add_done_callback(_relay)
    return target


class Service:
    """
    A named request/response endpoint on the rosbridge server.

    Example:
        service = Service(ros, "/rosapi/topics", "rosapi/Topics")
        values = await service.call({})
        print(values["topics"])
    """

    def __init__(self, ros: "Rosbridge", name: str, service_type: Optional[str] = None):
        self.ros = ros
        self.name = name
        self.service_type = service_type
        self._advertised = False

    def __repr__(self) -> str:
        return f"Service({self.name!r}, {self.service_type!r})"

    @property
    def is_advertised(self) -> bool:
        return self._advertised

    def call(
        self,
        request: Any,
        callback: Optional[MessageHandler] = None,
        failed_callback: Optional[MessageHandler] = None,
        timeout: Optional[float] = None,
        fragment_size: Optional[int] = None,
        compression: Optional[str] = None,
    ) -> "asyncio.Future[Any]":
        """
        Calls the service with `request` as its arguments.

        A request that is not a JSON object is replaced by `{}`.

        Args:
            request: The service arguments.
            callback: Called with the response values on success.
            failed_callback: Called with the response values when the server
                             reports a failure.
            timeout: Seconds to wait for a response before giving up. Defaults
                     to the client's `call_timeout`; None waits forever.

        Returns:
            A future resolved with the response values, or failed with
            `ServiceCallError` / `ServiceTimeoutError`.

        Raises:
            TypeError: If `request` cannot be serialized to JSON.
        """
        args = json_object_or_empty(request)
        call_id = self.ros.ids.next_id(Operation.CALL_SERVICE, self.name)

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        future.add_done_callback(consume_exception)
        pending = PendingCall(future, callback, failed_callback)

        if timeout is None:
            timeout = self.ros.call_timeout
        if timeout is not None:
            pending.timer = loop.call_later(timeout, self._expire, call_id, timeout)

        self.ros.router.add_pending_call(self.name, call_id, pending)
        self.ros.send_request(CallService(
            id=call_id,
            service=self.name,
            args=args,
            fragment_size=fragment_size,
            compression=compression,
        ))
        return future

    def _expire(self, call_id: str, timeout: float) -> None:
        pending = self.ros.router.pop_pending_call(self.name, call_id)
        if pending is None or pending.future.done():
            return
        logger.warning(f"[{self.ros.label}] Call {call_id} timed out after {timeout}s.")
        pending.future.set_exception(ServiceTimeoutError(self.name, call_id, timeout))

    def advertise(self, handler: ServiceHandler) -> None:
        """
        Serves this service from the client.

        `handler` receives the request arguments of every call the server
        forwards and returns the response values (it may be a coroutine
        function). Its result is sent back as a successful `service_response`.
        """
        self.ros.router.add_service_handler(self.name, handler)
        self.ros.send_request(AdvertiseService(type=self.service_type, service=self.name))
        self._advertised = True

    def unadvertise(self) -> None:
        """Stops serving this service. Does nothing if not advertised."""
        if not self._advertised:
            return
        self.ros.send_request(UnadvertiseService(service=self.name))
        self.ros.router.remove_service_handler(self.name)
        self._advertised = False


__all__ = ["Service", "map_future"]
