"""
roslink.errors
~~~~~~~~~~~~~~

Exceptions used by the rosbridge client.

None of these are raised from the callback-style API. Transport failures
are delivered on the connection's error stream, and service failures reach
the caller through the failure callback or the future returned by
`Service.call`.
"""

from typing import Any, Optional


class RosbridgeError(Exception):
    """Base class for all roslink errors."""


class TransportError(RosbridgeError):
    """The underlying connection failed to open or broke while in use."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ServiceCallError(RosbridgeError):
    """The server answered a service call with `result: false`."""

    def __init__(self, service: str, values: Any):
        super().__init__(f"Service call to '{service}' failed: {values}")
        self.service = service
        self.values = values


class ServiceTimeoutError(RosbridgeError):
    """No response to a service call arrived before its deadline."""

    def __init__(self, service: str, call_id: str, timeout: float):
        super().__init__(f"No response from '{service}' (id {call_id}) within {timeout}s")
        self.service = service
        self.call_id = call_id
        self.timeout = timeout


__all__ = [
    "RosbridgeError",
    "TransportError",
    "ServiceCallError",
    "ServiceTimeoutError",
]
