"""
roslink.param
~~~~~~~~~~~~~

Parameter server access, expressed as calls to the rosapi parameter services.
Values travel as JSON text and are decoded on the way back.
"""

import json
from typing import TYPE_CHECKING, Any, Optional

from .protocol import PARAM_DELETE_SERVICE, PARAM_GET_SERVICE, PARAM_SET_SERVICE
from .router import MessageHandler
from .service import Service, map_future

if TYPE_CHECKING:
    import asyncio

    from .client import Rosbridge


def decode_param_value(values: Any) -> Any:
    """Extracts and decodes the `value` field of a get_param response."""
    raw = values.get("value") if isinstance(values, dict) else None
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


class Param:
    """A named parameter on the ROS parameter server."""

    def __init__(self, ros: "Rosbridge", name: str):
        self.ros = ros
        self.name = name

    def __repr__(self) -> str:
        return f"Param({self.name!r})"

    def get(
        self,
        callback: Optional[MessageHandler] = None,
        failed_callback: Optional[MessageHandler] = None,
        timeout: Optional[float] = None,
    ) -> "asyncio.Future[Any]":
        """Fetches the value. `callback` and the returned future get the decoded value."""
        service = Service(self.ros, PARAM_GET_SERVICE, "rosapi/GetParam")
        future = service.call(
            {"name": self.name},
            callback=(lambda values: callback(decode_param_value(values))) if callback else None,
            failed_callback=failed_callback,
            timeout=timeout,
        )
        return map_future(future, decode_param_value)

    def set(
        self,
        value: Any,
        callback: Optional[MessageHandler] = None,
        failed_callback: Optional[MessageHandler] = None,
        timeout: Optional[float] = None,
    ) -> "asyncio.Future[Any]":
        """Stores `value`, which must be JSON serializable."""
        service = Service(self.ros, PARAM_SET_SERVICE, "rosapi/SetParam")
        return service.call(
            {"name": self.name, "value": json.dumps(value)},
            callback=callback,
            failed_callback=failed_callback,
            timeout=timeout,
        )

    def delete(
        self,
        callback: Optional[MessageHandler] = None,
        failed_callback: Optional[MessageHandler] = None,
        timeout: Optional[float] = None,
    ) -> "asyncio.Future[Any]":
        service = Service(self.ros, PARAM_DELETE_SERVICE, "rosapi/DeleteParam")
        return service.call(
            {"name": self.name},
            callback=callback,
            failed_callback=failed_callback,
            timeout=timeout,
        )


__all__ = ["Param", "decode_param_value"]
