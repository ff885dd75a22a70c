"""
roslink.config
~~~~~~~~~~~~~~

Client configuration.

`ClientConfig` is a Pydantic model so values read from the environment
(always strings) are validated and converted in one place.
"""

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from .protocol import StatusLevel, TransportLibrary

DEFAULT_URL = "ws://localhost:9090"

ENV_PREFIX = "ROSLINK_"
"""Prefix of the environment variables read by `ClientConfig.from_env`."""


class ClientConfig(BaseModel):
    """Settings for a `Rosbridge` client and its optional reconnect supervisor."""

    url: str = Field(
        default=DEFAULT_URL,
        description="rosbridge server URL. http(s) URLs are rewritten to ws(s)."
    )
    transport_library: TransportLibrary = Field(
        default=TransportLibrary.WEBSOCKET,
        description="Transport used to reach the server. Only 'websocket' opens a connection."
    )
    transport_options: Dict[str, Any] = Field(
        default_factory=dict,
        description="Keyword arguments passed to the transport connector (e.g. ping_interval)."
    )
    status_level: Optional[StatusLevel] = Field(
        default=None,
        description="If set, sent to the server as a set_level request."
    )
    call_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Default deadline in seconds for service calls. None waits forever."
    )
    reconnect: bool = Field(
        default=False,
        description="Whether applications should reconnect automatically after a drop."
    )
    initial_retry_delay: float = Field(default=1.0, gt=0)
    max_retry_delay: float = Field(default=60.0, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "ClientConfig":
        """
        Builds a config from `ROSLINK_*` environment variables.

        Recognized: ROSLINK_URL, ROSLINK_TRANSPORT, ROSLINK_STATUS_LEVEL,
        ROSLINK_CALL_TIMEOUT, ROSLINK_RECONNECT, ROSLINK_INITIAL_RETRY_DELAY,
        ROSLINK_MAX_RETRY_DELAY. Keyword overrides that are not None win.
        """
        environ = os.environ if environ is None else environ
        names = {
            "url": "URL",
            "transport_library": "TRANSPORT",
            "status_level": "STATUS_LEVEL",
            "call_timeout": "CALL_TIMEOUT",
            "reconnect": "RECONNECT",
            "initial_retry_delay": "INITIAL_RETRY_DELAY",
            "max_retry_delay": "MAX_RETRY_DELAY",
        }
        values: Dict[str, Any] = {}
        for field_name, suffix in names.items():
            raw = environ.get(ENV_PREFIX + suffix)
            if raw not in (None, ""):
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


__all__ = ["ClientConfig", "DEFAULT_URL", "ENV_PREFIX"]
