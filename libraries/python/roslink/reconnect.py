"""
roslink.reconnect
~~~~~~~~~~~~~~~~~

Opt-in reconnection for a `Rosbridge` client.

The bridge itself never retries. `ReconnectSupervisor` listens to the
client's open/close streams, reconnects with exponential backoff after a
close the application did not ask for, and re-subscribes the topics it
watches once the new connection is open.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional

from .bridge import CloseEvent, OpenEvent

if TYPE_CHECKING:
    from .client import Rosbridge
    from .topic import Topic

logger = logging.getLogger(__name__)


class ReconnectSupervisor:
    """
    Reconnects a client after unexpected closes.

    Example:
        supervisor = ReconnectSupervisor(ros, max_retry_delay=30)
        supervisor.watch(topic)
        ...
        supervisor.stop()
    """

    def __init__(
        self,
        ros: "Rosbridge",
        initial_retry_delay: float = 1.0,
        max_retry_delay: float = 60.0,
    ):
        """
        Args:
            ros: The client to supervise.
            initial_retry_delay: Seconds before the first reconnect attempt.
            max_retry_delay: Upper bound for the doubling delay between attempts.
        """
        self.ros = ros
        self.initial_retry_delay = initial_retry_delay
        self.max_retry_delay = max_retry_delay
        self.reconnect_attempts = 0

        self._retry_delay = initial_retry_delay
        self._topics: List["Topic"] = []
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnecting = False
        self._stopped = False
        self._remove_listeners = [
            ros.on_open.subscribe(self._on_open),
            ros.on_close.subscribe(self._on_close),
        ]

    @property
    def retry_delay(self) -> float:
        """Delay before the next reconnect attempt."""
        return self._retry_delay

    def watch(self, topic: "Topic") -> None:
        """Re-subscribes `topic` after every reconnect (if its `reconnect_on_close` is set)."""
        if topic not in self._topics:
            self._topics.append(topic)

    def unwatch(self, topic: "Topic") -> None:
        if topic in self._topics:
            self._topics.remove(topic)

    def stop(self) -> None:
        """Stops supervising. A pending reconnect attempt is cancelled."""
        self._stopped = True
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners = []
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None

    def _on_open(self, event: OpenEvent) -> None:
        self._retry_delay = self.initial_retry_delay
        if not self._reconnecting:
            return
        self._reconnecting = False

        resubscribed = [
            topic.name for topic in self._topics
            if topic.reconnect_on_close and topic.resubscribe()
        ]
        logger.info(f"[{self.ros.label}] Reconnected to {event.url}; re-subscribed {len(resubscribed)} topic(s).")

    def _on_close(self, event: CloseEvent) -> None:
        if self._stopped or event.requested:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnecting = True
        self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        delay = self._retry_delay
        logger.info(f"[{self.ros.label}] Reconnecting in {delay}s...")
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            logger.info(f"[{self.ros.label}] Reconnect wait cancelled.")
            raise

        # Exponential backoff
        self._retry_delay = min(delay * 2, self.max_retry_delay)
        self.reconnect_attempts += 1
        if not self._stopped:
            await self.ros.connect()


__all__ = ["ReconnectSupervisor"]
