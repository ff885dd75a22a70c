"""
roslink.events
~~~~~~~~~~~~~~

Broadcast event streams.

An `EventStream` keeps an ordered list of listeners and hands every emitted
event to each of them in registration order. Listeners may be plain
functions or coroutine functions; coroutines are awaited before the next
listener runs, so one slow listener delays the rest but never reorders them.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

logger = logging.getLogger(__name__)

# A listener receives one event and may return an awaitable.
Listener = Callable[[Any], Union[None, Awaitable[None]]]


async def invoke(callback: Callable[..., Any], *args: Any) -> Any:
    """Calls `callback` and awaits its result if it returned an awaitable."""
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class _Registration:
    __slots__ = ("callback", "once")

    def __init__(self, callback: Listener, once: bool):
        self.callback = callback
        self.once = once


class EventStream:
    """
    A named broadcast stream of events.

    Example:
        stream = EventStream("open")
        unsubscribe = stream.subscribe(lambda event: print(event))
        await stream.emit("hello")
        unsubscribe()
    """

    def __init__(self, name: str):
        self.name = name
        self._registrations: List[_Registration] = []

    def __len__(self) -> int:
        return len(self._registrations)

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """
        Registers `callback` for every future event.

        Returns:
            A function that removes the registration. Calling it twice is harmless.
        """
        return self._add(_Registration(callback, once=False))

    def once(self, callback: Listener) -> Callable[[], None]:
        """Registers `callback` for the next event only."""
        return self._add(_Registration(callback, once=True))

    def wait(self) -> "asyncio.Future[Any]":
        """Returns a future resolved with the next emitted event."""
        future = asyncio.get_running_loop().create_future()

        def _resolve(event: Any) -> None:
            if not future.done():
                future.set_result(event)

        remove = self.once(_resolve)
        future.add_done_callback(lambda _: remove())
        return future

    async def emit(self, event: Any) -> None:
        """Delivers `event` to every listener registered at the time of the call."""
        for registration in list(self._registrations):
            if registration.once:
                self._discard(registration)
            try:
                await invoke(registration.callback, event)
            except Exception as e:
                logger.error(f"Error in '{self.name}' listener: {e}", exc_info=True)

    def clear(self) -> None:
        self._registrations.clear()

    def _add(self, registration: _Registration) -> Callable[[], None]:
        self._registrations.append(registration)
        return lambda: self._discard(registration)

    def _discard(self, registration: Optional[_Registration]) -> None:
        try:
            self._registrations.remove(registration)
        except ValueError:
            pass


__all__ = ["EventStream", "Listener", "invoke"]
