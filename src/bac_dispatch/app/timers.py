"""Timer scheduling used by the dispatcher and the discovery collector.

Everything time-dependent goes through a :class:`Scheduler` so that retry
and collection-window behaviour can be driven by a manual clock in tests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@runtime_checkable
class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled."""

    def cancel(self) -> None: ...


@runtime_checkable
class Scheduler(Protocol):
    """Monotonic clock plus one-shot timers."""

    def time(self) -> float:
        """Current time in seconds on this scheduler's monotonic clock."""
        ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Run ``callback(*args)`` once after *delay* seconds."""
        ...


class _ThreadsafeTimer:
    """Timer armed on the loop from another thread.

    Cancellation may race with arming; the ``_cancelled`` flag is checked
    both before arming and before running the callback.
    """

    __slots__ = ("_args", "_callback", "_cancelled", "_handle", "_loop")

    def __init__(
        self, loop: asyncio.AbstractEventLoop, callback: Callable[..., Any], args: tuple[Any, ...]
    ) -> None:
        self._loop = loop
        self._callback = callback
        self._args = args
        self._cancelled = False
        self._handle: asyncio.TimerHandle | None = None

    def arm(self, delay: float) -> None:
        if not self._cancelled:
            self._handle = self._loop.call_later(delay, self._run)

    def _run(self) -> None:
        if not self._cancelled:
            self._callback(*self._args)

    def cancel(self) -> None:
        self._cancelled = True
        handle = self._handle
        if handle is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(handle.cancel)


class LoopScheduler:
    """:class:`Scheduler` backed by an asyncio event loop.

    Safe to call from any thread: off-loop calls are marshalled onto the
    loop with ``call_soon_threadsafe``.

    :param loop: Event loop to schedule on.  Defaults to the running loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def time(self) -> float:
        return self._loop.time()

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        if self._on_loop():
            return self._loop.call_later(delay, callback, *args)
        timer = _ThreadsafeTimer(self._loop, callback, args)
        try:
            self._loop.call_soon_threadsafe(timer.arm, delay)
        except RuntimeError:
            logger.debug("Event loop closed; timer for %r not armed", callback)
            timer.cancel()
        return timer
