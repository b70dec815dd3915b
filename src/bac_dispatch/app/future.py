"""Caller-facing handle for the eventual outcome of one dispatched exchange.

A :class:`ServiceFuture` resolves exactly once, to a value or to an
exception, from whatever thread or task completes the exchange.  It can be
observed by blocking (:meth:`ServiceFuture.result`), by awaiting
(``await future`` / :meth:`ServiceFuture.wait`), by polling
(:meth:`ServiceFuture.poll`), or through continuations
(:meth:`ServiceFuture.add_done_callback`).

A caller-side wait timeout raises :class:`BACnetCallerTimeoutError` and
leaves the exchange running; only :meth:`ServiceFuture.cancel` stops it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from bac_dispatch.services.errors import (
    BACnetCallerTimeoutError,
    BACnetCancelledError,
    FutureAlreadyResolvedError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


class FutureState(enum.Enum):
    """Observable state of a :class:`ServiceFuture`."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ServiceFuture(Generic[T]):
    """Thread-safe single-resolution result cell.

    :param label: Short description used in ``repr`` and log messages.
    """

    def __init__(self, label: str = "") -> None:
        self._label = label
        self._cond = threading.Condition(threading.Lock())
        self._state = FutureState.PENDING
        self._result: T | None = None
        self._exception: BaseException | None = None
        self._callbacks: list[Callable[[ServiceFuture[T]], Any]] = []
        self._canceller: Callable[[ServiceFuture[T]], bool] | None = None

    def __repr__(self) -> str:
        label = f" {self._label}" if self._label else ""
        return f"<ServiceFuture{label} {self._state.value}>"

    # --- State ---

    def poll(self) -> FutureState:
        """Current state, without blocking."""
        return self._state

    def done(self) -> bool:
        return self._state is not FutureState.PENDING

    def succeeded(self) -> bool:
        return self._state is FutureState.SUCCEEDED

    def failed(self) -> bool:
        return self._state is FutureState.FAILED

    def cancelled(self) -> bool:
        return isinstance(self._exception, BACnetCancelledError)

    # --- Resolution ---

    def try_set_result(self, value: T) -> bool:
        """Resolve successfully unless already terminal.

        :returns: ``True`` if this call performed the transition.
        """
        return self._resolve(FutureState.SUCCEEDED, value, None)

    def try_set_exception(self, exc: BaseException) -> bool:
        """Resolve as failed unless already terminal.

        :returns: ``True`` if this call performed the transition.
        """
        return self._resolve(FutureState.FAILED, None, exc)

    def set_result(self, value: T) -> None:
        """Resolve successfully.

        :raises FutureAlreadyResolvedError: If already terminal; the first
            outcome is kept.
        """
        if not self.try_set_result(value):
            msg = f"{self!r} is already resolved"
            raise FutureAlreadyResolvedError(msg)

    def set_exception(self, exc: BaseException) -> None:
        """Resolve as failed.

        :raises FutureAlreadyResolvedError: If already terminal; the first
            outcome is kept.
        """
        if not self.try_set_exception(exc):
            msg = f"{self!r} is already resolved"
            raise FutureAlreadyResolvedError(msg)

    def _resolve(self, state: FutureState, value: T | None, exc: BaseException | None) -> bool:
        with self._cond:
            if self._state is not FutureState.PENDING:
                return False
            self._result = value
            self._exception = exc
            self._state = state
            self._canceller = None
            callbacks, self._callbacks = self._callbacks, []
            self._cond.notify_all()
        for callback in callbacks:
            self._run_callback(callback)
        return True

    def _run_callback(self, callback: Callable[[ServiceFuture[T]], Any]) -> None:
        try:
            callback(self)
        except Exception:
            logger.exception("Done callback %r of %r raised", callback, self)

    # --- Continuations ---

    def add_done_callback(self, callback: Callable[[ServiceFuture[T]], Any]) -> None:
        """Call ``callback(self)`` exactly once when resolved.

        Runs on the resolving thread, or immediately on the calling thread
        if the future is already terminal.  Exceptions are logged.
        """
        with self._cond:
            if self._state is FutureState.PENDING:
                self._callbacks.append(callback)
                return
        self._run_callback(callback)

    def remove_done_callback(self, callback: Callable[[ServiceFuture[T]], Any]) -> int:
        """Remove every registration of *callback*; returns how many were removed."""
        with self._cond:
            before = len(self._callbacks)
            self._callbacks = [cb for cb in self._callbacks if cb != callback]
            return before - len(self._callbacks)

    def then(self, fn: Callable[[T], U], label: str = "") -> ServiceFuture[U]:
        """Derive a future whose value is ``fn(value)``.

        Failures propagate unchanged; an exception from *fn* fails the
        derived future.  Cancelling the derived future cancels this one.
        """
        derived: ServiceFuture[U] = ServiceFuture(label or self._label)

        def _propagate(source: ServiceFuture[T]) -> None:
            if source._exception is not None:
                derived.try_set_exception(source._exception)
                return
            try:
                value = fn(source._result)  # type: ignore[arg-type]
            except Exception as e:
                derived.try_set_exception(e)
            else:
                derived.try_set_result(value)

        derived.bind_canceller(
            lambda d: self.cancel() or d.try_set_exception(BACnetCancelledError("Cancelled"))
        )
        self.add_done_callback(_propagate)
        return derived

    # --- Cancellation ---

    def bind_canceller(self, canceller: Callable[[ServiceFuture[T]], bool]) -> None:
        """Install the hook :meth:`cancel` delegates to (set by the dispatcher)."""
        with self._cond:
            if self._state is FutureState.PENDING:
                self._canceller = canceller

    def cancel(self) -> bool:
        """Abandon the exchange and resolve as ``Failed(BACnetCancelledError)``.

        :returns: ``False`` if the future was already terminal.
        """
        with self._cond:
            if self._state is not FutureState.PENDING:
                return False
            canceller = self._canceller
        if canceller is not None:
            return canceller(self)
        return self.try_set_exception(BACnetCancelledError("Cancelled"))

    # --- Blocking observation ---

    def _wait(self, timeout: float | None) -> None:
        with self._cond:
            if not self._cond.wait_for(self.done, timeout):
                msg = f"Gave up waiting for {self!r} after {timeout}s"
                raise BACnetCallerTimeoutError(msg)

    def _outcome(self) -> T:
        if self._exception is not None:
            raise self._exception
        return self._result  # type: ignore[return-value]

    def result(self, timeout: float | None = None) -> T:
        """Block until resolved and return the value.

        Must not be called from the event loop thread that resolves this
        future; use ``await`` there.

        :raises BACnetCallerTimeoutError: If *timeout* elapses first.
        :raises BaseException: The failure the future resolved with.
        """
        self._wait(timeout)
        return self._outcome()

    def exception(self, timeout: float | None = None) -> BaseException | None:
        """Block until resolved and return the failure, or ``None`` on success."""
        self._wait(timeout)
        return self._exception

    # --- asyncio observation ---

    async def wait(self, timeout: float | None = None) -> T:
        """Suspend the current task until resolved and return the value.

        :raises BACnetCallerTimeoutError: If *timeout* elapses first; the
            exchange keeps running.
        """
        if self.done():
            return self._outcome()

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake(_: ServiceFuture[T]) -> None:
            try:
                loop.call_soon_threadsafe(_release, waiter)
            except RuntimeError:
                logger.debug("Event loop closed before %r resolved", self)

        self.add_done_callback(_wake)
        try:
            await asyncio.wait_for(waiter, timeout)
        except TimeoutError:
            msg = f"Gave up waiting for {self!r} after {timeout}s"
            raise BACnetCallerTimeoutError(msg) from None
        finally:
            self.remove_done_callback(_wake)
        return self._outcome()

    def __await__(self) -> Generator[Any, None, T]:
        return self.wait().__await__()


def _release(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)
