"""Pending-request table: correlation state for outstanding confirmed requests.

Entries are keyed by ``(destination, invoke_id)``.  An invoke ID is held by
exactly one entry until that entry is removed, so it cannot be reused for
the destination while the exchange is unresolved.  Removal is atomic, which
makes the first of several competing resolvers (a response, a duplicate, a
timer, a cancel) the only one that finds the entry.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bac_dispatch.services.errors import InvokeIdExhaustedError

if TYPE_CHECKING:
    from collections.abc import Callable

    from bac_dispatch.app.future import ServiceFuture
    from bac_dispatch.app.retry import RetryPolicy
    from bac_dispatch.app.timers import TimerHandle
    from bac_dispatch.network.address import BACnetAddress

logger = logging.getLogger(__name__)

DEFAULT_ID_SPACE = 256

# Cursors of destinations with nothing outstanding are dropped past this count.
MAX_IDLE_CURSORS = 1024


@dataclass(eq=False)
class PendingRequest:
    """One in-flight confirmed request.

    Identity (not field equality) distinguishes entries, so a stale timer
    for an earlier holder of the same invoke ID cannot remove a newer one.
    """

    destination: BACnetAddress
    invoke_id: int
    service_choice: int
    frame: bytes
    future: ServiceFuture[bytes]
    policy: RetryPolicy
    attempts: int = 1
    deadline: float = 0.0
    timer: TimerHandle | None = field(default=None, repr=False)

    @property
    def key(self) -> tuple[BACnetAddress, int]:
        return self.destination, self.invoke_id

    def disarm(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class PendingRequestTable:
    """Invoke-ID allocation and the table of outstanding requests.

    All methods are thread-safe.  None of them send frames or run user
    callbacks.

    :param id_space: Number of invoke IDs per destination (1-256).
    """

    def __init__(self, id_space: int = DEFAULT_ID_SPACE) -> None:
        if not 1 <= id_space <= DEFAULT_ID_SPACE:
            msg = f"id_space must be 1-{DEFAULT_ID_SPACE}, got {id_space}"
            raise ValueError(msg)
        self._id_space = id_space
        self._lock = threading.Lock()
        self._pending: dict[tuple[BACnetAddress, int], PendingRequest] = {}
        self._next_id: dict[BACnetAddress, int] = {}
        self._held: dict[BACnetAddress, int] = {}

    @property
    def id_space(self) -> int:
        return self._id_space

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def register(
        self,
        destination: BACnetAddress,
        build: Callable[[int], PendingRequest],
    ) -> PendingRequest:
        """Allocate a free invoke ID for *destination* and insert ``build(invoke_id)``.

        Allocation probes linearly from the destination's cursor, wrapping
        over the ID space; allocation and insertion happen under one lock.

        :raises InvokeIdExhaustedError: If every ID for *destination* is held.
        """
        with self._lock:
            if self._held.get(destination, 0) >= self._id_space:
                raise InvokeIdExhaustedError(destination)
            cursor = self._next_id.get(destination, 0)
            for step in range(self._id_space):
                invoke_id = (cursor + step) % self._id_space
                if (destination, invoke_id) not in self._pending:
                    break
            else:  # pragma: no cover - guarded by the held count
                raise InvokeIdExhaustedError(destination)

            pending = build(invoke_id)
            self._pending[(destination, invoke_id)] = pending
            self._next_id[destination] = (invoke_id + 1) % self._id_space
            self._held[destination] = self._held.get(destination, 0) + 1
            return pending

    def get(self, destination: BACnetAddress, invoke_id: int) -> PendingRequest | None:
        with self._lock:
            return self._pending.get((destination, invoke_id))

    def pop(self, destination: BACnetAddress, invoke_id: int) -> PendingRequest | None:
        """Atomically remove and return the entry, or ``None`` if absent."""
        with self._lock:
            pending = self._pending.pop((destination, invoke_id), None)
            if pending is not None:
                self._release(destination)
            return pending

    def remove(self, pending: PendingRequest) -> bool:
        """Remove *pending* only if it is still the registered holder of its key."""
        with self._lock:
            if self._pending.get(pending.key) is not pending:
                return False
            del self._pending[pending.key]
            self._release(pending.destination)
            return True

    def contains(self, pending: PendingRequest) -> bool:
        with self._lock:
            return self._pending.get(pending.key) is pending

    def begin_retry(self, pending: PendingRequest) -> bool:
        """Count one more attempt for a still-registered entry.

        :returns: ``False`` if the entry was removed or its policy allows no
            further attempts; the attempt count is then left unchanged.
        """
        with self._lock:
            if self._pending.get(pending.key) is not pending:
                return False
            if pending.attempts >= pending.policy.max_attempts:
                return False
            pending.attempts += 1
            return True

    def attach_timer(self, pending: PendingRequest, timer: TimerHandle, deadline: float) -> bool:
        """Record the armed timer of a still-registered entry.

        :returns: ``False`` if the entry was already removed; the caller
            then cancels *timer* itself.
        """
        with self._lock:
            if self._pending.get(pending.key) is not pending:
                return False
            pending.timer = timer
            pending.deadline = deadline
            return True

    def outstanding(self, destination: BACnetAddress | None = None) -> list[PendingRequest]:
        """Snapshot of outstanding entries, optionally for one destination."""
        with self._lock:
            return [
                p for p in self._pending.values() if destination is None or p.destination == destination
            ]

    def drain(self) -> list[PendingRequest]:
        """Remove and return every entry."""
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()
            self._held.clear()
            self._next_id.clear()
            return entries

    def _release(self, destination: BACnetAddress) -> None:
        remaining = self._held.get(destination, 0) - 1
        if remaining > 0:
            self._held[destination] = remaining
        else:
            # Cursor is kept: a released ID is reissued last.
            self._held.pop(destination, None)
            if len(self._next_id) > MAX_IDLE_CURSORS:
                self._prune_cursors()

    def _prune_cursors(self) -> None:
        idle = [d for d in self._next_id if d not in self._held]
        for destination in idle:
            del self._next_id[destination]
        logger.debug("Dropped invoke ID cursors of %d idle destination(s)", len(idle))
