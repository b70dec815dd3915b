"""Discovery: collecting I-Am announcements answering one Who-Is broadcast.

Each :class:`DiscoverySession` accumulates announcements for a bounded
window, keyed by device instance so that a later announcement from the
same device replaces the earlier one.  When the window elapses (or the
expected number of devices has answered) the session closes, later
announcements are refused, and the result list is delivered through the
session's future.  Sessions are independent; one I-Am may be folded into
several open sessions.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bac_dispatch.app.future import ServiceFuture
from bac_dispatch.network.address import GLOBAL_BROADCAST
from bac_dispatch.services.errors import BACnetCancelledError, BACnetTransportError
from bac_dispatch.services.who_is import IAmRequest, WhoIsRequest
from bac_dispatch.types.enums import Segmentation, UnconfirmedServiceChoice

if TYPE_CHECKING:
    from collections.abc import Callable

    from bac_dispatch.app.dispatcher import Dispatcher
    from bac_dispatch.app.timers import Scheduler, TimerHandle
    from bac_dispatch.encoding.codec import UnconfirmedMessage
    from bac_dispatch.network.address import BACnetAddress
    from bac_dispatch.types.primitives import ObjectIdentifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeviceAnnouncement:
    """A device's claim of identity, as carried by I-Am."""

    address: BACnetAddress
    device_identifier: ObjectIdentifier
    max_apdu_length: int = 1476
    segmentation_supported: Segmentation = Segmentation.NONE
    vendor_id: int = 0

    @property
    def instance(self) -> int:
        return self.device_identifier.instance_number

    @classmethod
    def from_i_am(cls, source: BACnetAddress, iam: IAmRequest) -> DeviceAnnouncement:
        return cls(
            address=source,
            device_identifier=iam.object_identifier,
            max_apdu_length=iam.max_apdu_length,
            segmentation_supported=iam.segmentation_supported,
            vendor_id=iam.vendor_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance": self.instance,
            "address": str(self.address),
            "max_apdu_length": self.max_apdu_length,
            "segmentation_supported": self.segmentation_supported.name.lower(),
            "vendor_id": self.vendor_id,
        }


class DiscoverySession:
    """Accumulating result set of one discovery window.

    Created by :meth:`BroadcastCollector.start_discovery`.  ``future``
    resolves with the announcements in first-seen order when the session
    closes.
    """

    def __init__(
        self,
        session_id: int,
        deadline: float,
        *,
        low_limit: int | None = None,
        high_limit: int | None = None,
        expected_count: int | None = None,
    ) -> None:
        self.session_id = session_id
        self.deadline = deadline
        self.low_limit = low_limit
        self.high_limit = high_limit
        self.expected_count = expected_count
        self.future: ServiceFuture[list[DeviceAnnouncement]] = ServiceFuture(f"discovery {session_id}")
        self._lock = threading.Lock()
        self._found: dict[int, DeviceAnnouncement] = {}
        self._closed = False
        self._timer: TimerHandle | None = None

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<DiscoverySession {self.session_id} {state} found={len(self._found)}>"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def complete(self) -> bool:
        """True once *expected_count* distinct devices have answered."""
        return self.expected_count is not None and len(self._found) >= self.expected_count

    def accepts(self, instance: int) -> bool:
        if self.low_limit is not None and instance < self.low_limit:
            return False
        return not (self.high_limit is not None and instance > self.high_limit)

    def offer(self, announcement: DeviceAnnouncement) -> bool:
        """Fold *announcement* in; a repeat instance replaces the earlier entry.

        :returns: ``False`` if the session is closed or the instance is
            outside the requested range.
        """
        if not self.accepts(announcement.instance):
            return False
        with self._lock:
            if self._closed:
                return False
            previous = self._found.get(announcement.instance)
            self._found[announcement.instance] = announcement
        if previous is not None and previous.address != announcement.address:
            logger.debug(
                "Device %d moved from %s to %s during discovery %d",
                announcement.instance,
                previous.address,
                announcement.address,
                self.session_id,
            )
        return True

    def results(self) -> list[DeviceAnnouncement]:
        """Snapshot of the announcements gathered so far."""
        with self._lock:
            return list(self._found.values())

    def close(self) -> list[DeviceAnnouncement] | None:
        """Stop accepting announcements.

        :returns: The final result list, or ``None`` if already closed.
        """
        with self._lock:
            if self._closed:
                return None
            self._closed = True
            timer, self._timer = self._timer, None
            results = list(self._found.values())
        if timer is not None:
            timer.cancel()
        return results

    def cancel(self) -> bool:
        return self.future.cancel()


class BroadcastCollector:
    """Runs discovery sessions over the dispatcher's I-Am traffic.

    :param dispatcher: Dispatcher to send Who-Is through and receive I-Am from.
    :param scheduler: Timer source for collection windows; defaults to the
        dispatcher's scheduler.
    :param on_results: Called with each closed session's results before its
        future resolves (the remote directory's upsert hook).
    :param on_unsolicited: Called with I-Am announcements that no open
        session accepted.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        scheduler: Scheduler | None = None,
        *,
        on_results: Callable[[list[DeviceAnnouncement]], Any] | None = None,
        on_unsolicited: Callable[[DeviceAnnouncement], Any] | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._scheduler = scheduler or dispatcher.scheduler
        self._on_results = on_results
        self._on_unsolicited = on_unsolicited
        self._lock = threading.Lock()
        self._sessions: dict[int, DiscoverySession] = {}
        self._ids = itertools.count(1)
        dispatcher.add_unconfirmed_handler(UnconfirmedServiceChoice.I_AM, self._on_i_am)

    def open_sessions(self) -> list[DiscoverySession]:
        with self._lock:
            return list(self._sessions.values())

    def start_discovery(
        self,
        window: float,
        *,
        low_limit: int | None = None,
        high_limit: int | None = None,
        destination: BACnetAddress = GLOBAL_BROADCAST,
        expected_count: int | None = None,
    ) -> DiscoverySession:
        """Broadcast Who-Is and collect I-Am answers for *window* seconds.

        A transport failure fails the session's future immediately.

        :raises ValueError: If *window* is not positive or the limits are invalid.
        """
        if window <= 0:
            msg = f"Discovery window must be positive, got {window}"
            raise ValueError(msg)
        if expected_count is not None and expected_count < 1:
            msg = f"expected_count must be at least 1, got {expected_count}"
            raise ValueError(msg)
        who_is = WhoIsRequest(low_limit, high_limit)

        session = DiscoverySession(
            next(self._ids),
            self._scheduler.time() + window,
            low_limit=who_is.low_limit,
            high_limit=who_is.high_limit,
            expected_count=expected_count,
        )
        session.future.bind_canceller(lambda _: self._cancel(session))
        with self._lock:
            self._sessions[session.session_id] = session
        session._timer = self._scheduler.call_later(window, self._finish, session)

        try:
            self._dispatcher.send_unconfirmed(
                destination, UnconfirmedServiceChoice.WHO_IS, who_is.encode()
            )
        except BACnetTransportError as e:
            self._detach(session)
            session.close()
            session.future.try_set_exception(e)
            logger.warning("Discovery %d could not send Who-Is: %s", session.session_id, e)
            return session

        logger.info(
            "Discovery %d started: window=%.1fs range=%s-%s",
            session.session_id,
            window,
            "*" if who_is.low_limit is None else who_is.low_limit,
            "*" if who_is.high_limit is None else who_is.high_limit,
        )
        return session

    def close_all(self) -> None:
        """Close every open session now, delivering what each has gathered."""
        for session in self.open_sessions():
            self._finish(session)

    def _detach(self, session: DiscoverySession) -> None:
        with self._lock:
            self._sessions.pop(session.session_id, None)

    def _finish(self, session: DiscoverySession) -> None:
        self._detach(session)
        results = session.close()
        if results is None:
            return
        logger.info("Discovery %d closed: %d device(s)", session.session_id, len(results))
        if self._on_results is not None:
            try:
                self._on_results(results)
            except Exception:
                logger.exception("Discovery result hook failed for session %d", session.session_id)
        session.future.try_set_result(results)

    def _cancel(self, session: DiscoverySession) -> bool:
        self._detach(session)
        session.close()
        return session.future.try_set_exception(BACnetCancelledError("Discovery cancelled"))

    def _on_i_am(self, source: BACnetAddress, message: UnconfirmedMessage) -> None:
        try:
            iam = IAmRequest.decode(message.data)
        except ValueError as e:
            logger.warning("Dropped malformed I-Am from %s: %s", source, e)
            return
        announcement = DeviceAnnouncement.from_i_am(source, iam)

        accepted = False
        for session in self.open_sessions():
            if session.offer(announcement):
                accepted = True
                if session.complete:
                    self._finish(session)

        if not accepted and self._on_unsolicited is not None:
            self._on_unsolicited(announcement)
