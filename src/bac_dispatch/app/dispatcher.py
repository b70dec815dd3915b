"""Service dispatch and response correlation.

The :class:`Dispatcher` sends confirmed and unconfirmed requests through a
:class:`~bac_dispatch.transport.port.TransportPort`, correlates inbound
responses with outstanding requests by ``(source, invoke_id)``, runs the
timeout/retry policy, and routes unsolicited traffic to registered
handlers.  Every method is non-blocking and thread-safe; no frame is sent
and no callback runs while the pending-request table's lock is held.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from bac_dispatch.app.future import ServiceFuture
from bac_dispatch.app.retry import RetryPolicy
from bac_dispatch.app.tsm import DEFAULT_ID_SPACE, PendingRequest, PendingRequestTable
from bac_dispatch.encoding.codec import (
    ConfirmedRequest,
    ConfirmedResponse,
    Malformed,
    UnconfirmedMessage,
)
from bac_dispatch.services.errors import (
    BACnetCancelledError,
    BACnetTimeoutError,
    BACnetTransportError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from bac_dispatch.app.timers import Scheduler
    from bac_dispatch.encoding.codec import Codec
    from bac_dispatch.network.address import BACnetAddress
    from bac_dispatch.transport.port import TransportPort

logger = logging.getLogger(__name__)


class Dispatcher:
    """Correlates confirmed requests with their responses.

    :param transport: Port used to send frames.  The dispatcher registers
        :meth:`on_frame_received` as the port's receive handler.
    :param codec: Encodes requests and classifies inbound frames.
    :param scheduler: Clock and timers for the retry policy.
    :param policy: Default retry policy for :meth:`send_confirmed`.
    :param id_space: Invoke IDs available per destination.
    """

    def __init__(
        self,
        transport: TransportPort,
        codec: Codec,
        scheduler: Scheduler,
        *,
        policy: RetryPolicy | None = None,
        id_space: int = DEFAULT_ID_SPACE,
    ) -> None:
        self._transport = transport
        self._codec = codec
        self._scheduler = scheduler
        self._policy = policy or RetryPolicy()
        self._table = PendingRequestTable(id_space)
        self._handlers_lock = threading.Lock()
        self._unconfirmed_handlers: dict[int, list[Callable[[BACnetAddress, UnconfirmedMessage], None]]] = {}
        self._request_handler: Callable[[BACnetAddress, ConfirmedRequest], None] | None = None
        transport.on_receive(self.on_frame_received)

    @property
    def table(self) -> PendingRequestTable:
        return self._table

    @property
    def default_policy(self) -> RetryPolicy:
        return self._policy

    @property
    def codec(self) -> Codec:
        return self._codec

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    # --- Outbound ---

    def send_confirmed(
        self,
        destination: BACnetAddress,
        service_choice: int,
        service_data: bytes,
        policy: RetryPolicy | None = None,
    ) -> ServiceFuture[bytes]:
        """Dispatch a confirmed request and return its future.

        The future resolves with the service-ack octets (empty for a
        SimpleACK), or fails with :class:`BACnetError`,
        :class:`BACnetRejectError`, :class:`BACnetAbortError`,
        :class:`BACnetTimeoutError`, :class:`BACnetCancelledError` or
        :class:`BACnetTransportError`.

        :raises ValueError: If *destination* is a broadcast address.
        :raises InvokeIdExhaustedError: If no invoke ID is free for
            *destination*.
        """
        if destination.is_broadcast:
            msg = f"Confirmed requests need a station address, got broadcast {destination}"
            raise ValueError(msg)
        policy = policy or self._policy
        future: ServiceFuture[bytes] = ServiceFuture(f"service {service_choice} to {destination}")

        def _build(invoke_id: int) -> PendingRequest:
            return PendingRequest(
                destination=destination,
                invoke_id=invoke_id,
                service_choice=service_choice,
                frame=self._codec.encode_confirmed_request(service_choice, invoke_id, service_data),
                future=future,
                policy=policy,
            )

        pending = self._table.register(destination, _build)
        future.bind_canceller(lambda _: self._cancel_pending(pending))
        logger.debug(
            "Sending confirmed service %d to %s invoke_id=%d",
            service_choice,
            destination,
            pending.invoke_id,
        )

        try:
            self._transport.send(destination, pending.frame)
        except BACnetTransportError as e:
            if self._table.remove(pending):
                logger.warning("Send to %s failed: %s", destination, e)
                future.try_set_exception(e)
            return future

        self._arm(pending)
        return future

    def send_unconfirmed(
        self,
        destination: BACnetAddress,
        service_choice: int,
        service_data: bytes,
    ) -> None:
        """Send an unconfirmed request (unicast or broadcast).

        :raises BACnetTransportError: If the local send fails.
        """
        frame = self._codec.encode_unconfirmed_request(service_choice, service_data)
        logger.debug("Sending unconfirmed service %d to %s", service_choice, destination)
        self._transport.send(destination, frame)

    def send_response(self, destination: BACnetAddress, frame: bytes) -> None:
        """Send an already-encoded response to a confirmed request.

        Send failures are logged; the requester's own retries cover them.
        """
        try:
            self._transport.send(destination, frame)
        except BACnetTransportError as e:
            logger.warning("Failed to send response to %s: %s", destination, e)

    # --- Timeout / retry ---

    def _arm(self, pending: PendingRequest) -> None:
        delay = pending.policy.timeout_for(pending.attempts)
        deadline = self._scheduler.time() + delay
        timer = self._scheduler.call_later(delay, self._on_timeout, pending)
        if not self._table.attach_timer(pending, timer, deadline):
            timer.cancel()

    def _on_timeout(self, pending: PendingRequest) -> None:
        # Attempts only advance while the entry is still registered.
        if self._table.begin_retry(pending):
            logger.debug(
                "Retrying invoke_id=%d to %s (attempt %d/%d)",
                pending.invoke_id,
                pending.destination,
                pending.attempts,
                pending.policy.max_attempts,
            )
            try:
                self._transport.send(pending.destination, pending.frame)
            except BACnetTransportError as e:
                logger.debug("Resend to %s failed, counted as lost: %s", pending.destination, e)
            self._arm(pending)
            return

        if not self._table.remove(pending):
            return
        pending.timer = None
        logger.debug(
            "invoke_id=%d to %s timed out after %d attempt(s)",
            pending.invoke_id,
            pending.destination,
            pending.attempts,
        )
        pending.future.try_set_exception(
            BACnetTimeoutError(
                f"No response from {pending.destination} after {pending.attempts} attempt(s)",
                attempts=pending.attempts,
            )
        )

    # --- Cancellation ---

    def cancel(self, future: ServiceFuture[bytes]) -> bool:
        """Abandon the exchange bound to *future*.

        :returns: ``False`` if the future was already terminal.
        """
        return future.cancel()

    def _cancel_pending(self, pending: PendingRequest) -> bool:
        if self._table.remove(pending):
            pending.disarm()
            logger.debug("Cancelled invoke_id=%d to %s", pending.invoke_id, pending.destination)
        return pending.future.try_set_exception(BACnetCancelledError("Cancelled by caller"))

    def abandon_all(self, reason: str = "Dispatcher stopped") -> int:
        """Cancel every outstanding exchange; returns how many were cancelled."""
        entries = self._table.drain()
        for pending in entries:
            pending.disarm()
            pending.future.try_set_exception(BACnetCancelledError(reason))
        if entries:
            logger.info("Abandoned %d outstanding request(s)", len(entries))
        return len(entries)

    # --- Inbound ---

    def add_unconfirmed_handler(
        self,
        service_choice: int,
        handler: Callable[[BACnetAddress, UnconfirmedMessage], None],
    ) -> None:
        """Route unconfirmed messages of *service_choice* to *handler*.

        Handlers run in registration order on the receiving thread.
        """
        with self._handlers_lock:
            self._unconfirmed_handlers.setdefault(service_choice, []).append(handler)

    def remove_unconfirmed_handler(
        self,
        service_choice: int,
        handler: Callable[[BACnetAddress, UnconfirmedMessage], None],
    ) -> None:
        with self._handlers_lock:
            handlers = self._unconfirmed_handlers.get(service_choice)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._unconfirmed_handlers[service_choice]

    def set_request_handler(self, handler: Callable[[BACnetAddress, ConfirmedRequest], None] | None) -> None:
        """Install the handler for confirmed requests addressed to us."""
        self._request_handler = handler

    def on_frame_received(self, source: BACnetAddress, frame: bytes) -> None:
        """Classify one inbound frame and deliver it.  Never raises."""
        decoded = self._codec.decode(frame)
        match decoded:
            case ConfirmedResponse():
                self._on_response(source, decoded)
            case UnconfirmedMessage():
                self._on_unconfirmed(source, decoded)
            case ConfirmedRequest():
                handler = self._request_handler
                if handler is None:
                    logger.debug("No request handler; dropped service %d from %s", decoded.service_choice, source)
                    return
                try:
                    handler(source, decoded)
                except Exception:
                    logger.exception("Request handler failed for service %d from %s", decoded.service_choice, source)
            case Malformed(reason=reason):
                logger.warning("Dropped malformed frame from %s: %s", source, reason)

    def _on_response(self, source: BACnetAddress, response: ConfirmedResponse) -> None:
        pending = self._table.pop(source, response.invoke_id)
        if pending is None:
            logger.debug("Discarded unmatched response invoke_id=%d from %s", response.invoke_id, source)
            return
        pending.disarm()
        if response.error is not None:
            logger.debug("invoke_id=%d from %s failed: %s", response.invoke_id, source, response.error)
            pending.future.try_set_exception(response.error)
        else:
            pending.future.try_set_result(response.data)

    def _on_unconfirmed(self, source: BACnetAddress, message: UnconfirmedMessage) -> None:
        with self._handlers_lock:
            handlers = list(self._unconfirmed_handlers.get(message.service_choice, ()))
        if not handlers:
            logger.debug("No consumer for unconfirmed service %d from %s", message.service_choice, source)
            return
        for handler in handlers:
            try:
                handler(source, message)
            except Exception:
                logger.exception(
                    "Unconfirmed handler %r failed for service %d from %s",
                    handler,
                    message.service_choice,
                    source,
                )
