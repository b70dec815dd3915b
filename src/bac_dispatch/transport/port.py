"""Transport port boundary consumed by the dispatcher.

A transport moves opaque frames (APDUs) between device addresses.  It is
unreliable: frames may be lost, duplicated or reordered, and the dispatcher
never assumes otherwise.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

    from bac_dispatch.network.address import BACnetAddress


@runtime_checkable
class TransportPort(Protocol):
    """Interface every transport used by a :class:`~bac_dispatch.app.dispatcher.Dispatcher` satisfies."""

    async def start(self) -> None:
        """Bind the underlying link and begin delivering frames."""
        ...

    async def stop(self) -> None:
        """Release the link.  No callbacks run after this returns."""
        ...

    def send(self, destination: BACnetAddress, frame: bytes) -> None:
        """Send *frame* to *destination*, which may be a broadcast address.

        Must not block.  May be called from any thread.

        :raises BACnetTransportError: If the frame cannot be handed to the
            local link (not started, socket error).
        """
        ...

    def on_receive(self, callback: Callable[[BACnetAddress, bytes], None]) -> None:
        """Register the handler called as ``callback(source, frame)`` per inbound frame."""
        ...

    @property
    def local_address(self) -> BACnetAddress:
        """This port's own station address."""
        ...
