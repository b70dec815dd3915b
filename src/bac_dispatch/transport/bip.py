"""BACnet/IP transport over asyncio UDP per Annex J.

Frames handed to :meth:`BIPTransport.send` are APDUs; the transport adds
the NPDU header (with DNET/SNET for routed destinations) and the BVLL
header before the datagram goes out.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import threading
from typing import TYPE_CHECKING

from bac_dispatch.network.address import GLOBAL_BROADCAST, BACnetAddress, BIPAddress
from bac_dispatch.network.npdu import NPDU, decode_npdu, encode_npdu
from bac_dispatch.services.errors import BACnetTransportError, MalformedFrameError
from bac_dispatch.transport.bvll import decode_bvll, encode_bvll
from bac_dispatch.types.enums import BvlcFunction, PduType

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_NPDU_FUNCTIONS = frozenset(
    {
        BvlcFunction.ORIGINAL_UNICAST_NPDU,
        BvlcFunction.ORIGINAL_BROADCAST_NPDU,
        BvlcFunction.FORWARDED_NPDU,
    }
)


def _resolve_local_ip() -> str:
    """Best-effort address of the outgoing interface; no traffic is sent."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("10.255.255.255", 1))
            ip: str = s.getsockname()[0]
            return ip
    except OSError:
        return "127.0.0.1"


class _UDPProtocol(asyncio.DatagramProtocol):
    def __init__(self, callback: Callable[[bytes, tuple[str, int]], None]) -> None:
        self._callback = callback

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._callback(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP transport error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            logger.warning("UDP connection lost: %s", exc)


class BIPTransport:
    """BACnet/IP :class:`~bac_dispatch.transport.port.TransportPort`.

    :param interface: Local IP to bind; ``"0.0.0.0"`` binds all interfaces.
    :param port: UDP port, 47808 by default.
    :param broadcast_address: Directed broadcast address of the subnet.
    """

    def __init__(
        self,
        interface: str = "0.0.0.0",
        port: int = 0xBAC0,
        broadcast_address: str = "255.255.255.255",
    ) -> None:
        self._interface = interface
        self._port = port
        self._broadcast_address = broadcast_address
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None
        self._transport: asyncio.DatagramTransport | None = None
        self._receive_callback: Callable[[BACnetAddress, bytes], None] | None = None
        self._local: BIPAddress | None = None
        # DNET -> MAC of the router that last delivered traffic from that network
        self._routers: dict[int, bytes] = {}

    async def start(self) -> None:
        """Bind the UDP socket and start listening."""
        if self._transport is not None:
            return
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _UDPProtocol(self._on_datagram),
            local_addr=(self._interface, self._port),
            allow_broadcast=True,
        )
        self._loop = loop
        self._loop_thread = threading.get_ident()
        self._transport = transport
        host, port = transport.get_extra_info("sockname")[:2]
        if host == "0.0.0.0":
            host = _resolve_local_ip()
        self._local = BIPAddress(host, port)
        logger.info("BIPTransport started on %s", self._local)

    async def stop(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            self._routers.clear()
            logger.info("BIPTransport stopped")

    def on_receive(self, callback: Callable[[BACnetAddress, bytes], None]) -> None:
        self._receive_callback = callback

    @property
    def local_address(self) -> BACnetAddress:
        if self._local is None:
            msg = "Transport not started"
            raise RuntimeError(msg)
        return BACnetAddress(mac_address=self._local.encode())

    @property
    def routers(self) -> dict[int, BACnetAddress]:
        """Learned router addresses by remote network number (a copy)."""
        return {net: BACnetAddress(mac_address=mac) for net, mac in self._routers.items()}

    # --- Sending ---

    def send(self, destination: BACnetAddress, frame: bytes) -> None:
        """Frame and send an APDU to *destination*.

        Remote stations are reached through the router learned for their
        network, or by local broadcast while no router is known.

        :raises BACnetTransportError: If the transport is not started or
            the datagram cannot be built.
        """
        transport = self._transport
        if transport is None or self._loop is None:
            msg = "Transport not started"
            raise BACnetTransportError(msg)

        expecting_reply = bool(frame) and (frame[0] >> 4) == PduType.CONFIRMED_REQUEST
        npdu = NPDU(
            payload=frame,
            destination=None if destination.is_local else destination,
            expecting_reply=expecting_reply,
        )
        try:
            payload = encode_npdu(npdu)
        except ValueError as e:
            raise BACnetTransportError(str(e)) from e

        if destination.is_local and not destination.is_broadcast:
            target = self._bip_target(destination.mac_address)
            datagram = encode_bvll(BvlcFunction.ORIGINAL_UNICAST_NPDU, payload)
        elif destination.is_global_broadcast or destination.is_broadcast:
            target = (self._broadcast_address, self._port)
            datagram = encode_bvll(BvlcFunction.ORIGINAL_BROADCAST_NPDU, payload)
        else:
            router = self._routers.get(destination.network)  # type: ignore[arg-type]
            if router is None:
                logger.debug("No router known for network %s; broadcasting", destination.network)
                target = (self._broadcast_address, self._port)
                datagram = encode_bvll(BvlcFunction.ORIGINAL_BROADCAST_NPDU, payload)
            else:
                target = self._bip_target(router)
                datagram = encode_bvll(BvlcFunction.ORIGINAL_UNICAST_NPDU, payload)

        if threading.get_ident() == self._loop_thread:
            self._sendto(datagram, target)
        else:
            try:
                self._loop.call_soon_threadsafe(self._sendto, datagram, target)
            except RuntimeError as e:
                msg = "Transport event loop is closed"
                raise BACnetTransportError(msg) from e

    def _sendto(self, datagram: bytes, target: tuple[str, int]) -> None:
        if self._transport is None:
            logger.debug("Dropped datagram to %s:%d: transport stopped", *target)
            return
        self._transport.sendto(datagram, target)

    @staticmethod
    def _bip_target(mac: bytes) -> tuple[str, int]:
        try:
            return BIPAddress.decode(mac).as_tuple()
        except ValueError as e:
            msg = f"Not a B/IP MAC address: {mac.hex()}"
            raise BACnetTransportError(msg) from e

    # --- Receiving ---

    def _on_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        peer = BIPAddress(addr[0], addr[1])
        if peer == self._local:
            return
        try:
            bvll = decode_bvll(data)
            if bvll.function not in _NPDU_FUNCTIONS:
                logger.debug("Ignored BVLC %s from %s", bvll.function.name, peer)
                return
            npdu = decode_npdu(bvll.data)
        except MalformedFrameError as e:
            logger.warning("Dropped malformed datagram from %s: %s", peer, e)
            return

        if npdu.is_network_message:
            logger.debug("Ignored network-layer message %#x from %s", npdu.message_type, peer)
            return

        link_source = bvll.originating_address or peer
        if npdu.source is not None:
            self._routers[npdu.source.network] = link_source.encode()  # type: ignore[index]
            source = npdu.source
        else:
            source = BACnetAddress(mac_address=link_source.encode())

        if npdu.destination is not None and npdu.destination != GLOBAL_BROADCAST and npdu.destination.mac_address:
            logger.debug("Ignored routed frame for %s from %s", npdu.destination, peer)
            return

        callback = self._receive_callback
        if callback is None:
            return
        try:
            callback(source, npdu.payload)
        except Exception:
            logger.exception("Receive handler failed for frame from %s", source)
