"""NPDU encoding and decoding per ASHRAE 135-2016 Clause 6.2."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bac_dispatch.network.address import BACnetAddress
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.types.enums import NetworkPriority

logger = logging.getLogger(__name__)

BACNET_PROTOCOL_VERSION = 1

# Control octet bits (Clause 6.2.2)
_NETWORK_MESSAGE = 0x80
_HAS_DESTINATION = 0x20
_HAS_SOURCE = 0x08
_EXPECTING_REPLY = 0x04


@dataclass(frozen=True, slots=True)
class NPDU:
    """A decoded Network Protocol Data Unit.

    Network-layer messages keep their type in ``message_type`` and their
    body in ``payload``; application frames carry the APDU in ``payload``.
    """

    payload: bytes = b""
    destination: BACnetAddress | None = None
    source: BACnetAddress | None = None
    expecting_reply: bool = False
    priority: NetworkPriority = NetworkPriority.NORMAL
    hop_count: int = 255
    message_type: int | None = None

    @property
    def is_network_message(self) -> bool:
        return self.message_type is not None


def encode_npdu(npdu: NPDU) -> bytes:
    """Encode *npdu* to wire octets.

    :raises ValueError: If the destination or source address is not routable.
    """
    control = int(npdu.priority) & 0x03
    if npdu.is_network_message:
        control |= _NETWORK_MESSAGE
    if npdu.expecting_reply:
        control |= _EXPECTING_REPLY

    buf = bytearray([BACNET_PROTOCOL_VERSION, 0])
    dest = npdu.destination
    if dest is not None:
        if dest.network is None:
            msg = "NPDU destination must carry a network number"
            raise ValueError(msg)
        control |= _HAS_DESTINATION
        buf += dest.network.to_bytes(2, "big")
        buf.append(len(dest.mac_address))
        buf += dest.mac_address

    src = npdu.source
    if src is not None:
        if src.network is None or src.is_global_broadcast or not src.mac_address:
            msg = f"NPDU source must be a station on a remote network, got {src!r}"
            raise ValueError(msg)
        control |= _HAS_SOURCE
        buf += src.network.to_bytes(2, "big")
        buf.append(len(src.mac_address))
        buf += src.mac_address

    if dest is not None:
        buf.append(npdu.hop_count)
    if npdu.is_network_message:
        buf.append(npdu.message_type)  # type: ignore[arg-type]

    buf[1] = control
    buf += npdu.payload
    return bytes(buf)


def decode_npdu(data: bytes | memoryview) -> NPDU:
    """Decode wire octets into an :class:`NPDU`.

    Proprietary network messages (type 0x80 and above) keep their vendor
    ID at the start of ``payload``.

    :raises MalformedFrameError: If the octets are truncated or invalid.
    """
    if len(data) < 2:
        msg = f"NPDU too short: {len(data)} octet(s)"
        raise MalformedFrameError(msg)
    view = memoryview(data)
    if view[0] != BACNET_PROTOCOL_VERSION:
        msg = f"Unsupported BACnet protocol version: {view[0]}"
        raise MalformedFrameError(msg)

    control = view[1]
    offset = 2
    destination = None
    source = None
    hop_count = 255

    if control & _HAS_DESTINATION:
        destination, offset = _decode_address(view, offset, "destination")
    if control & _HAS_SOURCE:
        source, offset = _decode_address(view, offset, "source")
        if source.is_broadcast:
            msg = "NPDU source cannot be a broadcast address"
            raise MalformedFrameError(msg)
    if control & _HAS_DESTINATION:
        hop_count = _octet(view, offset, "hop count")
        offset += 1

    message_type = None
    if control & _NETWORK_MESSAGE:
        message_type = _octet(view, offset, "network message type")
        offset += 1

    return NPDU(
        payload=bytes(view[offset:]),
        destination=destination,
        source=source,
        expecting_reply=bool(control & _EXPECTING_REPLY),
        priority=NetworkPriority(control & 0x03),
        hop_count=hop_count,
        message_type=message_type,
    )


def _octet(view: memoryview, offset: int, what: str) -> int:
    if offset >= len(view):
        msg = f"NPDU truncated before {what}"
        raise MalformedFrameError(msg)
    return view[offset]


def _decode_address(view: memoryview, offset: int, what: str) -> tuple[BACnetAddress, int]:
    if offset + 3 > len(view):
        msg = f"NPDU truncated in {what} network/length"
        raise MalformedFrameError(msg)
    network = int.from_bytes(view[offset : offset + 2], "big")
    length = view[offset + 2]
    offset += 3
    if offset + length > len(view):
        msg = f"NPDU {what} address declares {length} octets, only {len(view) - offset} remain"
        raise MalformedFrameError(msg)
    try:
        address = BACnetAddress(network=network, mac_address=bytes(view[offset : offset + length]))
    except ValueError as e:
        raise MalformedFrameError(str(e)) from e
    return address, offset + length
