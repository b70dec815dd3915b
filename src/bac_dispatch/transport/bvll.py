"""BVLL (BACnet Virtual Link Layer) framing for BACnet/IP per Annex J.2."""

from __future__ import annotations

from dataclasses import dataclass

from bac_dispatch.network.address import BIPAddress
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.types.enums import BvlcFunction

BVLC_TYPE_BACNET_IP = 0x81
BVLL_HEADER_LENGTH = 4


@dataclass(frozen=True, slots=True)
class BvllMessage:
    """A decoded BVLL message.

    ``originating_address`` is only present for Forwarded-NPDU.
    """

    function: BvlcFunction
    data: bytes
    originating_address: BIPAddress | None = None


def encode_bvll(
    function: BvlcFunction,
    payload: bytes,
    originating_address: BIPAddress | None = None,
) -> bytes:
    """Wrap *payload* in a BVLL header."""
    body = payload
    if function == BvlcFunction.FORWARDED_NPDU:
        if originating_address is None:
            msg = "Forwarded-NPDU requires originating_address"
            raise ValueError(msg)
        body = originating_address.encode() + payload
    length = BVLL_HEADER_LENGTH + len(body)
    return bytes([BVLC_TYPE_BACNET_IP, function]) + length.to_bytes(2, "big") + body


def decode_bvll(data: bytes | memoryview) -> BvllMessage:
    """Decode a UDP datagram into a :class:`BvllMessage`.

    :raises MalformedFrameError: On a bad type octet, an unknown function,
        or an inconsistent length.
    """
    if len(data) < BVLL_HEADER_LENGTH:
        msg = f"BVLL too short: {len(data)} octet(s)"
        raise MalformedFrameError(msg)
    if data[0] != BVLC_TYPE_BACNET_IP:
        msg = f"Invalid BVLC type: {data[0]:#x}"
        raise MalformedFrameError(msg)
    try:
        function = BvlcFunction(data[1])
    except ValueError:
        msg = f"Unknown BVLC function: {data[1]:#x}"
        raise MalformedFrameError(msg) from None

    length = int.from_bytes(data[2:4], "big")
    if not BVLL_HEADER_LENGTH <= length <= len(data):
        msg = f"Invalid BVLL length: declared {length}, datagram has {len(data)}"
        raise MalformedFrameError(msg)

    if function == BvlcFunction.FORWARDED_NPDU:
        if length < BVLL_HEADER_LENGTH + 6:
            msg = "Forwarded-NPDU truncated before originating address"
            raise MalformedFrameError(msg)
        return BvllMessage(
            function=function,
            data=bytes(data[10:length]),
            originating_address=BIPAddress.decode(data[4:10]),
        )
    return BvllMessage(function=function, data=bytes(data[4:length]))
