"""Network layer: device addressing and NPDU framing."""

from bac_dispatch.network.address import (
    GLOBAL_BROADCAST,
    LOCAL_BROADCAST,
    BACnetAddress,
    BIPAddress,
    parse_address,
)

__all__ = [
    "GLOBAL_BROADCAST",
    "LOCAL_BROADCAST",
    "BACnetAddress",
    "BIPAddress",
    "parse_address",
]
