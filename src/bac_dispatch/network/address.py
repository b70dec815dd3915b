"""Device addressing per ASHRAE 135-2016 Clause 6.

A :class:`BACnetAddress` is the correlation key's destination component:
equality is structural over ``(network, mac_address)``.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import Any

DEFAULT_PORT = 0xBAC0
"""Default BACnet/IP UDP port (47808)."""

_GLOBAL_NETWORK = 0xFFFF


@dataclass(frozen=True, slots=True)
class BIPAddress:
    """BACnet/IP station address: IPv4 host and UDP port (a 6-octet MAC)."""

    host: str
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        try:
            ipaddress.IPv4Address(self.host)
        except ValueError as e:
            msg = f"Invalid IPv4 address: {self.host!r}"
            raise ValueError(msg) from e
        if not 0 <= self.port <= 0xFFFF:
            msg = f"Port number out of range: {self.port}"
            raise ValueError(msg)

    def encode(self) -> bytes:
        """Encode as the 6-octet B/IP MAC."""
        return ipaddress.IPv4Address(self.host).packed + self.port.to_bytes(2, "big")

    @classmethod
    def decode(cls, data: bytes | memoryview) -> BIPAddress:
        if len(data) < 6:
            msg = f"B/IP address needs 6 octets, got {len(data)}"
            raise ValueError(msg)
        return cls(
            host=str(ipaddress.IPv4Address(bytes(data[:4]))),
            port=int.from_bytes(data[4:6], "big"),
        )

    def as_tuple(self) -> tuple[str, int]:
        """``(host, port)`` suitable for ``sendto``."""
        return self.host, self.port

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class BACnetAddress:
    """Optional network number plus a link-layer MAC address.

    ``network`` is ``None`` for the local network, 0xFFFF for a global
    broadcast, or 1-65534 for a remote network.  An empty ``mac_address``
    denotes a broadcast on the addressed network.
    """

    network: int | None = None
    mac_address: bytes = b""

    def __post_init__(self) -> None:
        if self.network is not None and self.network != _GLOBAL_NETWORK and not 1 <= self.network <= 65534:
            msg = f"Network number must be 1-65534, got {self.network}"
            raise ValueError(msg)
        if self.network == _GLOBAL_NETWORK and self.mac_address:
            msg = "A global broadcast address cannot carry a MAC address"
            raise ValueError(msg)

    @classmethod
    def from_bip(cls, host: str, port: int = DEFAULT_PORT, *, network: int | None = None) -> BACnetAddress:
        """Build a station address from a B/IP host and port."""
        return cls(network=network, mac_address=BIPAddress(host, port).encode())

    @property
    def is_local(self) -> bool:
        return self.network is None

    @property
    def is_broadcast(self) -> bool:
        """True for local, remote and global broadcasts."""
        return not self.mac_address

    @property
    def is_global_broadcast(self) -> bool:
        return self.network == _GLOBAL_NETWORK

    @property
    def is_remote_broadcast(self) -> bool:
        return self.network not in (None, _GLOBAL_NETWORK) and not self.mac_address

    @property
    def bip(self) -> BIPAddress | None:
        """The B/IP form of the MAC, if it is a 6-octet B/IP address."""
        if len(self.mac_address) != 6:
            return None
        return BIPAddress.decode(self.mac_address)

    def __str__(self) -> str:
        """Render in the form accepted by :func:`parse_address`.

        ``"10.0.0.5:47808"``, ``"2:10.0.0.5:47808"``, ``"*"``, ``"2:*"``,
        or ``""`` for the local broadcast.
        """
        if self.is_global_broadcast:
            return "*"
        if self.is_remote_broadcast:
            return f"{self.network}:*"
        bip = self.bip
        station = str(bip) if bip is not None else self.mac_address.hex()
        if self.network is not None:
            return f"{self.network}:{station}"
        return station

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"address": str(self)}
        if self.network is not None:
            result["network"] = self.network
        if self.mac_address:
            result["mac_address"] = self.mac_address.hex()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BACnetAddress:
        mac_hex = data.get("mac_address", "")
        return cls(network=data.get("network"), mac_address=bytes.fromhex(mac_hex))


LOCAL_BROADCAST = BACnetAddress()
GLOBAL_BROADCAST = BACnetAddress(network=_GLOBAL_NETWORK)


def remote_broadcast(network: int) -> BACnetAddress:
    """Broadcast on remote network *network*."""
    return BACnetAddress(network=network)


_ADDR_RE = re.compile(
    r"^(?:(?P<network>\d+):)?"
    r"(?:(?P<host>\d{1,3}(?:\.\d{1,3}){3})(?::(?P<port>\d+))?|(?P<wildcard>\*))$"
)


def parse_address(addr: str | BACnetAddress) -> BACnetAddress:
    """Parse a human-readable address.

    Accepted formats::

        "192.168.1.100"           -> local station, port 47808
        "192.168.1.100:47809"     -> local station, explicit port
        "2:192.168.1.100"         -> station on remote network 2
        "*"                       -> global broadcast
        "2:*"                     -> broadcast on remote network 2

    A :class:`BACnetAddress` is returned unchanged.

    :raises ValueError: If the format is not recognised.
    """
    if isinstance(addr, BACnetAddress):
        return addr

    text = addr.strip()
    m = _ADDR_RE.match(text)
    if m is None:
        msg = f"Cannot parse address: {addr!r}. Expected '10.0.0.5', '10.0.0.5:47808', '2:10.0.0.5' or '*'"
        raise ValueError(msg)

    network = int(m["network"]) if m["network"] is not None else None
    if m["wildcard"]:
        return GLOBAL_BROADCAST if network is None else remote_broadcast(network)

    port = int(m["port"]) if m["port"] else DEFAULT_PORT
    return BACnetAddress.from_bip(m["host"], port, network=network)
