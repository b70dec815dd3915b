"""Shared test utilities for bac-dispatch tests."""

from __future__ import annotations

import heapq
import itertools
from typing import Any

from bac_dispatch.encoding.primitives import encode_property_value
from bac_dispatch.network.address import BACnetAddress
from bac_dispatch.services.errors import BACnetTransportError
from bac_dispatch.services.read_property import ReadPropertyACK, ReadPropertyRequest

PEER = BACnetAddress.from_bip("192.168.1.1")
OTHER_PEER = BACnetAddress.from_bip("192.168.1.2")
LOCAL = BACnetAddress.from_bip("192.168.1.100")


class ManualScheduler:
    """Scheduler driven by :meth:`advance` instead of wall-clock time."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._seq = itertools.count()
        self._queue: list[tuple[float, int, _ManualTimer]] = []

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Any, *args: Any) -> _ManualTimer:
        timer = _ManualTimer(self._now + delay, callback, args)
        heapq.heappush(self._queue, (timer.when, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running every timer that falls due in order."""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            self._now = when
            if not timer.cancelled:
                timer.cancelled = True
                timer.callback(*timer.args)
        self._now = target


class _ManualTimer:
    def __init__(self, when: float, callback: Any, args: tuple[Any, ...]) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTransport:
    """Transport port that records sends and lets tests inject frames."""

    def __init__(self, local_address: BACnetAddress = LOCAL) -> None:
        self.sent: list[tuple[BACnetAddress, bytes]] = []
        self.fail_sends = False
        self.started = False
        self._local_address = local_address
        self._callback: Any = None

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    def send(self, destination: BACnetAddress, frame: bytes) -> None:
        if self.fail_sends:
            msg = "Simulated send failure"
            raise BACnetTransportError(msg)
        self.sent.append((destination, frame))

    def on_receive(self, callback: Any) -> None:
        self._callback = callback

    @property
    def local_address(self) -> BACnetAddress:
        return self._local_address

    def deliver(self, source: BACnetAddress, frame: bytes) -> None:
        self._callback(source, frame)

    def clear(self) -> None:
        self.sent.clear()


class LoopbackHub:
    """In-memory link joining :class:`LoopbackTransport` ports.

    Delivery is synchronous; broadcasts reach every port except the sender.
    """

    def __init__(self) -> None:
        self.ports: dict[BACnetAddress, LoopbackTransport] = {}
        self.dropping: set[BACnetAddress] = set()

    def port(self, host: str) -> LoopbackTransport:
        transport = LoopbackTransport(self, BACnetAddress.from_bip(host))
        self.ports[transport.local_address] = transport
        return transport

    def route(self, source: BACnetAddress, destination: BACnetAddress, frame: bytes) -> None:
        if destination.is_broadcast:
            targets = [p for a, p in self.ports.items() if a != source]
        else:
            port = self.ports.get(destination)
            targets = [port] if port is not None else []
        for target in targets:
            if target.local_address not in self.dropping and target.started:
                target.receive(source, frame)


class LoopbackTransport:
    def __init__(self, hub: LoopbackHub, address: BACnetAddress) -> None:
        self._hub = hub
        self._address = address
        self._callback: Any = None
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    def send(self, destination: BACnetAddress, frame: bytes) -> None:
        if not self.started:
            msg = "Transport not started"
            raise BACnetTransportError(msg)
        self._hub.route(self._address, destination, frame)

    def on_receive(self, callback: Any) -> None:
        self._callback = callback

    @property
    def local_address(self) -> BACnetAddress:
        return self._address

    def receive(self, source: BACnetAddress, frame: bytes) -> None:
        if self._callback is not None:
            self._callback(source, frame)


def answer_read(transport: FakeTransport, codec: Any, value: object, index: int = -1) -> None:
    """Answer the ReadProperty request at ``transport.sent[index]`` with *value*."""
    destination, frame = transport.sent[index]
    request = codec.decode(frame)
    rp = ReadPropertyRequest.decode(request.data)
    ack = ReadPropertyACK(
        object_identifier=rp.object_identifier,
        property_identifier=rp.property_identifier,
        property_array_index=rp.property_array_index,
        property_value=encode_property_value(value),
    )
    transport.deliver(
        destination, codec.encode_complex_ack(request.invoke_id, request.service_choice, ack.encode())
    )


def answer_simple(transport: FakeTransport, codec: Any, index: int = -1) -> None:
    """Acknowledge the confirmed request at ``transport.sent[index]``."""
    destination, frame = transport.sent[index]
    request = codec.decode(frame)
    transport.deliver(destination, codec.encode_simple_ack(request.invoke_id, request.service_choice))
