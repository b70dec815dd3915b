"""Simplified BACnet client over :class:`~bac_dispatch.app.application.BACnetApplication`.

Accepts plain strings wherever a protocol type is expected: addresses
(``"192.168.1.10"``), object identifiers (``"ai,1"``), property
identifiers (``"pv"``), and device instance numbers (``1234`` or
``"1234"``).

Typical usage::

    from bac_dispatch import Client, DeviceConfig

    async with Client(DeviceConfig(instance_number=999)) as client:
        devices = await client.discover(timeout=3.0)
        value = await client.read(devices[0].instance, "ai,1", "pv")
        await client.write("192.168.1.100", "av,1", "pv", 72.5, priority=8)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bac_dispatch.app.application import BACnetApplication, DeviceConfig
from bac_dispatch.app.directory import RemoteDeviceEntry
from bac_dispatch.network.address import GLOBAL_BROADCAST, parse_address
from bac_dispatch.types.parsing import parse_object_identifier, parse_property_identifier

if TYPE_CHECKING:
    from collections.abc import Callable

    from bac_dispatch.app.notifications import Notification, Subscription
    from bac_dispatch.app.timers import Scheduler
    from bac_dispatch.network.address import BACnetAddress
    from bac_dispatch.transport.port import TransportPort
    from bac_dispatch.types.enums import ObjectType, PropertyIdentifier
    from bac_dispatch.types.primitives import ObjectIdentifier


def _resolve_device(device: str | int | BACnetAddress | RemoteDeviceEntry) -> int | BACnetAddress | RemoteDeviceEntry:
    """Instance numbers stay numbers; other strings parse as addresses."""
    if isinstance(device, str):
        text = device.strip()
        if text.isdigit():
            return int(text)
        return parse_address(text)
    return device


class Client:
    """Simplified BACnet client for common use cases.

    All results are awaited; the underlying
    :class:`~bac_dispatch.app.future.ServiceFuture` API remains available
    through :attr:`app`.

    Usage::

        async with Client(instance_number=999) as client:
            value = await client.read("192.168.1.100", "ai,1", "pv")
    """

    def __init__(
        self,
        config: DeviceConfig | None = None,
        *,
        instance_number: int = 999,
        interface: str = "0.0.0.0",
        port: int = 0xBAC0,
        transport: TransportPort | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Create a BACnet client.

        :param config: Full device configuration.  If provided, the
            *instance_number*, *interface* and *port* arguments are ignored.
        :param transport: Port to use instead of BACnet/IP.
        :param scheduler: Timer source instead of the running loop's.
        """
        if config is None:
            config = DeviceConfig(
                instance_number=instance_number,
                interface=interface,
                port=port,
            )
        self._config = config
        self._transport = transport
        self._scheduler = scheduler
        self._app: BACnetApplication | None = None

    @property
    def app(self) -> BACnetApplication:
        """The underlying BACnetApplication.

        :raises RuntimeError: If the client has not been started.
        """
        if self._app is None:
            msg = "Client not started; use 'async with Client(...) as c:'"
            raise RuntimeError(msg)
        return self._app

    async def __aenter__(self) -> Client:
        """Start the application and return the client."""
        self._app = BACnetApplication(self._config, transport=self._transport, scheduler=self._scheduler)
        await self._app.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Stop the application."""
        if self._app is not None:
            await self._app.stop()
            self._app = None

    # --- Discovery ---

    async def discover(
        self,
        low_limit: int | None = None,
        high_limit: int | None = None,
        destination: str | BACnetAddress | None = None,
        timeout: float = 3.0,
        expected_count: int | None = None,
    ) -> list[RemoteDeviceEntry]:
        """Discover devices via Who-Is.

        :param destination: Broadcast address (``"*"``, ``"2:*"``, an IP
            string), or ``None`` for global broadcast.
        :param timeout: Collection window in seconds.
        :param expected_count: Return early once this many devices answered.
        """
        dest = GLOBAL_BROADCAST if destination is None else parse_address(destination)
        return await self.app.discover(
            timeout,
            low_limit=low_limit,
            high_limit=high_limit,
            destination=dest,
            expected_count=expected_count,
        )

    def devices(self) -> list[RemoteDeviceEntry]:
        """Directory snapshot of every known device."""
        return self.app.directory.list_all()

    def device(self, device: str | int | BACnetAddress) -> RemoteDeviceEntry | None:
        target = _resolve_device(device)
        if isinstance(target, int):
            return self.app.directory.lookup(target)
        if isinstance(target, RemoteDeviceEntry):
            return self.app.directory.lookup(target.instance)
        return self.app.directory.lookup_address(target)

    async def load_objects(self, device: str | int | RemoteDeviceEntry) -> list[ObjectIdentifier]:
        """Read a known device's object list into the directory."""
        target = _resolve_device(device)
        entry = self._entry(target)
        return await self.app.directory.load_objects(entry)

    def _entry(self, target: int | BACnetAddress | RemoteDeviceEntry) -> RemoteDeviceEntry | int:
        if isinstance(target, (int, RemoteDeviceEntry)):
            return target
        entry = self.app.directory.lookup_address(target)
        if entry is None:
            msg = f"No known device at {target}"
            raise LookupError(msg)
        return entry

    # --- Properties ---

    async def read(
        self,
        device: str | int | BACnetAddress | RemoteDeviceEntry,
        object_identifier: str | tuple[str | ObjectType | int, int] | ObjectIdentifier,
        property_identifier: str | int | PropertyIdentifier,
        array_index: int | None = None,
        timeout: float | None = None,
    ) -> object:
        """Read a property and return the decoded Python value.

        :param timeout: Caller-side wait limit in seconds; the exchange
            keeps its own retry budget.
        """
        future = self.app.read_property(
            _resolve_device(device),
            parse_object_identifier(object_identifier),
            parse_property_identifier(property_identifier),
            array_index,
        )
        return await future.wait(timeout)

    async def write(
        self,
        device: str | int | BACnetAddress | RemoteDeviceEntry,
        object_identifier: str | tuple[str | ObjectType | int, int] | ObjectIdentifier,
        property_identifier: str | int | PropertyIdentifier,
        value: object,
        priority: int | None = None,
        array_index: int | None = None,
        timeout: float | None = None,
    ) -> None:
        """Write a Python value to a property."""
        future = self.app.write_property(
            _resolve_device(device),
            parse_object_identifier(object_identifier),
            parse_property_identifier(property_identifier),
            value,
            priority=priority,
            array_index=array_index,
        )
        await future.wait(timeout)

    # --- COV ---

    async def subscribe(
        self,
        device: str | int | BACnetAddress | RemoteDeviceEntry,
        object_identifier: str | tuple[str | ObjectType | int, int] | ObjectIdentifier,
        process_id: int = 1,
        confirmed: bool = False,
        lifetime: int | None = None,
        timeout: float | None = None,
    ) -> None:
        """Subscribe to COV notifications for one object.

        :param lifetime: Subscription lifetime in seconds, or ``None``
            for indefinite.
        """
        future = self.app.subscribe_cov(
            _resolve_device(device),
            parse_object_identifier(object_identifier),
            process_id=process_id,
            confirmed=confirmed,
            lifetime=lifetime,
        )
        await future.wait(timeout)

    async def unsubscribe(
        self,
        device: str | int | BACnetAddress | RemoteDeviceEntry,
        object_identifier: str | tuple[str | ObjectType | int, int] | ObjectIdentifier,
        process_id: int = 1,
        timeout: float | None = None,
    ) -> None:
        """Cancel a COV subscription."""
        future = self.app.unsubscribe_cov(
            _resolve_device(device),
            parse_object_identifier(object_identifier),
            process_id=process_id,
        )
        await future.wait(timeout)

    def on_change(
        self,
        callback: Callable[[Notification], Any],
        device: str | int | None = None,
        object_identifier: str | tuple[str | ObjectType | int, int] | ObjectIdentifier | None = None,
        property_identifier: str | int | PropertyIdentifier | None = None,
    ) -> Subscription:
        """Call *callback* for each matching property change.

        ``None`` filters match anything.  The callback runs on the thread
        that received the notification.
        """
        return self.app.add_listener(
            callback,
            device=int(device) if device is not None else None,
            object_identifier=(
                parse_object_identifier(object_identifier) if object_identifier is not None else None
            ),
            property_identifier=(
                parse_property_identifier(property_identifier) if property_identifier is not None else None
            ),
        )
