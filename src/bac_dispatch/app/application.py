"""BACnet application: wires transport, dispatcher, directory and local device."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bac_dispatch.app.collector import BroadcastCollector
from bac_dispatch.app.directory import RemoteDeviceEntry, RemoteDirectory
from bac_dispatch.app.dispatcher import Dispatcher
from bac_dispatch.app.notifications import EventNotice, NotificationRouter, PropertyChange
from bac_dispatch.app.retry import RetryPolicy
from bac_dispatch.app.server import LocalDevice
from bac_dispatch.app.timers import LoopScheduler
from bac_dispatch.encoding.codec import APDUCodec
from bac_dispatch.encoding.primitives import decode_and_unwrap, encode_property_value
from bac_dispatch.network.address import GLOBAL_BROADCAST, BACnetAddress
from bac_dispatch.services.cov import COVNotificationRequest, SubscribeCOVRequest
from bac_dispatch.services.errors import BACnetTransportError
from bac_dispatch.services.event_notification import EventNotificationRequest
from bac_dispatch.services.read_property import ReadPropertyACK, ReadPropertyRequest
from bac_dispatch.services.write_property import WritePropertyRequest
from bac_dispatch.transport.bip import BIPTransport
from bac_dispatch.types.enums import ConfirmedServiceChoice, UnconfirmedServiceChoice

if TYPE_CHECKING:
    from collections.abc import Callable

    from bac_dispatch.app.collector import DeviceAnnouncement
    from bac_dispatch.app.future import ServiceFuture
    from bac_dispatch.app.notifications import Notification, Subscription
    from bac_dispatch.app.timers import Scheduler
    from bac_dispatch.encoding.codec import UnconfirmedMessage
    from bac_dispatch.transport.port import TransportPort
    from bac_dispatch.types.enums import PropertyIdentifier
    from bac_dispatch.types.primitives import ObjectIdentifier

logger = logging.getLogger(__name__)


@dataclass
class DeviceConfig:
    """Configuration for a BACnet device."""

    instance_number: int
    name: str = "bac-dispatch"
    vendor_name: str = "bac-dispatch"
    vendor_id: int = 0
    model_name: str = "bac-dispatch"
    interface: str = "0.0.0.0"
    port: int = 0xBAC0
    broadcast_address: str = "255.255.255.255"
    apdu_timeout: int = 6000  # milliseconds
    apdu_retries: int = 3
    retry_backoff: float = 1.0
    max_apdu_timeout: int | None = None  # milliseconds
    max_apdu_length: int = 1476
    invoke_id_space: int = 256
    stale_after: float = 3600.0  # seconds
    announce_on_start: bool = True
    track_announcements: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.instance_number <= 0x3FFFFE:
            msg = f"Device instance must be 0-4194302, got {self.instance_number}"
            raise ValueError(msg)
        if self.apdu_retries < 0:
            msg = f"apdu_retries cannot be negative, got {self.apdu_retries}"
            raise ValueError(msg)

    def retry_policy(self) -> RetryPolicy:
        """Default retry policy: *apdu_retries* retries after the first attempt."""
        return RetryPolicy(
            timeout=self.apdu_timeout / 1000,
            max_attempts=self.apdu_retries + 1,
            backoff=self.retry_backoff,
            max_timeout=None if self.max_apdu_timeout is None else self.max_apdu_timeout / 1000,
        )


class BACnetApplication:
    """Central orchestrator connecting the protocol components.

    Components are built on construction when a *scheduler* is supplied,
    otherwise in :meth:`start` against the running event loop.

    :param config: Local device configuration.
    :param transport: Port to use instead of a :class:`BIPTransport`
        built from *config*.
    :param scheduler: Timer source instead of the running loop's.
    """

    def __init__(
        self,
        config: DeviceConfig,
        *,
        transport: TransportPort | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._config = config
        self._transport = transport or BIPTransport(
            interface=config.interface,
            port=config.port,
            broadcast_address=config.broadcast_address,
        )
        self._scheduler = scheduler
        self._codec = APDUCodec(max_apdu_length=config.max_apdu_length)
        self._notifications = NotificationRouter()
        self._local_device = LocalDevice(
            config.instance_number,
            name=config.name,
            vendor_name=config.vendor_name,
            vendor_id=config.vendor_id,
            model_name=config.model_name,
            max_apdu_length=config.max_apdu_length,
            apdu_timeout=config.apdu_timeout,
            apdu_retries=config.apdu_retries,
        )
        self._dispatcher: Dispatcher | None = None
        self._directory: RemoteDirectory | None = None
        self._collector: BroadcastCollector | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None
        if scheduler is not None:
            self._build(scheduler)

    def _build(self, scheduler: Scheduler) -> None:
        dispatcher = Dispatcher(
            self._transport,
            self._codec,
            scheduler,
            policy=self._config.retry_policy(),
            id_space=self._config.invoke_id_space,
        )
        directory = RemoteDirectory(dispatcher, clock=scheduler.time, stale_after=self._config.stale_after)
        self._collector = BroadcastCollector(
            dispatcher,
            scheduler,
            on_results=directory.upsert_all,
            on_unsolicited=self._on_unsolicited_i_am,
        )
        dispatcher.add_unconfirmed_handler(
            UnconfirmedServiceChoice.UNCONFIRMED_COV_NOTIFICATION, self._on_unconfirmed_cov
        )
        dispatcher.add_unconfirmed_handler(
            UnconfirmedServiceChoice.UNCONFIRMED_EVENT_NOTIFICATION, self._on_unconfirmed_event
        )
        self._local_device.attach(dispatcher, self._codec, on_cov=self._on_cov_notification)
        self._scheduler = scheduler
        self._dispatcher = dispatcher
        self._directory = directory

    # --- Properties ---

    @property
    def config(self) -> DeviceConfig:
        """The device configuration."""
        return self._config

    @property
    def running(self) -> bool:
        return self._running

    @property
    def transport(self) -> TransportPort:
        return self._transport

    @property
    def local_device(self) -> LocalDevice:
        return self._local_device

    @property
    def notifications(self) -> NotificationRouter:
        return self._notifications

    @property
    def dispatcher(self) -> Dispatcher:
        if self._dispatcher is None:
            msg = "Application not started"
            raise RuntimeError(msg)
        return self._dispatcher

    @property
    def directory(self) -> RemoteDirectory:
        if self._directory is None:
            msg = "Application not started"
            raise RuntimeError(msg)
        return self._directory

    @property
    def collector(self) -> BroadcastCollector:
        if self._collector is None:
            msg = "Application not started"
            raise RuntimeError(msg)
        return self._collector

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start the transport and announce the local device."""
        if self._running:
            return
        if self._dispatcher is None:
            self._build(LoopScheduler())
        await self._transport.start()
        self._running = True
        logger.info(
            "Device %d started on %s", self._config.instance_number, self._transport.local_address
        )
        if self._config.announce_on_start:
            try:
                self._local_device.announce()
            except BACnetTransportError as e:
                logger.warning("Start-up I-Am failed: %s", e)

    async def stop(self) -> None:
        """Close discovery sessions, cancel outstanding exchanges and stop the transport."""
        if self._collector is not None:
            self._collector.close_all()
        if self._dispatcher is not None:
            self._dispatcher.abandon_all("Application stopped")
        if self._stop_event is not None:
            self._stop_event.set()
        if self._running:
            await self._transport.stop()
            logger.info("Device %d stopped", self._config.instance_number)
        self._running = False

    async def run(self) -> None:
        """Start the application and block until stopped."""
        self._stop_event = asyncio.Event()
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    async def __aenter__(self) -> BACnetApplication:
        """Start the application as an async context manager."""
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Stop the application when exiting the context."""
        await self.stop()

    # --- Raw service access ---

    def send_confirmed(
        self,
        destination: BACnetAddress,
        service_choice: int,
        service_data: bytes,
        policy: RetryPolicy | None = None,
    ) -> ServiceFuture[bytes]:
        """Send a confirmed request; the future yields the ComplexACK service data
        (empty bytes for a SimpleACK)."""
        return self.dispatcher.send_confirmed(destination, service_choice, service_data, policy)

    def send_unconfirmed(
        self,
        destination: BACnetAddress,
        service_choice: int,
        service_data: bytes,
    ) -> None:
        """Send an unconfirmed request."""
        self.dispatcher.send_unconfirmed(destination, service_choice, service_data)

    # --- Discovery and directory ---

    def discover(
        self,
        window: float = 3.0,
        *,
        low_limit: int | None = None,
        high_limit: int | None = None,
        destination: BACnetAddress = GLOBAL_BROADCAST,
        expected_count: int | None = None,
    ) -> ServiceFuture[list[RemoteDeviceEntry]]:
        """Broadcast Who-Is and collect answers for *window* seconds.

        Answering devices are upserted into :attr:`directory`; the future
        yields their directory entries in the order they first answered.
        """
        session = self.collector.start_discovery(
            window,
            low_limit=low_limit,
            high_limit=high_limit,
            destination=destination,
            expected_count=expected_count,
        )
        directory = self.directory

        def _entries(announcements: list[DeviceAnnouncement]) -> list[RemoteDeviceEntry]:
            entries = (directory.lookup(a.instance) for a in announcements)
            return [e for e in entries if e is not None]

        return session.future.then(_entries, f"discover {session.session_id}")

    def read_property(
        self,
        device: RemoteDeviceEntry | BACnetAddress | int,
        object_id: ObjectIdentifier,
        prop: PropertyIdentifier,
        array_index: int | None = None,
        *,
        policy: RetryPolicy | None = None,
    ) -> ServiceFuture[Any]:
        """Read one property of a remote object.

        *device* may be a directory entry, an instance number, or an
        address; an address not in the directory is read without caching.

        :raises UnknownDeviceError: If an instance number is not in the directory.
        """
        target = self._resolve(device)
        if isinstance(target, BACnetAddress):
            request = ReadPropertyRequest(object_id, prop, array_index)
            future = self.send_confirmed(
                target, ConfirmedServiceChoice.READ_PROPERTY, request.encode(), policy
            )
            return future.then(lambda data: decode_and_unwrap(ReadPropertyACK.decode(data).property_value))
        return self.directory.read_property(target, object_id, prop, array_index, policy=policy)

    def write_property(
        self,
        device: RemoteDeviceEntry | BACnetAddress | int,
        object_id: ObjectIdentifier,
        prop: PropertyIdentifier,
        value: Any,
        *,
        priority: int | None = None,
        array_index: int | None = None,
        policy: RetryPolicy | None = None,
    ) -> ServiceFuture[None]:
        """Write one property of a remote object.

        :raises UnknownDeviceError: If an instance number is not in the directory.
        :raises TypeError: If *value* has no BACnet encoding.
        """
        target = self._resolve(device)
        if isinstance(target, BACnetAddress):
            request = WritePropertyRequest(
                object_id, prop, encode_property_value(value), array_index, priority
            )
            future = self.send_confirmed(
                target, ConfirmedServiceChoice.WRITE_PROPERTY, request.encode(), policy
            )
            return future.then(lambda _: None)
        return self.directory.write_property(
            target,
            object_id,
            prop,
            value,
            priority=priority,
            array_index=array_index,
            policy=policy,
        )

    def _resolve(self, device: RemoteDeviceEntry | BACnetAddress | int) -> RemoteDeviceEntry | BACnetAddress:
        if isinstance(device, BACnetAddress):
            return self.directory.lookup_address(device) or device
        return self.directory.require(device)

    # --- COV and event notifications ---

    def subscribe_cov(
        self,
        device: RemoteDeviceEntry | BACnetAddress | int,
        object_id: ObjectIdentifier,
        *,
        process_id: int = 1,
        confirmed: bool = False,
        lifetime: int | None = None,
        policy: RetryPolicy | None = None,
    ) -> ServiceFuture[None]:
        """Ask a remote device to send COV notifications for *object_id*.

        Notifications reach listeners registered with :meth:`add_listener`.
        """
        request = SubscribeCOVRequest(
            subscriber_process_identifier=process_id,
            monitored_object_identifier=object_id,
            issue_confirmed_notifications=confirmed,
            lifetime=lifetime,
        )
        return self._send_subscription(device, request, policy)

    def unsubscribe_cov(
        self,
        device: RemoteDeviceEntry | BACnetAddress | int,
        object_id: ObjectIdentifier,
        *,
        process_id: int = 1,
        policy: RetryPolicy | None = None,
    ) -> ServiceFuture[None]:
        """Cancel a COV subscription made with :meth:`subscribe_cov`."""
        return self._send_subscription(device, SubscribeCOVRequest(process_id, object_id), policy)

    def _send_subscription(
        self,
        device: RemoteDeviceEntry | BACnetAddress | int,
        request: SubscribeCOVRequest,
        policy: RetryPolicy | None,
    ) -> ServiceFuture[None]:
        target = self._resolve(device)
        address = target if isinstance(target, BACnetAddress) else target.address
        future = self.send_confirmed(address, ConfirmedServiceChoice.SUBSCRIBE_COV, request.encode(), policy)
        return future.then(lambda _: None)

    def add_listener(
        self,
        callback: Callable[[Notification], Any],
        *,
        device: int | None = None,
        object_identifier: ObjectIdentifier | None = None,
        property_identifier: PropertyIdentifier | None = None,
        events: bool = False,
    ) -> Subscription:
        """Register a notification listener; ``None`` filters match anything."""
        return self._notifications.subscribe(
            callback,
            device=device,
            object_identifier=object_identifier,
            property_identifier=property_identifier,
            events=events,
        )

    def _on_unsolicited_i_am(self, announcement: DeviceAnnouncement) -> None:
        if self._config.track_announcements and self._directory is not None:
            self._directory.upsert(announcement)

    def _on_unconfirmed_cov(self, source: BACnetAddress, message: UnconfirmedMessage) -> None:
        try:
            request = COVNotificationRequest.decode(message.data)
        except ValueError as e:
            logger.warning("Dropped malformed COV notification from %s: %s", source, e)
            return
        self._on_cov_notification(source, request, False)

    def _on_cov_notification(
        self, source: BACnetAddress, request: COVNotificationRequest, confirmed: bool
    ) -> None:
        changes = PropertyChange.from_notification(source, request, confirmed=confirmed)
        if self._directory is not None and changes:
            self._directory.record_values(
                request.initiating_device_identifier.instance_number,
                request.monitored_object_identifier,
                {c.property_identifier: c.value for c in changes},
            )
        for change in changes:
            self._notifications.dispatch(change)

    def _on_unconfirmed_event(self, source: BACnetAddress, message: UnconfirmedMessage) -> None:
        try:
            request = EventNotificationRequest.decode(message.data)
        except ValueError as e:
            logger.warning("Dropped malformed event notification from %s: %s", source, e)
            return
        self._notifications.dispatch(EventNotice.from_notification(source, request))
