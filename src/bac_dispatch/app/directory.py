"""Remote directory: the registry of discovered devices and their objects.

The directory keeps one private mutable record per device instance and
hands out frozen snapshots (:class:`RemoteDeviceEntry`,
:class:`RemoteObjectEntry`, :class:`CachedValue`), so callers can iterate a
:meth:`RemoteDirectory.list_all` result while other threads upsert.

Devices are keyed by instance number; an announcement from a new address
for a known instance moves the existing entry instead of adding another.
Property reads and writes go through the dispatcher and update the value
cache as a side effect.  Stale entries are dropped only by an explicit
:meth:`RemoteDirectory.sweep`.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bac_dispatch.encoding.primitives import decode_and_unwrap, encode_property_value
from bac_dispatch.services.errors import UnknownDeviceError
from bac_dispatch.services.read_property import ReadPropertyACK, ReadPropertyRequest
from bac_dispatch.services.write_property import WritePropertyRequest
from bac_dispatch.types.enums import (
    ConfirmedServiceChoice,
    ObjectType,
    PropertyIdentifier,
    Segmentation,
    ServicesSupported,
)
from bac_dispatch.types.primitives import BitString, ObjectIdentifier

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from bac_dispatch.app.collector import DeviceAnnouncement
    from bac_dispatch.app.dispatcher import Dispatcher
    from bac_dispatch.app.future import ServiceFuture
    from bac_dispatch.app.retry import RetryPolicy
    from bac_dispatch.network.address import BACnetAddress

logger = logging.getLogger(__name__)


def _jsonable(value: object) -> object:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True, slots=True)
class CachedValue:
    """A property value and the directory-clock time of its last successful read or write."""

    value: object
    timestamp: float

    def age(self, now: float) -> float:
        return now - self.timestamp

    def to_dict(self) -> dict[str, Any]:
        return {"value": _jsonable(self.value), "timestamp": self.timestamp}


@dataclass(frozen=True, slots=True)
class RemoteObjectEntry:
    """Snapshot of one object on a remote device."""

    object_identifier: ObjectIdentifier
    properties: Mapping[PropertyIdentifier, CachedValue] = field(default_factory=dict)

    def get(self, prop: PropertyIdentifier) -> CachedValue | None:
        return self.properties.get(prop)

    def to_dict(self) -> dict[str, Any]:
        return {
            "object_identifier": str(self.object_identifier),
            "properties": {
                p.name.lower().replace("_", "-"): v.to_dict() for p, v in self.properties.items()
            },
        }


@dataclass(frozen=True, slots=True)
class RemoteDeviceEntry:
    """Snapshot of one remote device.

    ``supported_services`` is ``None`` until :meth:`RemoteDirectory.refresh_services`
    succeeds; ``objects`` holds objects known from reads, notifications or
    :meth:`RemoteDirectory.load_objects`.
    """

    instance: int
    address: BACnetAddress
    name: str | None = None
    vendor_id: int = 0
    max_apdu_length: int = 1476
    segmentation_supported: Segmentation = Segmentation.NONE
    supported_services: frozenset[int] | None = None
    objects: Mapping[ObjectIdentifier, RemoteObjectEntry] = field(default_factory=dict)
    objects_loaded: bool = False
    last_contact: float = 0.0

    @property
    def device_identifier(self) -> ObjectIdentifier:
        return ObjectIdentifier(ObjectType.DEVICE, self.instance)

    def supports(self, service: ServicesSupported | int) -> bool | None:
        """Whether the device executes *service*; ``None`` while unknown."""
        if self.supported_services is None:
            return None
        return int(service) in self.supported_services

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "instance": self.instance,
            "address": str(self.address),
            "name": self.name,
            "vendor_id": self.vendor_id,
            "max_apdu_length": self.max_apdu_length,
            "segmentation_supported": self.segmentation_supported.name.lower(),
            "last_contact": self.last_contact,
        }
        if self.supported_services is not None:
            result["supported_services"] = sorted(
                ServicesSupported(s).name.lower().replace("_", "-") for s in self.supported_services
            )
        if self.objects:
            result["objects"] = [o.to_dict() for o in self.objects.values()]
        return result


@dataclass
class _ObjectRecord:
    properties: dict[PropertyIdentifier, CachedValue] = field(default_factory=dict)


@dataclass
class _DeviceRecord:
    instance: int
    address: BACnetAddress
    last_contact: float
    name: str | None = None
    vendor_id: int = 0
    max_apdu_length: int = 1476
    segmentation_supported: Segmentation = Segmentation.NONE
    supported_services: frozenset[int] | None = None
    objects: dict[ObjectIdentifier, _ObjectRecord] = field(default_factory=dict)
    objects_loaded: bool = False

    def object(self, object_id: ObjectIdentifier) -> _ObjectRecord:
        record = self.objects.get(object_id)
        if record is None:
            record = self.objects[object_id] = _ObjectRecord()
        return record

    def snapshot(self) -> RemoteDeviceEntry:
        return RemoteDeviceEntry(
            instance=self.instance,
            address=self.address,
            name=self.name,
            vendor_id=self.vendor_id,
            max_apdu_length=self.max_apdu_length,
            segmentation_supported=self.segmentation_supported,
            supported_services=self.supported_services,
            objects={
                oid: RemoteObjectEntry(oid, dict(rec.properties)) for oid, rec in self.objects.items()
            },
            objects_loaded=self.objects_loaded,
            last_contact=self.last_contact,
        )


class RemoteDirectory:
    """Concurrently readable and writable registry of remote devices.

    :param dispatcher: Used by the read/write/load operations; optional for
        a purely local registry.
    :param clock: Monotonic clock for contact and cache timestamps.
    :param stale_after: Default age, in seconds, beyond which :meth:`sweep`
        evicts a device.
    """

    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        stale_after: float = 3600.0,
    ) -> None:
        self._dispatcher = dispatcher
        self._clock = clock
        self._stale_after = stale_after
        self._lock = threading.Lock()
        self._devices: dict[int, _DeviceRecord] = {}
        self._by_address: dict[BACnetAddress, int] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __contains__(self, instance: object) -> bool:
        with self._lock:
            return instance in self._devices

    # --- Registry ---

    def upsert(self, announcement: DeviceAnnouncement, *, name: str | None = None) -> RemoteDeviceEntry:
        """Create or update the entry for the announced device instance.

        Idempotent: the same announcement twice yields one entry.  A new
        address replaces the old one.
        """
        instance = announcement.instance
        now = self._clock()
        with self._lock:
            record = self._devices.get(instance)
            if record is None:
                record = _DeviceRecord(instance=instance, address=announcement.address, last_contact=now)
                self._devices[instance] = record
                created, moved_from = True, None
            else:
                created = False
                moved_from = record.address if record.address != announcement.address else None
                if moved_from is not None and self._by_address.get(moved_from) == instance:
                    del self._by_address[moved_from]
                record.address = announcement.address
                record.last_contact = now
            self._by_address[announcement.address] = instance
            record.vendor_id = announcement.vendor_id
            record.max_apdu_length = announcement.max_apdu_length
            record.segmentation_supported = announcement.segmentation_supported
            if name is not None:
                record.name = name
            entry = record.snapshot()

        if created:
            logger.info("Directory: added device %d at %s", instance, announcement.address)
        elif moved_from is not None:
            logger.info("Directory: device %d moved from %s to %s", instance, moved_from, announcement.address)
        return entry

    def upsert_all(self, announcements: Iterable[DeviceAnnouncement]) -> list[RemoteDeviceEntry]:
        return [self.upsert(a) for a in announcements]

    def lookup(self, instance: int) -> RemoteDeviceEntry | None:
        """Snapshot of the device with *instance*, or ``None`` if unknown."""
        with self._lock:
            record = self._devices.get(instance)
            return record.snapshot() if record is not None else None

    def lookup_address(self, address: BACnetAddress) -> RemoteDeviceEntry | None:
        with self._lock:
            instance = self._by_address.get(address)
            record = self._devices.get(instance) if instance is not None else None
            return record.snapshot() if record is not None else None

    def require(self, device: RemoteDeviceEntry | int) -> RemoteDeviceEntry:
        """Current snapshot for *device*.

        :raises UnknownDeviceError: If the device is not in the directory.
        """
        instance = device.instance if isinstance(device, RemoteDeviceEntry) else device
        entry = self.lookup(instance)
        if entry is None:
            raise UnknownDeviceError(instance)
        return entry

    def list_all(self) -> list[RemoteDeviceEntry]:
        """Point-in-time snapshots of every device, by instance number."""
        with self._lock:
            return [self._devices[i].snapshot() for i in sorted(self._devices)]

    def evict(self, instance: int) -> bool:
        """Drop a device and its objects; ``False`` if it was not present."""
        with self._lock:
            record = self._devices.pop(instance, None)
            if record is None:
                return False
            if self._by_address.get(record.address) == instance:
                del self._by_address[record.address]
        logger.info("Directory: evicted device %d", instance)
        return True

    def sweep(self, max_age: float | None = None) -> list[int]:
        """Evict devices with no successful contact within *max_age* seconds.

        :returns: Evicted instance numbers.
        """
        limit = self._stale_after if max_age is None else max_age
        cutoff = self._clock() - limit
        with self._lock:
            stale = [i for i, r in self._devices.items() if r.last_contact < cutoff]
            for instance in stale:
                record = self._devices.pop(instance)
                if self._by_address.get(record.address) == instance:
                    del self._by_address[record.address]
        if stale:
            logger.info("Directory sweep evicted %d device(s): %s", len(stale), stale)
        return stale

    def touch(self, instance: int) -> bool:
        """Record successful contact with *instance*."""
        with self._lock:
            record = self._devices.get(instance)
            if record is None:
                return False
            record.last_contact = self._clock()
            return True

    def set_name(self, instance: int, name: str) -> bool:
        with self._lock:
            record = self._devices.get(instance)
            if record is None:
                return False
            record.name = name
            return True

    def record_values(
        self,
        instance: int,
        object_id: ObjectIdentifier,
        values: Mapping[PropertyIdentifier, object],
    ) -> bool:
        """Cache property values of one object and count it as contact.

        :returns: ``False`` if the device is unknown (nothing is cached).
        """
        now = self._clock()
        with self._lock:
            record = self._devices.get(instance)
            if record is None:
                return False
            obj = record.object(object_id)
            for prop, value in values.items():
                obj.properties[prop] = CachedValue(value, now)
            record.last_contact = now
            if object_id == ObjectIdentifier(ObjectType.DEVICE, instance):
                name = values.get(PropertyIdentifier.OBJECT_NAME)
                if isinstance(name, str):
                    record.name = name
            return True

    def invalidate(self, instance: int, object_id: ObjectIdentifier, prop: PropertyIdentifier) -> None:
        with self._lock:
            record = self._devices.get(instance)
            if record is not None and object_id in record.objects:
                record.objects[object_id].properties.pop(prop, None)

    def cached(
        self, instance: int, object_id: ObjectIdentifier, prop: PropertyIdentifier
    ) -> CachedValue | None:
        with self._lock:
            record = self._devices.get(instance)
            if record is None or object_id not in record.objects:
                return None
            return record.objects[object_id].properties.get(prop)

    # --- Remote operations ---

    def _require_dispatcher(self) -> Dispatcher:
        if self._dispatcher is None:
            msg = "RemoteDirectory has no dispatcher; remote operations are unavailable"
            raise RuntimeError(msg)
        return self._dispatcher

    def read_property(
        self,
        device: RemoteDeviceEntry | int,
        object_id: ObjectIdentifier,
        prop: PropertyIdentifier,
        array_index: int | None = None,
        *,
        policy: RetryPolicy | None = None,
    ) -> ServiceFuture[object]:
        """Read one property; on success the value is cached with a fresh timestamp.

        Array-element reads are not cached.

        :raises UnknownDeviceError: If *device* is not in the directory.
        """
        dispatcher = self._require_dispatcher()
        entry = self.require(device)
        request = ReadPropertyRequest(object_id, prop, array_index)
        future = dispatcher.send_confirmed(
            entry.address, ConfirmedServiceChoice.READ_PROPERTY, request.encode(), policy
        )

        def _on_ack(data: bytes) -> object:
            ack = ReadPropertyACK.decode(data)
            value = decode_and_unwrap(ack.property_value)
            if array_index is None:
                self.record_values(entry.instance, object_id, {prop: value})
            else:
                self.touch(entry.instance)
            return value

        return future.then(_on_ack, f"read {object_id} {prop.name} from {entry.instance}")

    def write_property(
        self,
        device: RemoteDeviceEntry | int,
        object_id: ObjectIdentifier,
        prop: PropertyIdentifier,
        value: object,
        *,
        priority: int | None = None,
        array_index: int | None = None,
        policy: RetryPolicy | None = None,
    ) -> ServiceFuture[None]:
        """Write one property.

        On success a plain write updates the cache with *value*; a
        prioritized or array-element write invalidates the cached value
        instead, since the effective value is decided by the device.

        :raises UnknownDeviceError: If *device* is not in the directory.
        :raises TypeError: If *value* has no BACnet encoding.
        """
        dispatcher = self._require_dispatcher()
        entry = self.require(device)
        request = WritePropertyRequest(
            object_id, prop, encode_property_value(value), array_index, priority
        )
        future = dispatcher.send_confirmed(
            entry.address, ConfirmedServiceChoice.WRITE_PROPERTY, request.encode(), policy
        )

        def _on_ack(_: bytes) -> None:
            if priority is None and array_index is None:
                self.record_values(entry.instance, object_id, {prop: value})
            else:
                self.invalidate(entry.instance, object_id, prop)
                self.touch(entry.instance)

        return future.then(_on_ack, f"write {object_id} {prop.name} to {entry.instance}")

    def load_objects(
        self, device: RemoteDeviceEntry | int, *, policy: RetryPolicy | None = None
    ) -> ServiceFuture[list[ObjectIdentifier]]:
        """Read the device's object-list and populate its object entries.

        Objects no longer listed are dropped together with their cache.
        """
        entry = self.require(device)
        future = self.read_property(
            entry, entry.device_identifier, PropertyIdentifier.OBJECT_LIST, policy=policy
        )

        def _populate(value: object) -> list[ObjectIdentifier]:
            items = value if isinstance(value, list) else [value]
            object_ids = [o for o in items if isinstance(o, ObjectIdentifier)]
            with self._lock:
                record = self._devices.get(entry.instance)
                if record is not None:
                    listed = set(object_ids)
                    for stale in [oid for oid in record.objects if oid not in listed]:
                        del record.objects[stale]
                    for oid in object_ids:
                        record.object(oid)
                    record.objects_loaded = True
            logger.debug("Device %d lists %d object(s)", entry.instance, len(object_ids))
            return object_ids

        return future.then(_populate)

    def refresh_services(
        self, device: RemoteDeviceEntry | int, *, policy: RetryPolicy | None = None
    ) -> ServiceFuture[frozenset[int]]:
        """Read protocol-services-supported into the entry's services summary."""
        entry = self.require(device)
        future = self.read_property(
            entry,
            entry.device_identifier,
            PropertyIdentifier.PROTOCOL_SERVICES_SUPPORTED,
            policy=policy,
        )

        def _summarize(value: object) -> frozenset[int]:
            if not isinstance(value, BitString):
                msg = f"protocol-services-supported is not a bit string: {value!r}"
                raise TypeError(msg)
            services = value.set_bits()
            with self._lock:
                record = self._devices.get(entry.instance)
                if record is not None:
                    record.supported_services = services
            return services

        return future.then(_summarize)
