import threading

import pytest

from bac_dispatch.app.collector import DeviceAnnouncement
from bac_dispatch.app.directory import RemoteDirectory
from bac_dispatch.app.dispatcher import Dispatcher
from bac_dispatch.app.retry import RetryPolicy
from bac_dispatch.encoding.codec import APDUCodec
from bac_dispatch.network.address import BACnetAddress
from bac_dispatch.services.errors import BACnetError, BACnetTimeoutError, UnknownDeviceError
from bac_dispatch.services.write_property import WritePropertyRequest
from bac_dispatch.types.enums import (
    ErrorClass,
    ErrorCode,
    ObjectType,
    PropertyIdentifier,
    ServicesSupported,
)
from bac_dispatch.types.primitives import BitString, ObjectIdentifier
from tests.helpers import OTHER_PEER, PEER, FakeTransport, ManualScheduler, answer_read, answer_simple

PV = PropertyIdentifier.PRESENT_VALUE
AV1 = ObjectIdentifier(ObjectType.ANALOG_VALUE, 1)
AI1 = ObjectIdentifier(ObjectType.ANALOG_INPUT, 1)


def announce(instance, address=PEER, vendor_id=0):
    return DeviceAnnouncement(
        address=address,
        device_identifier=ObjectIdentifier(ObjectType.DEVICE, instance),
        vendor_id=vendor_id,
    )


@pytest.fixture
def scheduler():
    return ManualScheduler(start=100.0)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def codec():
    return APDUCodec()


@pytest.fixture
def directory(transport, codec, scheduler):
    dispatcher = Dispatcher(transport, codec, scheduler, policy=RetryPolicy(timeout=1.0, max_attempts=2))
    return RemoteDirectory(dispatcher, clock=scheduler.time, stale_after=60.0)


class TestRegistry:
    def test_upsert_is_idempotent(self, directory):
        first = directory.upsert(announce(10))
        second = directory.upsert(announce(10))
        assert len(directory) == 1
        assert first.instance == second.instance == 10
        assert 10 in directory

    def test_new_address_moves_entry(self, directory):
        directory.upsert(announce(10, PEER))
        entry = directory.upsert(announce(10, OTHER_PEER))
        assert entry.address == OTHER_PEER
        assert directory.lookup_address(PEER) is None
        assert directory.lookup_address(OTHER_PEER).instance == 10
        assert len(directory) == 1

    def test_upsert_updates_announced_fields(self, directory):
        directory.upsert(announce(10, vendor_id=1))
        entry = directory.upsert(announce(10, vendor_id=9), name="AHU-1")
        assert entry.vendor_id == 9
        assert entry.name == "AHU-1"

    def test_upsert_all(self, directory):
        entries = directory.upsert_all([announce(1, PEER), announce(2, OTHER_PEER)])
        assert [e.instance for e in entries] == [1, 2]

    def test_list_all_sorted_by_instance(self, directory):
        directory.upsert(announce(30, PEER))
        directory.upsert(announce(5, OTHER_PEER))
        assert [e.instance for e in directory.list_all()] == [5, 30]

    def test_snapshots_are_detached(self, directory):
        directory.upsert(announce(10))
        snapshot = directory.lookup(10)
        directory.set_name(10, "renamed")
        assert snapshot.name is None
        assert directory.lookup(10).name == "renamed"

    def test_lookup_unknown(self, directory):
        assert directory.lookup(404) is None
        with pytest.raises(UnknownDeviceError):
            directory.require(404)

    def test_evict(self, directory):
        directory.upsert(announce(10))
        assert directory.evict(10) is True
        assert directory.evict(10) is False
        assert directory.lookup_address(PEER) is None

    def test_sweep_evicts_only_stale(self, directory, scheduler):
        directory.upsert(announce(1, PEER))
        scheduler.advance(50.0)
        directory.upsert(announce(2, OTHER_PEER))
        scheduler.advance(20.0)
        assert directory.sweep() == [1]
        assert [e.instance for e in directory.list_all()] == [2]

    def test_sweep_with_explicit_age(self, directory, scheduler):
        directory.upsert(announce(1))
        scheduler.advance(5.0)
        assert directory.sweep(max_age=10.0) == []
        assert directory.sweep(max_age=1.0) == [1]

    def test_touch_refreshes_contact(self, directory, scheduler):
        directory.upsert(announce(1))
        scheduler.advance(30.0)
        assert directory.touch(1) is True
        assert directory.lookup(1).last_contact == 130.0
        assert directory.touch(2) is False

    def test_record_values_for_device_object_sets_name(self, directory):
        directory.upsert(announce(7))
        device_oid = ObjectIdentifier(ObjectType.DEVICE, 7)
        directory.record_values(7, device_oid, {PropertyIdentifier.OBJECT_NAME: "Boiler"})
        assert directory.lookup(7).name == "Boiler"

    def test_record_values_unknown_device(self, directory):
        assert directory.record_values(7, AV1, {PV: 1.0}) is False

    def test_supports_unknown_until_refreshed(self, directory):
        entry = directory.upsert(announce(1))
        assert entry.supports(ServicesSupported.READ_PROPERTY) is None


class TestRemoteReads:
    def test_read_caches_value(self, directory, transport, codec, scheduler):
        directory.upsert(announce(10))
        future = directory.read_property(10, AV1, PV)
        assert transport.sent[-1][0] == PEER
        scheduler.advance(0.5)
        answer_read(transport, codec, 21.5)
        assert future.result(0) == 21.5
        cached = directory.cached(10, AV1, PV)
        assert cached.value == 21.5
        assert cached.timestamp == 100.5
        assert directory.lookup(10).objects[AV1].get(PV) == cached

    def test_read_write_read_updates_cache_monotonically(self, directory, transport, codec, scheduler):
        directory.upsert(announce(10))
        first = directory.read_property(10, AV1, PV)
        answer_read(transport, codec, 20.0)
        assert first.result(0) == 20.0
        first_stamp = directory.cached(10, AV1, PV).timestamp

        scheduler.advance(1.0)
        write = directory.write_property(10, AV1, PV, 22.0)
        answer_simple(transport, codec)
        write.result(0)
        assert directory.cached(10, AV1, PV).value == 22.0
        write_stamp = directory.cached(10, AV1, PV).timestamp

        scheduler.advance(1.0)
        second = directory.read_property(10, AV1, PV)
        answer_read(transport, codec, 22.0)
        assert second.result(0) == 22.0
        assert first_stamp < write_stamp < directory.cached(10, AV1, PV).timestamp

    def test_array_element_read_is_not_cached(self, directory, transport, codec):
        directory.upsert(announce(10))
        future = directory.read_property(10, AV1, PropertyIdentifier.PRIORITY_ARRAY, 8)
        answer_read(transport, codec, 50.0)
        assert future.result(0) == 50.0
        assert directory.cached(10, AV1, PropertyIdentifier.PRIORITY_ARRAY) is None

    def test_failed_read_leaves_cache_alone(self, directory, transport, codec):
        directory.upsert(announce(10))
        directory.record_values(10, AV1, {PV: 1.0})
        future = directory.read_property(10, AV1, PV)
        _, frame = transport.sent[-1]
        request = codec.decode(frame)
        transport.deliver(
            PEER,
            codec.encode_error(
                request.invoke_id, request.service_choice, ErrorClass.OBJECT, ErrorCode.UNKNOWN_OBJECT
            ),
        )
        with pytest.raises(BACnetError):
            future.result(0)
        assert directory.cached(10, AV1, PV).value == 1.0

    def test_timeout_fails_read(self, directory, scheduler):
        directory.upsert(announce(10))
        future = directory.read_property(10, AV1, PV)
        scheduler.advance(2.0)
        assert isinstance(future.exception(0), BACnetTimeoutError)

    def test_read_unknown_device_raises(self, directory):
        with pytest.raises(UnknownDeviceError):
            directory.read_property(99, AV1, PV)

    def test_read_without_dispatcher_raises(self):
        directory = RemoteDirectory()
        directory.upsert(announce(1))
        with pytest.raises(RuntimeError):
            directory.read_property(1, AV1, PV)


class TestRemoteWrites:
    def test_write_sends_priority(self, directory, transport, codec):
        directory.upsert(announce(10))
        directory.record_values(10, AV1, {PV: 1.0})
        future = directory.write_property(10, AV1, PV, 5.0, priority=8)
        request = WritePropertyRequest.decode(codec.decode(transport.sent[-1][1]).data)
        assert request.priority == 8
        answer_simple(transport, codec)
        future.result(0)
        assert directory.cached(10, AV1, PV) is None

    def test_unencodable_value_raises(self, directory):
        directory.upsert(announce(10))
        with pytest.raises(TypeError):
            directory.write_property(10, AV1, PV, object())


class TestObjectsAndServices:
    def test_load_objects_populates_and_prunes(self, directory, transport, codec):
        directory.upsert(announce(10))
        directory.record_values(10, AI1, {PV: 3.0})
        device_oid = ObjectIdentifier(ObjectType.DEVICE, 10)
        future = directory.load_objects(10)
        answer_read(transport, codec, [device_oid, AV1])
        assert future.result(0) == [device_oid, AV1]
        entry = directory.lookup(10)
        assert entry.objects_loaded
        assert set(entry.objects) == {device_oid, AV1}

    def test_refresh_services(self, directory, transport, codec):
        directory.upsert(announce(10))
        bits = [False] * (max(ServicesSupported) + 1)
        bits[ServicesSupported.READ_PROPERTY] = True
        bits[ServicesSupported.WHO_IS] = True
        future = directory.refresh_services(10)
        answer_read(transport, codec, BitString.from_bits(bits))
        assert future.result(0) == {ServicesSupported.READ_PROPERTY, ServicesSupported.WHO_IS}
        entry = directory.lookup(10)
        assert entry.supports(ServicesSupported.READ_PROPERTY) is True
        assert entry.supports(ServicesSupported.WRITE_PROPERTY) is False

    def test_refresh_services_rejects_non_bitstring(self, directory, transport, codec):
        directory.upsert(announce(10))
        future = directory.refresh_services(10)
        answer_read(transport, codec, 5)
        assert isinstance(future.exception(0), TypeError)
        assert directory.lookup(10).supported_services is None

    def test_entry_to_dict(self, directory, transport, codec):
        directory.upsert(announce(10), name="VAV")
        directory.record_values(10, AV1, {PV: 1.5})
        data = directory.lookup(10).to_dict()
        assert data["instance"] == 10
        assert data["name"] == "VAV"
        assert data["objects"][0]["properties"]["present-value"]["value"] == 1.5


class TestConcurrentAccess:
    def test_upserts_while_listing(self, directory):
        writers, per_writer = 4, 50
        done = threading.Event()
        barrier = threading.Barrier(writers + 1)
        errors = []

        def write(worker):
            barrier.wait()
            try:
                for n in range(per_writer):
                    address = BACnetAddress.from_bip(f"10.0.{worker}.{n + 1}")
                    directory.upsert(announce(worker * 1000 + n, address))
            except Exception as e:
                errors.append(e)

        def read():
            barrier.wait()
            try:
                while not done.is_set():
                    instances = [entry.instance for entry in directory.list_all()]
                    assert instances == sorted(set(instances))
            except Exception as e:
                errors.append(e)

        reader = threading.Thread(target=read)
        threads = [threading.Thread(target=write, args=(w,)) for w in range(writers)]
        reader.start()
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        done.set()
        reader.join(timeout=10)

        assert errors == []
        assert len(directory) == writers * per_writer
        assert directory.lookup_address(BACnetAddress.from_bip("10.0.3.50")).instance == 3049
