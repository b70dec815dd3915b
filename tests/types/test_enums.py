import pytest

from bac_dispatch.encoding.primitives import encode_property_value
from bac_dispatch.types.enums import (
    AbortReason,
    BinaryPV,
    Enumerated,
    ObjectType,
    PropertyIdentifier,
    RejectReason,
    Segmentation,
)
from bac_dispatch.types.primitives import BitString, ObjectIdentifier


class TestExtensibleEnums:
    def test_proprietary_values_accepted(self):
        member = ObjectType(600)
        assert member == 600
        assert member.name == "VENDOR_600"

    @pytest.mark.parametrize(
        ("enum", "limit"),
        [(ObjectType, 1023), (PropertyIdentifier, 0x3FFFFF), (RejectReason, 0xFF), (AbortReason, 0xFF)],
    )
    def test_values_beyond_encodable_range_rejected(self, enum, limit):
        assert enum(limit) == limit
        with pytest.raises(ValueError):
            enum(limit + 1)

    def test_closed_enums_reject_unknown(self):
        with pytest.raises(ValueError):
            Segmentation(9)
        with pytest.raises(ValueError):
            BinaryPV(2)

    def test_enumerated_spans_32_bits(self):
        assert Enumerated(0xFFFFFFFF) == 0xFFFFFFFF

    def test_enumerated_values_are_callable(self):
        assert Enumerated(0) is Enumerated.ZERO
        assert Enumerated(5).name == "VENDOR_5"
        assert encode_property_value(Enumerated(5)) == b"\x91\x05"
        with pytest.raises(ValueError):
            Enumerated(0x1_0000_0000)


class TestObjectIdentifier:
    def test_wire_format(self):
        oid = ObjectIdentifier(ObjectType.DEVICE, 1234)
        assert oid.encode() == b"\x02\x00\x04\xd2"
        assert ObjectIdentifier.decode(oid.encode()) == oid

    def test_coerces_int_type(self):
        assert ObjectIdentifier(8, 1).object_type is ObjectType.DEVICE

    def test_instance_range(self):
        with pytest.raises(ValueError):
            ObjectIdentifier(ObjectType.DEVICE, 0x400000)

    def test_str_and_dict(self):
        oid = ObjectIdentifier(ObjectType.ANALOG_INPUT, 3)
        assert str(oid) == "analog-input,3"
        assert ObjectIdentifier.from_dict(oid.to_dict()) == oid

    def test_ordering(self):
        assert ObjectIdentifier(ObjectType.ANALOG_INPUT, 9) < ObjectIdentifier(ObjectType.DEVICE, 1)


class TestBitString:
    def test_from_bits(self):
        bits = BitString.from_bits([True, False, False, True, False])
        assert bits.value == b"\x90"
        assert bits.unused_bits == 3
        assert len(bits) == 5
        assert bits.set_bits() == {0, 3}

    def test_index_out_of_range(self):
        with pytest.raises(IndexError):
            BitString.from_bits([True])[1]

    def test_invalid_unused_bits(self):
        with pytest.raises(ValueError):
            BitString(b"", 1)
