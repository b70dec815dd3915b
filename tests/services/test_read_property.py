import pytest

from bac_dispatch.encoding.primitives import decode_and_unwrap, encode_property_value
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.services.read_property import ReadPropertyACK, ReadPropertyRequest
from bac_dispatch.types.enums import ObjectType, PropertyIdentifier
from bac_dispatch.types.primitives import ObjectIdentifier

AI_1 = ObjectIdentifier(ObjectType.ANALOG_INPUT, 1)
PV = PropertyIdentifier.PRESENT_VALUE


class TestReadPropertyRequest:
    def test_encoding(self):
        assert ReadPropertyRequest(AI_1, PV).encode() == b"\x0c\x00\x00\x00\x01\x19\x55"

    def test_array_index(self):
        frame = ReadPropertyRequest(AI_1, PV, 2).encode()
        assert frame.endswith(b"\x29\x02")
        assert ReadPropertyRequest.decode(frame).property_array_index == 2

    def test_decode(self):
        request = ReadPropertyRequest.decode(b"\x0c\x00\x00\x00\x01\x19\x55")
        assert request == ReadPropertyRequest(AI_1, PV)

    def test_proprietary_property_preserved(self):
        request = ReadPropertyRequest.decode(ReadPropertyRequest(AI_1, PropertyIdentifier(600)).encode())
        assert request.property_identifier == 600

    def test_missing_property(self):
        with pytest.raises(MalformedFrameError, match="context tag 1"):
            ReadPropertyRequest.decode(b"\x0c\x00\x00\x00\x01")


class TestReadPropertyACK:
    def test_encoding(self):
        ack = ReadPropertyACK(AI_1, PV, property_value=encode_property_value(72.0))
        assert ack.encode() == b"\x0c\x00\x00\x00\x01\x19\x55\x3e\x44\x42\x90\x00\x00\x3f"

    def test_decode_value(self):
        ack = ReadPropertyACK.decode(b"\x0c\x00\x00\x00\x01\x19\x55\x3e\x44\x42\x90\x00\x00\x3f")
        assert decode_and_unwrap(ack.property_value) == 72.0

    def test_list_value(self):
        value = encode_property_value([ObjectIdentifier(ObjectType.DEVICE, 5), AI_1])
        ack = ReadPropertyACK(ObjectIdentifier(ObjectType.DEVICE, 5), PropertyIdentifier.OBJECT_LIST, property_value=value)
        decoded = ReadPropertyACK.decode(ack.encode())
        assert decode_and_unwrap(decoded.property_value) == [ObjectIdentifier(ObjectType.DEVICE, 5), AI_1]

    def test_missing_value(self):
        with pytest.raises(MalformedFrameError):
            ReadPropertyACK.decode(b"\x0c\x00\x00\x00\x01\x19\x55")

    def test_unterminated_value(self):
        with pytest.raises(MalformedFrameError):
            ReadPropertyACK.decode(b"\x0c\x00\x00\x00\x01\x19\x55\x3e\x21\x01")
