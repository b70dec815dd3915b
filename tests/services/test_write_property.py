import pytest

from bac_dispatch.encoding.primitives import encode_property_value
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.services.write_property import WritePropertyRequest
from bac_dispatch.types.enums import ObjectType, PropertyIdentifier
from bac_dispatch.types.primitives import ObjectIdentifier

AV_1 = ObjectIdentifier(ObjectType.ANALOG_VALUE, 1)
PV = PropertyIdentifier.PRESENT_VALUE


class TestWriteProperty:
    def test_encoding_with_priority(self):
        request = WritePropertyRequest(AV_1, PV, encode_property_value(72.0), priority=8)
        assert request.encode() == b"\x0c\x00\x80\x00\x01\x19\x55\x3e\x44\x42\x90\x00\x00\x3f\x49\x08"

    def test_decode(self):
        request = WritePropertyRequest(AV_1, PV, encode_property_value(None), property_array_index=3, priority=16)
        assert WritePropertyRequest.decode(request.encode()) == request

    def test_without_priority(self):
        request = WritePropertyRequest(AV_1, PropertyIdentifier.OBJECT_NAME, encode_property_value("Zone"))
        decoded = WritePropertyRequest.decode(request.encode())
        assert decoded.priority is None
        assert decoded.property_value == b"\x75\x05\x00Zone"

    @pytest.mark.parametrize("priority", [0, 17])
    def test_priority_range(self, priority):
        with pytest.raises(ValueError):
            WritePropertyRequest(AV_1, PV, b"\x00", priority=priority)

    def test_decoded_priority_out_of_range(self):
        frame = b"\x0c\x00\x80\x00\x01\x19\x55\x3e\x00\x3f\x49\x00"
        with pytest.raises(MalformedFrameError):
            WritePropertyRequest.decode(frame)
