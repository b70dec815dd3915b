import pytest

from bac_dispatch.network.address import BIPAddress
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.transport.bvll import BVLL_HEADER_LENGTH, decode_bvll, encode_bvll
from bac_dispatch.types.enums import BvlcFunction


class TestEncode:
    def test_original_unicast(self):
        frame = encode_bvll(BvlcFunction.ORIGINAL_UNICAST_NPDU, b"\x01\x00")
        assert frame == b"\x81\x0a\x00\x06\x01\x00"

    def test_original_broadcast(self):
        frame = encode_bvll(BvlcFunction.ORIGINAL_BROADCAST_NPDU, b"")
        assert frame == b"\x81\x0b\x00\x04"

    def test_forwarded_carries_originating_address(self):
        origin = BIPAddress("10.0.0.7", 47808)
        frame = encode_bvll(BvlcFunction.FORWARDED_NPDU, b"\xaa", originating_address=origin)
        assert frame == b"\x81\x04\x00\x0b" + origin.encode() + b"\xaa"

    def test_forwarded_without_address_rejected(self):
        with pytest.raises(ValueError):
            encode_bvll(BvlcFunction.FORWARDED_NPDU, b"\xaa")


class TestDecode:
    def test_unicast(self):
        message = decode_bvll(b"\x81\x0a\x00\x06\x01\x00")
        assert message.function == BvlcFunction.ORIGINAL_UNICAST_NPDU
        assert message.data == b"\x01\x00"
        assert message.originating_address is None

    def test_forwarded(self):
        origin = BIPAddress("192.168.4.2", 47809)
        message = decode_bvll(encode_bvll(BvlcFunction.FORWARDED_NPDU, b"\x01\x00", origin))
        assert message.originating_address == origin
        assert message.data == b"\x01\x00"

    def test_trailing_bytes_beyond_length_ignored(self):
        message = decode_bvll(b"\x81\x0a\x00\x05\x01\xff\xff")
        assert message.data == b"\x01"

    @pytest.mark.parametrize(
        "data",
        [
            b"\x81\x0a\x00",
            b"\x82\x0a\x00\x04",
            b"\x81\x7f\x00\x04",
            b"\x81\x0a\x00\x03",
            b"\x81\x0a\x00\x09\x01",
            b"\x81\x04\x00\x08\x0a\x00\x00\x07",
        ],
    )
    def test_malformed(self, data):
        with pytest.raises(MalformedFrameError):
            decode_bvll(data)

    def test_header_length(self):
        assert BVLL_HEADER_LENGTH == 4
