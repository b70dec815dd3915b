import pytest

from bac_dispatch.encoding.codec import (
    APDUCodec,
    Codec,
    ConfirmedRequest,
    ConfirmedResponse,
    Malformed,
    UnconfirmedMessage,
)
from bac_dispatch.services.errors import BACnetAbortError, BACnetError, BACnetRejectError
from bac_dispatch.types.enums import (
    AbortReason,
    ConfirmedServiceChoice,
    ErrorClass,
    ErrorCode,
    RejectReason,
    UnconfirmedServiceChoice,
)

READ = ConfirmedServiceChoice.READ_PROPERTY


@pytest.fixture
def codec():
    return APDUCodec()


class TestEncode:
    def test_confirmed_request_header(self, codec):
        frame = codec.encode_confirmed_request(READ, 9, b"\xaa")
        assert frame == bytes([0x00, 0x05, 9, READ, 0xAA])

    def test_max_apdu_field_follows_configuration(self):
        frame = APDUCodec(max_apdu_length=480).encode_confirmed_request(READ, 0, b"")
        assert frame[1] == 0x03

    def test_unsupported_max_apdu_length(self):
        with pytest.raises(ValueError):
            APDUCodec(max_apdu_length=1500)

    def test_invoke_id_must_fit_octet(self, codec):
        with pytest.raises(ValueError):
            codec.encode_confirmed_request(READ, 256, b"")

    def test_unconfirmed_request(self, codec):
        frame = codec.encode_unconfirmed_request(UnconfirmedServiceChoice.WHO_IS, b"")
        assert frame == b"\x10\x08"

    def test_satisfies_codec_protocol(self, codec):
        assert isinstance(codec, Codec)


class TestDecode:
    def test_confirmed_request(self, codec):
        decoded = codec.decode(codec.encode_confirmed_request(READ, 4, b"\x01"))
        assert decoded == ConfirmedRequest(invoke_id=4, service_choice=READ, data=b"\x01", max_apdu_length=1476)

    def test_unconfirmed_request(self, codec):
        decoded = codec.decode(b"\x10\x00\x01\x02")
        assert decoded == UnconfirmedMessage(service_choice=0, data=b"\x01\x02")

    def test_simple_ack(self, codec):
        decoded = codec.decode(codec.encode_simple_ack(3, READ))
        assert isinstance(decoded, ConfirmedResponse)
        assert decoded.invoke_id == 3
        assert decoded.is_ack
        assert decoded.data == b""

    def test_complex_ack(self, codec):
        decoded = codec.decode(codec.encode_complex_ack(3, READ, b"\xde\xad"))
        assert decoded.data == b"\xde\xad"
        assert decoded.service_choice == READ

    def test_error(self, codec):
        decoded = codec.decode(codec.encode_error(1, READ, ErrorClass.OBJECT, ErrorCode.UNKNOWN_OBJECT))
        assert not decoded.is_ack
        assert isinstance(decoded.error, BACnetError)
        assert decoded.error.error_class == ErrorClass.OBJECT
        assert decoded.error.error_code == ErrorCode.UNKNOWN_OBJECT

    def test_reject(self, codec):
        decoded = codec.decode(codec.encode_reject(2, RejectReason.UNRECOGNIZED_SERVICE))
        assert isinstance(decoded.error, BACnetRejectError)
        assert decoded.invoke_id == 2

    def test_server_abort(self, codec):
        decoded = codec.decode(codec.encode_abort(2, AbortReason.OTHER))
        assert isinstance(decoded.error, BACnetAbortError)

    @pytest.mark.parametrize(
        "frame",
        [
            b"",
            b"\x00",
            b"\x00\x05\x01",
            b"\x20\x01",
            b"\x50\x01\x0c\x91",
            b"\x50\x01\x0c\x21\x01\x91\x01",
            b"\x70\x01\x00",
            b"\xf0\x00",
        ],
    )
    def test_malformed_frames(self, codec, frame):
        assert isinstance(codec.decode(frame), Malformed)

    def test_client_abort_not_accepted(self, codec):
        frame = codec.encode_abort(2, AbortReason.OTHER, sent_by_server=False)
        assert isinstance(codec.decode(frame), Malformed)

    def test_segmented_complex_ack_not_supported(self, codec):
        decoded = codec.decode(b"\x38\x01\x00\x01\x0c\x00")
        assert isinstance(decoded, Malformed)
        assert "Segmented" in decoded.reason

    def test_decode_never_raises_on_garbage(self, codec):
        for first in range(256):
            assert codec.decode(bytes([first, 0xFF, 0xFF])) is not None
