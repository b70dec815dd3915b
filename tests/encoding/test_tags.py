import pytest

from bac_dispatch.encoding.primitives import decode_unsigned
from bac_dispatch.encoding.tags import (
    TagClass,
    decode_optional_context,
    decode_tag,
    encode_closing_tag,
    encode_opening_tag,
    encode_tag,
    expect_context,
    expect_opening,
    extract_context_value,
    is_opening_at,
    skip_value,
)
from bac_dispatch.services.errors import MalformedFrameError


class TestEncodeTag:
    def test_small_application_tag(self):
        assert encode_tag(2, TagClass.APPLICATION, 1) == bytes([0x21])

    def test_small_context_tag(self):
        assert encode_tag(5, TagClass.CONTEXT, 3) == bytes([0x5B])

    def test_extended_tag_number(self):
        assert encode_tag(20, TagClass.CONTEXT, 1) == bytes([0xF9, 20])

    @pytest.mark.parametrize(
        ("length", "expected"),
        [
            (5, bytes([0x75, 5])),
            (253, bytes([0x75, 253])),
            (254, bytes([0x75, 254, 0x00, 0xFE])),
            (70000, bytes([0x75, 255, 0x00, 0x01, 0x11, 0x70])),
        ],
    )
    def test_extended_lengths(self, length, expected):
        assert encode_tag(7, TagClass.APPLICATION, length) == expected

    @pytest.mark.parametrize(("number", "length"), [(-1, 0), (255, 0), (1, -1)])
    def test_out_of_range(self, number, length):
        with pytest.raises(ValueError):
            encode_tag(number, TagClass.APPLICATION, length)

    def test_opening_and_closing(self):
        assert encode_opening_tag(3) == b"\x3e"
        assert encode_closing_tag(3) == b"\x3f"
        assert encode_opening_tag(20) == b"\xfe\x14"
        assert encode_closing_tag(20) == b"\xff\x14"


class TestDecodeTag:
    def test_decodes_header(self):
        tag, offset = decode_tag(b"\x21\x05", 0)
        assert (tag.number, tag.cls, tag.length) == (2, TagClass.APPLICATION, 1)
        assert offset == 1

    def test_opening_and_closing_flags(self):
        opening, _ = decode_tag(b"\x3e", 0)
        closing, _ = decode_tag(b"\x3f", 0)
        assert opening.is_opening and opening.number == 3
        assert closing.is_closing and closing.number == 3

    def test_extended_length(self):
        data = encode_tag(7, TagClass.APPLICATION, 300) + bytes(300)
        tag, offset = decode_tag(data, 0)
        assert tag.length == 300
        assert offset == 4

    def test_application_boolean_has_no_contents(self):
        tag, offset = decode_tag(b"\x11", 0)
        assert tag.number == 1
        assert tag.length == 1
        assert offset == 1

    @pytest.mark.parametrize(
        "data",
        [b"", b"\xf9", b"\x75", b"\x75\xfe\x00", b"\x24\x00\x00"],
    )
    def test_truncated_header_or_contents(self, data):
        with pytest.raises(MalformedFrameError):
            decode_tag(data, 0)

    def test_malformed_frame_error_is_value_error(self):
        with pytest.raises(ValueError):
            decode_tag(b"", 0)


class TestContextHelpers:
    def test_extract_nested_value(self):
        data = b"\x3e" + b"\x0e\x21\x01\x0f" + b"\x3f\x99"
        value, offset = extract_context_value(data, 1, 3)
        assert value == b"\x0e\x21\x01\x0f"
        assert offset == 6

    def test_extract_missing_closing_tag(self):
        with pytest.raises(MalformedFrameError):
            extract_context_value(b"\x3e\x21\x01", 1, 3)

    def test_optional_context_present_and_absent(self):
        data = memoryview(b"\x09\x05\x19\x07")
        value, offset = decode_optional_context(data, 0, 0, decode_unsigned)
        assert (value, offset) == (5, 2)
        missing, same = decode_optional_context(data, 2, 0, decode_unsigned)
        assert (missing, same) == (None, 2)
        assert decode_optional_context(data, 4, 0, decode_unsigned) == (None, 4)

    def test_expect_context_missing(self):
        with pytest.raises(MalformedFrameError, match="context tag 1"):
            expect_context(memoryview(b"\x09\x05"), 0, 1, decode_unsigned)

    def test_expect_opening(self):
        assert expect_opening(memoryview(b"\x3e\x3f"), 0, 3) == 1
        with pytest.raises(MalformedFrameError):
            expect_opening(memoryview(b"\x4e\x4f"), 0, 3)

    def test_is_opening_at(self):
        data = memoryview(b"\x3e\x3f")
        assert is_opening_at(data, 0, 3)
        assert not is_opening_at(data, 1, 3)
        assert not is_opening_at(data, 2, 3)

    def test_skip_value(self):
        data = memoryview(b"\x22\x01\x00" + b"\x11" + b"\x3e\x21\x01\x3f" + b"\x00")
        assert skip_value(data, 0) == 3
        assert skip_value(data, 3) == 4
        assert skip_value(data, 4) == 8
