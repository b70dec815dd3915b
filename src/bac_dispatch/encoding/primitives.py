"""BACnet primitive value encoding/decoding per ASHRAE 135-2016 Clause 20.2."""

from __future__ import annotations

import enum
import logging
import struct

from bac_dispatch.encoding.tags import (
    TagClass,
    decode_tag,
    encode_closing_tag,
    encode_opening_tag,
    encode_tag,
    extract_context_value,
)
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.types.primitives import BitString, ObjectIdentifier

logger = logging.getLogger(__name__)

# Application tag numbers for primitive types
TAG_NULL = 0
TAG_BOOLEAN = 1
TAG_UNSIGNED = 2
TAG_SIGNED = 3
TAG_REAL = 4
TAG_DOUBLE = 5
TAG_OCTET_STRING = 6
TAG_CHARACTER_STRING = 7
TAG_BIT_STRING = 8
TAG_ENUMERATED = 9
TAG_DATE = 10
TAG_TIME = 11
TAG_OBJECT_IDENTIFIER = 12

# Charset decoders for CharacterString (Clause 20.2.9)
_CHARSET_DECODERS: dict[int, str] = {
    0x00: "utf-8",
    0x03: "utf-32-be",
    0x04: "utf-16-be",
    0x05: "iso-8859-1",
}


# --- Contents octets ---


def encode_unsigned(value: int) -> bytes:
    """Encode an unsigned integer using the minimum number of octets (1-4)."""
    if value < 0:
        msg = f"Unsigned integer must be >= 0, got {value}"
        raise ValueError(msg)
    if value > 0xFFFFFFFF:
        msg = f"Unsigned integer exceeds 4-byte maximum, got {value}"
        raise ValueError(msg)
    n = max(1, (value.bit_length() + 7) // 8)
    return value.to_bytes(n, "big")


def decode_unsigned(data: memoryview | bytes) -> int:
    """Decode a big-endian unsigned integer."""
    if len(data) == 0:
        msg = "Unsigned integer needs at least one octet"
        raise MalformedFrameError(msg)
    return int.from_bytes(data, "big")


def encode_signed(value: int) -> bytes:
    """Encode a two's-complement signed integer in the minimum number of octets."""
    for n in range(1, 5):
        if -(1 << (8 * n - 1)) <= value < (1 << (8 * n - 1)):
            return value.to_bytes(n, "big", signed=True)
    msg = f"Signed integer out of 4-byte range, got {value}"
    raise ValueError(msg)


def decode_signed(data: memoryview | bytes) -> int:
    """Decode a big-endian two's-complement integer."""
    if len(data) == 0:
        msg = "Signed integer needs at least one octet"
        raise MalformedFrameError(msg)
    return int.from_bytes(data, "big", signed=True)


def encode_real(value: float) -> bytes:
    """Encode an IEEE-754 single precision float."""
    return struct.pack(">f", value)


def decode_real(data: memoryview | bytes) -> float:
    if len(data) != 4:
        msg = f"Real needs 4 octets, got {len(data)}"
        raise MalformedFrameError(msg)
    return float(struct.unpack(">f", data)[0])


def encode_double(value: float) -> bytes:
    return struct.pack(">d", value)


def decode_double(data: memoryview | bytes) -> float:
    if len(data) != 8:
        msg = f"Double needs 8 octets, got {len(data)}"
        raise MalformedFrameError(msg)
    return float(struct.unpack(">d", data)[0])


def encode_character_string(value: str) -> bytes:
    """Encode a UTF-8 character string with its leading charset octet."""
    return b"\x00" + value.encode("utf-8")


def decode_character_string(data: memoryview | bytes) -> str:
    if len(data) == 0:
        msg = "Character string needs a charset octet"
        raise MalformedFrameError(msg)
    charset = data[0]
    codec = _CHARSET_DECODERS.get(charset)
    if codec is None:
        msg = f"Unsupported character set {charset:#x}"
        raise MalformedFrameError(msg)
    try:
        return bytes(data[1:]).decode(codec)
    except UnicodeDecodeError as e:
        msg = f"Invalid {codec} character string"
        raise MalformedFrameError(msg) from e


def encode_bit_string(value: BitString) -> bytes:
    return bytes([value.unused_bits]) + value.value


def decode_bit_string(data: memoryview | bytes) -> BitString:
    if len(data) == 0:
        msg = "Bit string needs an unused-bits octet"
        raise MalformedFrameError(msg)
    try:
        return BitString(bytes(data[1:]), data[0])
    except ValueError as e:
        raise MalformedFrameError(str(e)) from e


def decode_object_identifier(data: memoryview | bytes) -> ObjectIdentifier:
    try:
        return ObjectIdentifier.decode(data)
    except ValueError as e:
        raise MalformedFrameError(str(e)) from e


def decode_boolean(data: memoryview | bytes) -> bool:
    """Decode a context-tagged boolean (one contents octet)."""
    if len(data) != 1:
        msg = f"Context boolean needs 1 octet, got {len(data)}"
        raise MalformedFrameError(msg)
    return data[0] != 0


# --- Tagged encodings ---


def encode_application_tagged(tag_number: int, data: bytes) -> bytes:
    return encode_tag(tag_number, TagClass.APPLICATION, len(data)) + data


def encode_context_tagged(tag_number: int, data: bytes) -> bytes:
    return encode_tag(tag_number, TagClass.CONTEXT, len(data)) + data


def encode_application_null() -> bytes:
    return bytes([TAG_NULL << 4])


def encode_application_boolean(value: bool) -> bytes:
    """Application booleans carry the value in the L/V/T field (Clause 20.2.3)."""
    return bytes([(TAG_BOOLEAN << 4) | (1 if value else 0)])


def encode_application_unsigned(value: int) -> bytes:
    return encode_application_tagged(TAG_UNSIGNED, encode_unsigned(value))


def encode_application_signed(value: int) -> bytes:
    return encode_application_tagged(TAG_SIGNED, encode_signed(value))


def encode_application_real(value: float) -> bytes:
    return encode_application_tagged(TAG_REAL, encode_real(value))


def encode_application_double(value: float) -> bytes:
    return encode_application_tagged(TAG_DOUBLE, encode_double(value))


def encode_application_octet_string(value: bytes) -> bytes:
    return encode_application_tagged(TAG_OCTET_STRING, value)


def encode_application_character_string(value: str) -> bytes:
    return encode_application_tagged(TAG_CHARACTER_STRING, encode_character_string(value))


def encode_application_bit_string(value: BitString) -> bytes:
    return encode_application_tagged(TAG_BIT_STRING, encode_bit_string(value))


def encode_application_enumerated(value: int) -> bytes:
    return encode_application_tagged(TAG_ENUMERATED, encode_unsigned(int(value)))


def encode_application_object_id(obj_id: ObjectIdentifier) -> bytes:
    return encode_application_tagged(TAG_OBJECT_IDENTIFIER, obj_id.encode())


def encode_context_unsigned(tag_number: int, value: int) -> bytes:
    return encode_context_tagged(tag_number, encode_unsigned(value))


def encode_context_enumerated(tag_number: int, value: int) -> bytes:
    return encode_context_tagged(tag_number, encode_unsigned(int(value)))


def encode_context_boolean(tag_number: int, value: bool) -> bytes:
    return encode_context_tagged(tag_number, b"\x01" if value else b"\x00")


def encode_context_object_id(tag_number: int, obj_id: ObjectIdentifier) -> bytes:
    return encode_context_tagged(tag_number, obj_id.encode())


def encode_context_character_string(tag_number: int, value: str) -> bytes:
    return encode_context_tagged(tag_number, encode_character_string(value))


def encode_context_constructed(tag_number: int, contents: bytes) -> bytes:
    """Wrap *contents* in an opening/closing context tag pair."""
    return encode_opening_tag(tag_number) + contents + encode_closing_tag(tag_number)


# --- Python value <-> application-tagged value ---


def encode_property_value(value: object, *, int_as_real: bool = False) -> bytes:
    """Encode a Python value as one or more application-tagged values.

    ``None`` -> Null, ``bool`` -> Boolean, enum members -> Enumerated,
    ``int`` -> Unsigned (Signed when negative, Real with *int_as_real*),
    ``float`` -> Real, ``str`` -> CharacterString, ``bytes`` -> OctetString,
    :class:`ObjectIdentifier`, :class:`BitString`, and lists/tuples of these
    (encoded back to back).

    :raises TypeError: If *value* has no BACnet encoding.
    """
    if value is None:
        return encode_application_null()
    if isinstance(value, bool):
        return encode_application_boolean(value)
    if isinstance(value, enum.IntEnum):
        return encode_application_enumerated(int(value))
    if isinstance(value, int):
        if int_as_real:
            return encode_application_real(float(value))
        if value < 0:
            return encode_application_signed(value)
        return encode_application_unsigned(value)
    if isinstance(value, float):
        return encode_application_real(value)
    if isinstance(value, str):
        return encode_application_character_string(value)
    if isinstance(value, (bytes, bytearray)):
        return encode_application_octet_string(bytes(value))
    if isinstance(value, ObjectIdentifier):
        return encode_application_object_id(value)
    if isinstance(value, BitString):
        return encode_application_bit_string(value)
    if isinstance(value, (list, tuple)):
        return b"".join(encode_property_value(v, int_as_real=int_as_real) for v in value)
    msg = f"Cannot encode {type(value).__name__} as a BACnet value"
    raise TypeError(msg)


def decode_application_value(data: memoryview | bytes, offset: int = 0) -> tuple[object, int]:
    """Decode one application-tagged value at *offset*.

    Dates and times are returned as their raw 4-octet contents.

    :returns: Tuple of (decoded Python value, offset past the value).
    :raises MalformedFrameError: On context tags or invalid contents.
    """
    if isinstance(data, bytes):
        data = memoryview(data)
    tag, offset = decode_tag(data, offset)
    if tag.cls != TagClass.APPLICATION:
        msg = f"Expected application tag, got context tag {tag.number}"
        raise MalformedFrameError(msg)

    if tag.number == TAG_BOOLEAN:
        return tag.length != 0, offset

    end = offset + tag.length
    contents = data[offset:end]
    match tag.number:
        case 0:  # Null
            value: object = None
        case 2:
            value = decode_unsigned(contents)
        case 3:
            value = decode_signed(contents)
        case 4:
            value = decode_real(contents)
        case 5:
            value = decode_double(contents)
        case 6:
            value = bytes(contents)
        case 7:
            value = decode_character_string(contents)
        case 8:
            value = decode_bit_string(contents)
        case 9:
            value = decode_unsigned(contents)
        case 10 | 11:
            value = bytes(contents)
        case 12:
            value = decode_object_identifier(contents)
        case _:
            msg = f"Unknown application tag {tag.number}"
            raise MalformedFrameError(msg)
    return value, end


def decode_all_application_values(data: memoryview | bytes) -> list[object]:
    """Decode a run of application-tagged values.

    Constructed (context-tagged) values inside the run are kept as raw
    bytes so that complex property values survive undecoded.
    """
    if isinstance(data, bytes):
        data = memoryview(data)
    values: list[object] = []
    offset = 0
    while offset < len(data):
        tag, after = decode_tag(data, offset)
        if tag.is_opening:
            raw, offset = extract_context_value(data, after, tag.number)
            values.append(raw)
            continue
        value, offset = decode_application_value(data, offset)
        values.append(value)
    return values


def decode_and_unwrap(data: memoryview | bytes) -> object:
    """Decode property value octets; a single value is returned unwrapped.

    Empty contents decode to an empty list.
    """
    values = decode_all_application_values(data)
    if len(values) == 1:
        return values[0]
    return values
