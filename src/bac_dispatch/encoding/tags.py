"""BACnet tag encoding and decoding per ASHRAE 135-2016 Clause 20.2.1."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, TypeVar

from bac_dispatch.services.errors import MalformedFrameError

if TYPE_CHECKING:
    from collections.abc import Callable

_T = TypeVar("_T")


class TagClass(IntEnum):
    """Tag class indicating application or context-specific encoding.

    - ``APPLICATION`` tags identify the datatype (Null, Boolean, etc.).
    - ``CONTEXT`` tags identify a field within a constructed type.
    """

    APPLICATION = 0
    CONTEXT = 1


@dataclass(frozen=True, slots=True)
class Tag:
    """A decoded tag header."""

    number: int
    """Datatype for application tags, field index for context tags."""

    cls: TagClass

    length: int
    """Content length in bytes, or the raw L/V/T value for application booleans."""

    is_opening: bool = False
    is_closing: bool = False

    def is_context(self, number: int) -> bool:
        """True for a primitive context tag with the given number."""
        return (
            self.cls == TagClass.CONTEXT
            and self.number == number
            and not self.is_opening
            and not self.is_closing
        )


def encode_tag(tag_number: int, cls: TagClass, length: int) -> bytes:
    """Encode a tag header.

    :param tag_number: Tag number (0-254).
    :param cls: Tag class (APPLICATION or CONTEXT).
    :param length: Data length in bytes.
    :raises ValueError: If *tag_number* or *length* is out of range.
    """
    if tag_number < 0 or tag_number > 254:
        msg = f"Tag number must be 0-254, got {tag_number}"
        raise ValueError(msg)
    if length < 0:
        msg = f"Tag length must be non-negative, got {length}"
        raise ValueError(msg)

    if tag_number <= 14:
        header = bytearray([(tag_number << 4) | (cls << 3)])
    else:
        header = bytearray([0xF0 | (cls << 3), tag_number])

    if length <= 4:
        header[0] |= length
    else:
        header[0] |= 5
        if length <= 253:
            header.append(length)
        elif length <= 0xFFFF:
            header.append(254)
            header += length.to_bytes(2, "big")
        else:
            header.append(255)
            header += length.to_bytes(4, "big")
    return bytes(header)


def encode_opening_tag(tag_number: int) -> bytes:
    """Encode a context-specific opening tag."""
    if tag_number <= 14:
        return bytes([(tag_number << 4) | 0x0E])
    return bytes([0xFE, tag_number])


def encode_closing_tag(tag_number: int) -> bytes:
    """Encode a context-specific closing tag."""
    if tag_number <= 14:
        return bytes([(tag_number << 4) | 0x0F])
    return bytes([0xFF, tag_number])


def _byte_at(buf: memoryview, offset: int) -> int:
    if offset >= len(buf):
        msg = f"Tag decode: offset {offset} beyond buffer length {len(buf)}"
        raise MalformedFrameError(msg)
    return buf[offset]


def decode_tag(buf: memoryview | bytes, offset: int) -> tuple[Tag, int]:
    """Decode a tag header from *buf* starting at *offset*.

    :returns: Tuple of (decoded :class:`Tag`, offset past the tag header).
    :raises MalformedFrameError: If the header runs past the buffer.
    """
    if isinstance(buf, bytes):
        buf = memoryview(buf)

    initial = _byte_at(buf, offset)
    offset += 1

    tag_number = (initial >> 4) & 0x0F
    cls = TagClass((initial >> 3) & 0x01)
    lvt = initial & 0x07

    if tag_number == 0x0F:
        tag_number = _byte_at(buf, offset)
        offset += 1

    if cls == TagClass.CONTEXT and lvt == 6:
        return Tag(number=tag_number, cls=cls, length=0, is_opening=True), offset
    if cls == TagClass.CONTEXT and lvt == 7:
        return Tag(number=tag_number, cls=cls, length=0, is_closing=True), offset

    if lvt < 5:
        length = lvt
    else:
        ext = _byte_at(buf, offset)
        offset += 1
        if ext <= 253:
            length = ext
        else:
            width = 2 if ext == 254 else 4
            if offset + width > len(buf):
                msg = "Tag decode: truncated extended length"
                raise MalformedFrameError(msg)
            length = int.from_bytes(buf[offset : offset + width], "big")
            offset += width

    # Application booleans carry their value in L/V/T, not in content octets.
    content = 0 if (cls == TagClass.APPLICATION and tag_number == 1) else length
    if offset + content > len(buf):
        msg = f"Tag {tag_number} declares {length} octets, only {len(buf) - offset} remain"
        raise MalformedFrameError(msg)

    return Tag(number=tag_number, cls=cls, length=length), offset


def extract_context_value(
    data: memoryview | bytes,
    offset: int,
    tag_number: int,
) -> tuple[bytes, int]:
    """Extract raw bytes enclosed by a context opening/closing tag pair.

    *offset* must point just past the opening tag.  Nested pairs are
    skipped.

    :returns: Tuple of (enclosed raw bytes, offset past the closing tag).
    :raises MalformedFrameError: If the matching closing tag is not found.
    """
    if isinstance(data, bytes):
        data = memoryview(data)
    value_start = offset
    depth = 1
    while offset < len(data):
        tag, new_offset = decode_tag(data, offset)
        if tag.is_opening:
            depth += 1
            offset = new_offset
        elif tag.is_closing:
            depth -= 1
            if depth == 0:
                return bytes(data[value_start:offset]), new_offset
            offset = new_offset
        elif tag.cls == TagClass.APPLICATION and tag.number == 1:
            offset = new_offset
        else:
            offset = new_offset + tag.length
    msg = f"Missing closing tag {tag_number}"
    raise MalformedFrameError(msg)


def skip_value(data: memoryview, offset: int) -> int:
    """Return the offset past the (possibly constructed) value at *offset*."""
    tag, offset = decode_tag(data, offset)
    if tag.is_opening:
        _, offset = extract_context_value(data, offset, tag.number)
        return offset
    if tag.cls == TagClass.APPLICATION and tag.number == 1:
        return offset
    return offset + tag.length


def decode_optional_context(
    data: memoryview,
    offset: int,
    tag_number: int,
    decode_fn: Callable[[memoryview], _T],
) -> tuple[_T | None, int]:
    """Decode an optional primitive context-tagged field.

    Peeks at the next tag; if it is context tag *tag_number*, decodes its
    contents with *decode_fn* and advances.  Otherwise returns
    ``(None, offset)`` unchanged.
    """
    if offset >= len(data):
        return None, offset
    tag, new_offset = decode_tag(data, offset)
    if not tag.is_context(tag_number):
        return None, offset
    end = new_offset + tag.length
    return decode_fn(data[new_offset:end]), end


def expect_context(
    data: memoryview,
    offset: int,
    tag_number: int,
    decode_fn: Callable[[memoryview], _T],
) -> tuple[_T, int]:
    """Decode a required primitive context-tagged field."""
    value, new_offset = decode_optional_context(data, offset, tag_number, decode_fn)
    if value is None:
        msg = f"Missing required context tag {tag_number} at offset {offset}"
        raise MalformedFrameError(msg)
    return value, new_offset


def expect_opening(data: memoryview, offset: int, tag_number: int) -> int:
    """Consume opening tag *tag_number* and return the offset past it."""
    tag, new_offset = decode_tag(data, offset)
    if not (tag.is_opening and tag.number == tag_number):
        msg = f"Expected opening tag {tag_number} at offset {offset}"
        raise MalformedFrameError(msg)
    return new_offset


def is_opening_at(data: memoryview, offset: int, tag_number: int) -> bool:
    """True if an opening tag *tag_number* starts at *offset*."""
    if offset >= len(data):
        return False
    tag, _ = decode_tag(data, offset)
    return tag.is_opening and tag.number == tag_number
