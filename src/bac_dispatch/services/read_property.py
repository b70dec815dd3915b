"""ReadProperty service per ASHRAE 135-2016 Clause 15.5."""

from __future__ import annotations

from dataclasses import dataclass

from bac_dispatch.encoding.primitives import (
    decode_object_identifier,
    decode_unsigned,
    encode_context_constructed,
    encode_context_enumerated,
    encode_context_object_id,
    encode_context_unsigned,
)
from bac_dispatch.encoding.tags import (
    decode_optional_context,
    expect_context,
    expect_opening,
    extract_context_value,
)
from bac_dispatch.types.enums import PropertyIdentifier
from bac_dispatch.types.primitives import ObjectIdentifier


def _decode_property(data: memoryview) -> PropertyIdentifier:
    return PropertyIdentifier(decode_unsigned(data))


def encode_property_reference(
    object_identifier: ObjectIdentifier,
    property_identifier: PropertyIdentifier,
    property_array_index: int | None,
) -> bytes:
    """Encode the ``[0] object, [1] property, [2] index OPTIONAL`` prefix."""
    buf = encode_context_object_id(0, object_identifier) + encode_context_enumerated(
        1, property_identifier
    )
    if property_array_index is not None:
        buf += encode_context_unsigned(2, property_array_index)
    return buf


def decode_property_reference(
    data: memoryview,
) -> tuple[ObjectIdentifier, PropertyIdentifier, int | None, int]:
    """Decode the prefix written by :func:`encode_property_reference`.

    :returns: ``(object_identifier, property_identifier, array_index, offset)``.
    """
    object_identifier, offset = expect_context(data, 0, 0, decode_object_identifier)
    property_identifier, offset = expect_context(data, offset, 1, _decode_property)
    array_index, offset = decode_optional_context(data, offset, 2, decode_unsigned)
    return object_identifier, property_identifier, array_index, offset


@dataclass(frozen=True, slots=True)
class ReadPropertyRequest:
    """ReadProperty-Request service parameters (Clause 15.5.1.1).

    ::

        ReadProperty-Request ::= SEQUENCE {
            objectIdentifier    [0] BACnetObjectIdentifier,
            propertyIdentifier  [1] BACnetPropertyIdentifier,
            propertyArrayIndex  [2] Unsigned OPTIONAL
        }
    """

    object_identifier: ObjectIdentifier
    property_identifier: PropertyIdentifier
    property_array_index: int | None = None

    def encode(self) -> bytes:
        return encode_property_reference(
            self.object_identifier, self.property_identifier, self.property_array_index
        )

    @classmethod
    def decode(cls, data: memoryview | bytes) -> ReadPropertyRequest:
        obj_id, prop_id, index, _ = decode_property_reference(memoryview(data))
        return cls(obj_id, prop_id, index)


@dataclass(frozen=True, slots=True)
class ReadPropertyACK:
    """ReadProperty-ACK service parameters (Clause 15.5.1.2).

    ``property_value`` holds the application-tagged octets enclosed by
    context tag 3; callers decode them with
    :func:`~bac_dispatch.encoding.primitives.decode_and_unwrap`.
    """

    object_identifier: ObjectIdentifier
    property_identifier: PropertyIdentifier
    property_array_index: int | None = None
    property_value: bytes = b""

    def encode(self) -> bytes:
        return encode_property_reference(
            self.object_identifier, self.property_identifier, self.property_array_index
        ) + encode_context_constructed(3, self.property_value)

    @classmethod
    def decode(cls, data: memoryview | bytes) -> ReadPropertyACK:
        data = memoryview(data)
        obj_id, prop_id, index, offset = decode_property_reference(data)
        offset = expect_opening(data, offset, 3)
        value, _ = extract_context_value(data, offset, 3)
        return cls(obj_id, prop_id, index, value)
