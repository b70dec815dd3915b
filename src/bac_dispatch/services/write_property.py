"""WriteProperty service per ASHRAE 135-2016 Clause 15.9."""

from __future__ import annotations

from dataclasses import dataclass

from bac_dispatch.encoding.primitives import (
    decode_unsigned,
    encode_context_constructed,
    encode_context_unsigned,
)
from bac_dispatch.encoding.tags import decode_optional_context, expect_opening, extract_context_value
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.services.read_property import decode_property_reference, encode_property_reference
from bac_dispatch.types.enums import PropertyIdentifier
from bac_dispatch.types.primitives import ObjectIdentifier


@dataclass(frozen=True, slots=True)
class WritePropertyRequest:
    """WriteProperty-Request service parameters (Clause 15.9.1.1).

    ::

        WriteProperty-Request ::= SEQUENCE {
            objectIdentifier    [0] BACnetObjectIdentifier,
            propertyIdentifier  [1] BACnetPropertyIdentifier,
            propertyArrayIndex  [2] Unsigned OPTIONAL,
            propertyValue       [3] ABSTRACT-SYNTAX.&TYPE,
            priority            [4] Unsigned (1..16) OPTIONAL
        }

    ``property_value`` is the application-tagged encoding of the value.
    """

    object_identifier: ObjectIdentifier
    property_identifier: PropertyIdentifier
    property_value: bytes
    property_array_index: int | None = None
    priority: int | None = None

    def __post_init__(self) -> None:
        if self.priority is not None and not 1 <= self.priority <= 16:
            msg = f"Priority must be 1-16, got {self.priority}"
            raise ValueError(msg)

    def encode(self) -> bytes:
        buf = encode_property_reference(
            self.object_identifier, self.property_identifier, self.property_array_index
        ) + encode_context_constructed(3, self.property_value)
        if self.priority is not None:
            buf += encode_context_unsigned(4, self.priority)
        return buf

    @classmethod
    def decode(cls, data: memoryview | bytes) -> WritePropertyRequest:
        data = memoryview(data)
        obj_id, prop_id, index, offset = decode_property_reference(data)
        offset = expect_opening(data, offset, 3)
        value, offset = extract_context_value(data, offset, 3)
        priority, _ = decode_optional_context(data, offset, 4, decode_unsigned)
        try:
            return cls(obj_id, prop_id, value, index, priority)
        except ValueError as e:
            raise MalformedFrameError(str(e)) from e
