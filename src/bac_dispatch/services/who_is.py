"""Who-Is and I-Am services per ASHRAE 135-2016 Clause 16.10."""

from __future__ import annotations

from dataclasses import dataclass

from bac_dispatch.encoding.primitives import (
    TAG_ENUMERATED,
    TAG_OBJECT_IDENTIFIER,
    TAG_UNSIGNED,
    decode_object_identifier,
    decode_unsigned,
    encode_application_enumerated,
    encode_application_object_id,
    encode_application_unsigned,
    encode_context_unsigned,
)
from bac_dispatch.encoding.tags import TagClass, decode_optional_context, decode_tag
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.types.enums import ObjectType, Segmentation
from bac_dispatch.types.primitives import ObjectIdentifier

_MAX_INSTANCE = 0x3FFFFF


@dataclass(frozen=True, slots=True)
class WhoIsRequest:
    """Who-Is-Request service parameters (Clause 16.10.1).

    Both limits must be present or both absent.  A request with only one
    limit is treated as unbounded.
    """

    low_limit: int | None = None
    high_limit: int | None = None

    def __post_init__(self) -> None:
        if (self.low_limit is None) != (self.high_limit is None):
            object.__setattr__(self, "low_limit", None)
            object.__setattr__(self, "high_limit", None)
            return
        for limit in (self.low_limit, self.high_limit):
            if limit is not None and not 0 <= limit <= _MAX_INSTANCE:
                msg = f"Who-Is limit must be 0-{_MAX_INSTANCE}, got {limit}"
                raise ValueError(msg)

    def matches(self, instance_number: int) -> bool:
        """True if a device with *instance_number* must answer."""
        if self.low_limit is None or self.high_limit is None:
            return True
        return self.low_limit <= instance_number <= self.high_limit

    def encode(self) -> bytes:
        if self.low_limit is None or self.high_limit is None:
            return b""
        return encode_context_unsigned(0, self.low_limit) + encode_context_unsigned(1, self.high_limit)

    @classmethod
    def decode(cls, data: memoryview | bytes) -> WhoIsRequest:
        data = memoryview(data)
        low, offset = decode_optional_context(data, 0, 0, decode_unsigned)
        high, _ = decode_optional_context(data, offset, 1, decode_unsigned)
        return cls(low_limit=low, high_limit=high)


@dataclass(frozen=True, slots=True)
class IAmRequest:
    """I-Am-Request service parameters (Clause 16.10.2).

    All four fields are application tagged.
    """

    object_identifier: ObjectIdentifier
    max_apdu_length: int
    segmentation_supported: Segmentation
    vendor_id: int

    def encode(self) -> bytes:
        return (
            encode_application_object_id(self.object_identifier)
            + encode_application_unsigned(self.max_apdu_length)
            + encode_application_enumerated(self.segmentation_supported)
            + encode_application_unsigned(self.vendor_id)
        )

    @classmethod
    def decode(cls, data: memoryview | bytes) -> IAmRequest:
        """Decode I-Am parameters.

        :raises MalformedFrameError: If a field is missing, mistyped, or the
            identifier is not a device.
        """
        data = memoryview(data)
        offset = 0
        fields: list[memoryview] = []
        for expected in (TAG_OBJECT_IDENTIFIER, TAG_UNSIGNED, TAG_ENUMERATED, TAG_UNSIGNED):
            tag, offset = decode_tag(data, offset)
            if tag.cls != TagClass.APPLICATION or tag.number != expected:
                msg = f"I-Am field {len(fields)}: expected application tag {expected}, got {tag.number}"
                raise MalformedFrameError(msg)
            fields.append(data[offset : offset + tag.length])
            offset += tag.length

        object_identifier = decode_object_identifier(fields[0])
        if object_identifier.object_type != ObjectType.DEVICE:
            msg = f"I-Am identifier is not a device: {object_identifier}"
            raise MalformedFrameError(msg)
        try:
            segmentation = Segmentation(decode_unsigned(fields[2]))
        except ValueError as e:
            raise MalformedFrameError(str(e)) from e
        return cls(
            object_identifier=object_identifier,
            max_apdu_length=decode_unsigned(fields[1]),
            segmentation_supported=segmentation,
            vendor_id=decode_unsigned(fields[3]),
        )
