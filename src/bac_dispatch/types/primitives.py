"""BACnet primitive value types per ASHRAE 135-2016 Clause 20.2."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from bac_dispatch.types.enums import ObjectType


def _enum_name(value: ObjectType) -> str:
    """Hyphenated lower-case name, e.g. ``analog-input``."""
    return value.name.lower().replace("_", "-")


@dataclass(frozen=True, slots=True, order=True)
class ObjectIdentifier:
    """BACnet Object Identifier - 10-bit type, 22-bit instance."""

    object_type: ObjectType
    instance_number: int

    def __post_init__(self) -> None:
        if not 0 <= self.instance_number <= 0x3FFFFF:
            msg = f"Instance number must be 0-4194303, got {self.instance_number}"
            raise ValueError(msg)
        if not isinstance(self.object_type, ObjectType):
            object.__setattr__(self, "object_type", ObjectType(self.object_type))

    def encode(self) -> bytes:
        """Encode to 4-byte wire format."""
        value = (int(self.object_type) << 22) | (self.instance_number & 0x3FFFFF)
        return value.to_bytes(4, "big")

    @classmethod
    def decode(cls, data: bytes | memoryview) -> ObjectIdentifier:
        """Decode from 4-byte wire format."""
        if len(data) < 4:
            msg = f"Object identifier needs 4 bytes, got {len(data)}"
            raise ValueError(msg)
        value = int.from_bytes(data[:4], "big")
        return cls(
            object_type=ObjectType(value >> 22),
            instance_number=value & 0x3FFFFF,
        )

    def __str__(self) -> str:
        return f"{_enum_name(self.object_type)},{self.instance_number}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "object_type": _enum_name(self.object_type),
            "instance": self.instance_number,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectIdentifier:
        """Reconstruct from a JSON-friendly dict."""
        obj_type = data["object_type"]
        if isinstance(obj_type, str):
            obj_type = ObjectType[obj_type.upper().replace("-", "_")]
        return cls(object_type=ObjectType(obj_type), instance_number=data["instance"])


@dataclass(frozen=True, slots=True)
class BitString:
    """BACnet Bit String: packed bits, most significant bit first.

    ``unused_bits`` counts the padding bits at the end of the last octet.
    """

    value: bytes
    unused_bits: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.unused_bits <= 7:
            msg = f"Unused bits must be 0-7, got {self.unused_bits}"
            raise ValueError(msg)
        if not self.value and self.unused_bits:
            msg = "Empty bit string cannot have unused bits"
            raise ValueError(msg)

    def __len__(self) -> int:
        return len(self.value) * 8 - self.unused_bits

    def __getitem__(self, index: int) -> bool:
        if not 0 <= index < len(self):
            msg = f"Bit index {index} out of range"
            raise IndexError(msg)
        byte_index, bit = divmod(index, 8)
        return bool(self.value[byte_index] & (0x80 >> bit))

    def set_bits(self) -> frozenset[int]:
        """Positions of all bits that are set."""
        return frozenset(i for i in range(len(self)) if self[i])

    @classmethod
    def from_bits(cls, bits: list[bool] | tuple[bool, ...]) -> BitString:
        """Pack a sequence of booleans."""
        buf = bytearray((len(bits) + 7) // 8)
        for i, bit in enumerate(bits):
            if bit:
                buf[i // 8] |= 0x80 >> (i % 8)
        unused = (8 - len(bits) % 8) % 8 if bits else 0
        return cls(bytes(buf), unused)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"bits": [self[i] for i in range(len(self))]}
