"""Change-of-value services per ASHRAE 135-2016 Clause 13.1 and 13.14."""

from __future__ import annotations

from dataclasses import dataclass, field

from bac_dispatch.encoding.primitives import (
    decode_and_unwrap,
    decode_boolean,
    decode_object_identifier,
    decode_unsigned,
    encode_context_boolean,
    encode_context_constructed,
    encode_context_enumerated,
    encode_context_object_id,
    encode_context_unsigned,
    encode_property_value,
)
from bac_dispatch.encoding.tags import (
    decode_optional_context,
    decode_tag,
    expect_context,
    expect_opening,
    extract_context_value,
)
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.types.enums import PropertyIdentifier
from bac_dispatch.types.primitives import ObjectIdentifier


@dataclass(frozen=True, slots=True)
class SubscribeCOVRequest:
    """SubscribeCOV-Request service parameters (Clause 13.14.1).

    ::

        SubscribeCOV-Request ::= SEQUENCE {
            subscriberProcessIdentifier  [0] Unsigned32,
            monitoredObjectIdentifier    [1] BACnetObjectIdentifier,
            issueConfirmedNotifications  [2] BOOLEAN OPTIONAL,
            lifetime                     [3] Unsigned OPTIONAL
        }

    Omitting both optional fields cancels the subscription.
    """

    subscriber_process_identifier: int
    monitored_object_identifier: ObjectIdentifier
    issue_confirmed_notifications: bool | None = None
    lifetime: int | None = None

    @property
    def is_cancellation(self) -> bool:
        return self.issue_confirmed_notifications is None and self.lifetime is None

    def encode(self) -> bytes:
        buf = encode_context_unsigned(0, self.subscriber_process_identifier)
        buf += encode_context_object_id(1, self.monitored_object_identifier)
        if self.issue_confirmed_notifications is not None:
            buf += encode_context_boolean(2, self.issue_confirmed_notifications)
        if self.lifetime is not None:
            buf += encode_context_unsigned(3, self.lifetime)
        return buf

    @classmethod
    def decode(cls, data: memoryview | bytes) -> SubscribeCOVRequest:
        data = memoryview(data)
        process_id, offset = expect_context(data, 0, 0, decode_unsigned)
        obj_id, offset = expect_context(data, offset, 1, decode_object_identifier)
        confirmed, offset = decode_optional_context(data, offset, 2, decode_boolean)
        lifetime, _ = decode_optional_context(data, offset, 3, decode_unsigned)
        return cls(process_id, obj_id, confirmed, lifetime)


@dataclass(frozen=True, slots=True)
class PropertyValue:
    """One BACnetPropertyValue entry of a notification.

    ``value`` holds the raw application-tagged octets; :attr:`decoded`
    gives the Python value.
    """

    property_identifier: PropertyIdentifier
    value: bytes
    property_array_index: int | None = None
    priority: int | None = None

    @classmethod
    def of(cls, property_identifier: PropertyIdentifier, value: object) -> PropertyValue:
        """Build an entry from a Python value."""
        return cls(property_identifier, encode_property_value(value))

    @property
    def decoded(self) -> object:
        return decode_and_unwrap(self.value)

    def encode(self) -> bytes:
        buf = encode_context_enumerated(0, self.property_identifier)
        if self.property_array_index is not None:
            buf += encode_context_unsigned(1, self.property_array_index)
        buf += encode_context_constructed(2, self.value)
        if self.priority is not None:
            buf += encode_context_unsigned(3, self.priority)
        return buf

    @classmethod
    def decode_from(cls, data: memoryview, offset: int) -> tuple[PropertyValue, int]:
        prop, offset = expect_context(data, offset, 0, decode_unsigned)
        index, offset = decode_optional_context(data, offset, 1, decode_unsigned)
        offset = expect_opening(data, offset, 2)
        value, offset = extract_context_value(data, offset, 2)
        priority, offset = decode_optional_context(data, offset, 3, decode_unsigned)
        return cls(PropertyIdentifier(prop), value, index, priority), offset


@dataclass(frozen=True, slots=True)
class COVNotificationRequest:
    """Confirmed/Unconfirmed COVNotification-Request (Clause 13.6.1/13.7.1).

    ::

        COVNotification-Request ::= SEQUENCE {
            subscriberProcessIdentifier  [0] Unsigned32,
            initiatingDeviceIdentifier   [1] BACnetObjectIdentifier,
            monitoredObjectIdentifier    [2] BACnetObjectIdentifier,
            timeRemaining                [3] Unsigned,
            listOfValues                 [4] SEQUENCE OF BACnetPropertyValue
        }
    """

    subscriber_process_identifier: int
    initiating_device_identifier: ObjectIdentifier
    monitored_object_identifier: ObjectIdentifier
    time_remaining: int
    list_of_values: tuple[PropertyValue, ...] = field(default_factory=tuple)

    def encode(self) -> bytes:
        buf = encode_context_unsigned(0, self.subscriber_process_identifier)
        buf += encode_context_object_id(1, self.initiating_device_identifier)
        buf += encode_context_object_id(2, self.monitored_object_identifier)
        buf += encode_context_unsigned(3, self.time_remaining)
        buf += encode_context_constructed(4, b"".join(v.encode() for v in self.list_of_values))
        return buf

    @classmethod
    def decode(cls, data: memoryview | bytes) -> COVNotificationRequest:
        data = memoryview(data)
        process_id, offset = expect_context(data, 0, 0, decode_unsigned)
        device_id, offset = expect_context(data, offset, 1, decode_object_identifier)
        obj_id, offset = expect_context(data, offset, 2, decode_object_identifier)
        remaining, offset = expect_context(data, offset, 3, decode_unsigned)
        offset = expect_opening(data, offset, 4)

        values: list[PropertyValue] = []
        while True:
            if offset >= len(data):
                msg = "COV notification missing closing tag 4"
                raise MalformedFrameError(msg)
            tag, _ = decode_tag(data, offset)
            if tag.is_closing and tag.number == 4:
                break
            value, offset = PropertyValue.decode_from(data, offset)
            values.append(value)

        return cls(process_id, device_id, obj_id, remaining, tuple(values))
