"""EventNotification service per ASHRAE 135-2016 Clause 13.8/13.9.

Only the routing-relevant fields are decoded.  The time stamp and the
event values are kept as raw constructed octets.
"""

from __future__ import annotations

from dataclasses import dataclass

from bac_dispatch.encoding.primitives import (
    decode_boolean,
    decode_character_string,
    decode_object_identifier,
    decode_unsigned,
    encode_context_boolean,
    encode_context_character_string,
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
    is_opening_at,
)
from bac_dispatch.types.enums import EventState, EventType, NotifyType
from bac_dispatch.types.primitives import ObjectIdentifier


@dataclass(frozen=True, slots=True)
class EventNotificationRequest:
    """EventNotification-Request service parameters.

    ::

        EventNotification-Request ::= SEQUENCE {
            processIdentifier            [0] Unsigned32,
            initiatingDeviceIdentifier   [1] BACnetObjectIdentifier,
            eventObjectIdentifier        [2] BACnetObjectIdentifier,
            timeStamp                    [3] BACnetTimeStamp,
            notificationClass            [4] Unsigned,
            priority                     [5] Unsigned (0..255),
            eventType                    [6] BACnetEventType,
            messageText                  [7] CharacterString OPTIONAL,
            notifyType                   [8] BACnetNotifyType,
            ackRequired                  [9] BOOLEAN OPTIONAL,
            fromState                    [10] BACnetEventState OPTIONAL,
            toState                      [11] BACnetEventState,
            eventValues                  [12] BACnetNotificationParameters OPTIONAL
        }
    """

    process_identifier: int
    initiating_device_identifier: ObjectIdentifier
    event_object_identifier: ObjectIdentifier
    time_stamp: bytes
    notification_class: int
    priority: int
    event_type: EventType
    notify_type: NotifyType
    to_state: EventState
    message_text: str | None = None
    ack_required: bool | None = None
    from_state: EventState | None = None
    event_values: bytes | None = None

    def encode(self) -> bytes:
        buf = encode_context_unsigned(0, self.process_identifier)
        buf += encode_context_object_id(1, self.initiating_device_identifier)
        buf += encode_context_object_id(2, self.event_object_identifier)
        buf += encode_context_constructed(3, self.time_stamp)
        buf += encode_context_unsigned(4, self.notification_class)
        buf += encode_context_unsigned(5, self.priority)
        buf += encode_context_enumerated(6, self.event_type)
        if self.message_text is not None:
            buf += encode_context_character_string(7, self.message_text)
        buf += encode_context_enumerated(8, self.notify_type)
        if self.ack_required is not None:
            buf += encode_context_boolean(9, self.ack_required)
        if self.from_state is not None:
            buf += encode_context_enumerated(10, self.from_state)
        buf += encode_context_enumerated(11, self.to_state)
        if self.event_values is not None:
            buf += encode_context_constructed(12, self.event_values)
        return buf

    @classmethod
    def decode(cls, data: memoryview | bytes) -> EventNotificationRequest:
        data = memoryview(data)
        process_id, offset = expect_context(data, 0, 0, decode_unsigned)
        device_id, offset = expect_context(data, offset, 1, decode_object_identifier)
        obj_id, offset = expect_context(data, offset, 2, decode_object_identifier)
        offset = expect_opening(data, offset, 3)
        time_stamp, offset = extract_context_value(data, offset, 3)
        notification_class, offset = expect_context(data, offset, 4, decode_unsigned)
        priority, offset = expect_context(data, offset, 5, decode_unsigned)
        event_type, offset = expect_context(data, offset, 6, decode_unsigned)
        message_text, offset = decode_optional_context(data, offset, 7, decode_character_string)
        notify_type, offset = expect_context(data, offset, 8, decode_unsigned)
        ack_required, offset = decode_optional_context(data, offset, 9, decode_boolean)
        from_state, offset = decode_optional_context(data, offset, 10, decode_unsigned)
        to_state, offset = expect_context(data, offset, 11, decode_unsigned)

        event_values = None
        if is_opening_at(data, offset, 12):
            event_values, offset = extract_context_value(data, offset + 1, 12)

        return cls(
            process_identifier=process_id,
            initiating_device_identifier=device_id,
            event_object_identifier=obj_id,
            time_stamp=time_stamp,
            notification_class=notification_class,
            priority=priority,
            event_type=EventType(event_type),
            notify_type=NotifyType(notify_type),
            to_state=EventState(to_state),
            message_text=message_text,
            ack_required=ack_required,
            from_state=EventState(from_state) if from_state is not None else None,
            event_values=event_values,
        )
