import pytest

from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.services.event_notification import EventNotificationRequest
from bac_dispatch.types.enums import EventState, EventType, NotifyType, ObjectType
from bac_dispatch.types.primitives import ObjectIdentifier

# [1] sequence number 7 inside the time stamp choice
TIME_STAMP = b"\x19\x07"


def make_request(**overrides):
    fields = {
        "process_identifier": 1,
        "initiating_device_identifier": ObjectIdentifier(ObjectType.DEVICE, 100),
        "event_object_identifier": ObjectIdentifier(ObjectType.ANALOG_INPUT, 3),
        "time_stamp": TIME_STAMP,
        "notification_class": 4,
        "priority": 100,
        "event_type": EventType.OUT_OF_RANGE,
        "notify_type": NotifyType.ALARM,
        "to_state": EventState.HIGH_LIMIT,
    }
    fields.update(overrides)
    return EventNotificationRequest(**fields)


class TestEventNotification:
    def test_required_fields_only(self):
        request = make_request()
        decoded = EventNotificationRequest.decode(request.encode())
        assert decoded == request
        assert decoded.message_text is None
        assert decoded.event_values is None

    def test_all_optional_fields(self):
        request = make_request(
            message_text="High temp",
            ack_required=True,
            from_state=EventState.NORMAL,
            event_values=b"\x5e\x44\x42\xc8\x00\x00\x5f",
        )
        decoded = EventNotificationRequest.decode(request.encode())
        assert decoded == request
        assert decoded.from_state is EventState.NORMAL

    def test_enumerations_are_typed(self):
        decoded = EventNotificationRequest.decode(make_request().encode())
        assert decoded.event_type is EventType.OUT_OF_RANGE
        assert decoded.notify_type is NotifyType.ALARM
        assert decoded.to_state is EventState.HIGH_LIMIT

    def test_proprietary_event_type(self):
        decoded = EventNotificationRequest.decode(make_request(event_type=EventType(600)).encode())
        assert decoded.event_type == 600

    def test_truncated(self):
        frame = make_request().encode()
        with pytest.raises(MalformedFrameError):
            EventNotificationRequest.decode(frame[:-2])

    def test_unknown_notify_type(self):
        frame = make_request().encode().replace(b"\x89\x00", b"\x89\x07")
        with pytest.raises(ValueError):
            EventNotificationRequest.decode(frame)
