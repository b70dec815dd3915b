import pytest

from bac_dispatch.services.cov import COVNotificationRequest, PropertyValue, SubscribeCOVRequest
from bac_dispatch.services.errors import MalformedFrameError
from bac_dispatch.types.enums import ObjectType, PropertyIdentifier
from bac_dispatch.types.primitives import BitString, ObjectIdentifier

AI_1 = ObjectIdentifier(ObjectType.ANALOG_INPUT, 1)
DEVICE = ObjectIdentifier(ObjectType.DEVICE, 100)


class TestSubscribeCOV:
    def test_subscription_encoding(self):
        request = SubscribeCOVRequest(1, AI_1, issue_confirmed_notifications=True, lifetime=300)
        assert request.encode() == b"\x09\x01\x1c\x00\x00\x00\x01\x29\x01\x3a\x01\x2c"
        assert not request.is_cancellation

    def test_cancellation(self):
        request = SubscribeCOVRequest(1, AI_1)
        assert request.is_cancellation
        assert request.encode() == b"\x09\x01\x1c\x00\x00\x00\x01"
        assert SubscribeCOVRequest.decode(request.encode()).is_cancellation

    def test_decode(self):
        request = SubscribeCOVRequest(7, AI_1, issue_confirmed_notifications=False, lifetime=0)
        assert SubscribeCOVRequest.decode(request.encode()) == request

    def test_missing_object(self):
        with pytest.raises(MalformedFrameError):
            SubscribeCOVRequest.decode(b"\x09\x01")


class TestCOVNotification:
    @pytest.fixture
    def notification(self):
        return COVNotificationRequest(
            subscriber_process_identifier=1,
            initiating_device_identifier=DEVICE,
            monitored_object_identifier=AI_1,
            time_remaining=120,
            list_of_values=(
                PropertyValue.of(PropertyIdentifier.PRESENT_VALUE, 72.5),
                PropertyValue.of(PropertyIdentifier.STATUS_FLAGS, BitString.from_bits([False, True, False, False])),
            ),
        )

    def test_decode(self, notification):
        decoded = COVNotificationRequest.decode(notification.encode())
        assert decoded == notification
        assert decoded.list_of_values[0].decoded == 72.5
        assert decoded.list_of_values[1].decoded.set_bits() == {1}

    def test_value_with_index_and_priority(self):
        value = PropertyValue(PropertyIdentifier.PRESENT_VALUE, b"\x21\x01", property_array_index=2, priority=8)
        notification = COVNotificationRequest(1, DEVICE, AI_1, 0, (value,))
        assert COVNotificationRequest.decode(notification.encode()).list_of_values == (value,)

    def test_empty_list(self):
        notification = COVNotificationRequest(1, DEVICE, AI_1, 0)
        assert COVNotificationRequest.decode(notification.encode()).list_of_values == ()

    def test_missing_closing_tag(self, notification):
        frame = notification.encode()
        with pytest.raises(MalformedFrameError):
            COVNotificationRequest.decode(frame[:-1])

    def test_missing_values(self, notification):
        frame = notification.encode()
        with pytest.raises(MalformedFrameError):
            COVNotificationRequest.decode(frame[: frame.index(b"\x4e")])
