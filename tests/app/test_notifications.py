import pytest

from bac_dispatch.app.notifications import EventNotice, NotificationRouter, PropertyChange
from bac_dispatch.services.cov import COVNotificationRequest, PropertyValue
from bac_dispatch.services.event_notification import EventNotificationRequest
from bac_dispatch.types.enums import EventState, EventType, NotifyType, ObjectType, PropertyIdentifier
from bac_dispatch.types.primitives import ObjectIdentifier
from tests.helpers import PEER

PV = PropertyIdentifier.PRESENT_VALUE
STATUS = PropertyIdentifier.STATUS_FLAGS
AI1 = ObjectIdentifier(ObjectType.ANALOG_INPUT, 1)
AI2 = ObjectIdentifier(ObjectType.ANALOG_INPUT, 2)


def change(device=10, obj=AI1, prop=PV, value=1.0):
    return PropertyChange(
        source=PEER,
        device_instance=device,
        object_identifier=obj,
        property_identifier=prop,
        value=value,
    )


def event(device=10, obj=AI1):
    return EventNotice(
        source=PEER,
        device_instance=device,
        object_identifier=obj,
        event_type=EventType.OUT_OF_RANGE,
        notify_type=NotifyType.ALARM,
        to_state=EventState.HIGH_LIMIT,
    )


@pytest.fixture
def router():
    return NotificationRouter()


class TestFromNotification:
    def test_cov_expands_one_change_per_value(self):
        request = COVNotificationRequest(
            subscriber_process_identifier=3,
            initiating_device_identifier=ObjectIdentifier(ObjectType.DEVICE, 10),
            monitored_object_identifier=AI1,
            time_remaining=120,
            list_of_values=(PropertyValue.of(PV, 72.5), PropertyValue.of(PropertyIdentifier.UNITS, 62)),
        )
        changes = PropertyChange.from_notification(PEER, request, confirmed=True)
        assert [c.property_identifier for c in changes] == [PV, PropertyIdentifier.UNITS]
        assert changes[0].value == 72.5
        assert changes[1].value == 62
        assert all(c.device_instance == 10 and c.confirmed for c in changes)
        assert changes[0].time_remaining == 120
        assert changes[0].subscriber_process_identifier == 3

    def test_event_notice(self):
        request = EventNotificationRequest(
            process_identifier=1,
            initiating_device_identifier=ObjectIdentifier(ObjectType.DEVICE, 10),
            event_object_identifier=AI2,
            time_stamp=b"\x19\x05",
            notification_class=4,
            priority=100,
            event_type=EventType.OUT_OF_RANGE,
            notify_type=NotifyType.ALARM,
            to_state=EventState.HIGH_LIMIT,
            message_text="too hot",
            from_state=EventState.NORMAL,
        )
        notice = EventNotice.from_notification(PEER, request)
        assert notice.device_instance == 10
        assert notice.object_identifier == AI2
        assert notice.from_state is EventState.NORMAL
        assert notice.message_text == "too hot"
        assert notice.property_identifier is None


class TestRouting:
    def test_unfiltered_listener_gets_every_change(self, router):
        seen = []
        router.subscribe(seen.append)
        router.dispatch(change(device=1))
        router.dispatch(change(device=2, obj=AI2, prop=STATUS))
        assert [n.device_instance for n in seen] == [1, 2]

    @pytest.mark.parametrize(
        ("filters", "expected"),
        [
            ({"device": 10}, 1),
            ({"device": 11}, 0),
            ({"object_identifier": AI1}, 1),
            ({"object_identifier": AI2}, 0),
            ({"property_identifier": PV}, 1),
            ({"property_identifier": STATUS}, 0),
            ({"device": 10, "object_identifier": AI1, "property_identifier": PV}, 1),
        ],
    )
    def test_filters(self, router, filters, expected):
        seen = []
        router.subscribe(seen.append, **filters)
        assert router.dispatch(change()) == expected
        assert len(seen) == expected

    def test_listeners_run_in_registration_order(self, router):
        order = []
        router.subscribe(lambda n: order.append("first"))
        router.subscribe(lambda n: order.append("second"))
        router.dispatch(change())
        assert order == ["first", "second"]

    def test_failing_listener_does_not_block_others(self, router, caplog):
        seen = []

        def broken(_):
            raise RuntimeError("listener bug")

        router.subscribe(broken)
        router.subscribe(seen.append)
        with caplog.at_level("WARNING", logger="bac_dispatch.app.notifications"):
            assert router.dispatch(change()) == 2
        assert len(seen) == 1
        assert "listener" in caplog.text

    def test_unsubscribe_stops_delivery(self, router):
        seen = []
        subscription = router.subscribe(seen.append)
        assert subscription.unsubscribe() is True
        assert subscription.unsubscribe() is False
        router.dispatch(change())
        assert seen == []
        assert len(router) == 0


class TestEvents:
    def test_events_require_opt_in(self, router):
        plain, with_events = [], []
        router.subscribe(plain.append)
        router.subscribe(with_events.append, events=True)
        router.dispatch(event())
        assert plain == []
        assert len(with_events) == 1

    def test_property_filter_excludes_events(self, router):
        seen = []
        router.subscribe(seen.append, property_identifier=PV, events=True)
        assert router.dispatch(event()) == 0

    def test_device_filter_applies_to_events(self, router):
        seen = []
        router.subscribe(seen.append, device=10, events=True)
        router.dispatch(event(device=10))
        router.dispatch(event(device=11))
        assert len(seen) == 1
