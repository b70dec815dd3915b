"""Routing of COV and event notifications to registered listeners.

Inbound notifications are decoded into :class:`PropertyChange` and
:class:`EventNotice` records and handed to :meth:`NotificationRouter.dispatch`.
Each :class:`Subscription` filters on device instance, object identifier and
property identifier, where ``None`` matches anything.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bac_dispatch.types.enums import PropertyIdentifier

if TYPE_CHECKING:
    from collections.abc import Callable

    from bac_dispatch.network.address import BACnetAddress
    from bac_dispatch.services.cov import COVNotificationRequest
    from bac_dispatch.services.event_notification import EventNotificationRequest
    from bac_dispatch.types.enums import EventState, EventType, NotifyType
    from bac_dispatch.types.primitives import ObjectIdentifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PropertyChange:
    """One property value reported by a COV notification."""

    source: BACnetAddress
    """Address the notification arrived from."""

    device_instance: int
    """Instance number of the initiating device."""

    object_identifier: ObjectIdentifier
    """Monitored object."""

    property_identifier: PropertyIdentifier
    """Reported property."""

    value: object
    """Decoded application value (a list when several were encoded)."""

    time_remaining: int = 0
    """Seconds left on the subscription, ``0`` for indefinite."""

    subscriber_process_identifier: int = 0
    """Process identifier the subscriber chose."""

    confirmed: bool = False
    """``True`` if delivered by ConfirmedCOVNotification."""

    @classmethod
    def from_notification(
        cls, source: BACnetAddress, request: COVNotificationRequest, *, confirmed: bool = False
    ) -> list[PropertyChange]:
        return [
            cls(
                source=source,
                device_instance=request.initiating_device_identifier.instance_number,
                object_identifier=request.monitored_object_identifier,
                property_identifier=pv.property_identifier,
                value=pv.decoded,
                time_remaining=request.time_remaining,
                subscriber_process_identifier=request.subscriber_process_identifier,
                confirmed=confirmed,
            )
            for pv in request.list_of_values
        ]


@dataclass(frozen=True, slots=True)
class EventNotice:
    """An event notification from a remote device."""

    source: BACnetAddress
    device_instance: int
    object_identifier: ObjectIdentifier
    event_type: EventType
    notify_type: NotifyType
    to_state: EventState
    from_state: EventState | None = None
    priority: int = 0
    notification_class: int = 0
    message_text: str | None = None
    ack_required: bool | None = None

    @classmethod
    def from_notification(cls, source: BACnetAddress, request: EventNotificationRequest) -> EventNotice:
        return cls(
            source=source,
            device_instance=request.initiating_device_identifier.instance_number,
            object_identifier=request.event_object_identifier,
            event_type=request.event_type,
            notify_type=request.notify_type,
            to_state=request.to_state,
            from_state=request.from_state,
            priority=request.priority,
            notification_class=request.notification_class,
            message_text=request.message_text,
            ack_required=request.ack_required,
        )

    @property
    def property_identifier(self) -> None:
        return None


Notification = PropertyChange | EventNotice


class Subscription:
    """A registered listener and its filter.

    Returned by :meth:`NotificationRouter.subscribe`; call
    :meth:`unsubscribe` to stop delivery.
    """

    def __init__(
        self,
        router: NotificationRouter,
        subscription_id: int,
        callback: Callable[[Notification], Any],
        *,
        device: int | None = None,
        object_identifier: ObjectIdentifier | None = None,
        property_identifier: PropertyIdentifier | None = None,
        events: bool = False,
    ) -> None:
        self._router = router
        self.subscription_id = subscription_id
        self.callback = callback
        self.device = device
        self.object_identifier = object_identifier
        self.property_identifier = property_identifier
        self.events = events

    def __repr__(self) -> str:
        return (
            f"<Subscription {self.subscription_id} device={self.device} "
            f"object={self.object_identifier} property={self.property_identifier}>"
        )

    def matches(self, notification: Notification) -> bool:
        if isinstance(notification, EventNotice) and not self.events:
            return False
        if self.device is not None and notification.device_instance != self.device:
            return False
        if self.object_identifier is not None and notification.object_identifier != self.object_identifier:
            return False
        return not (
            self.property_identifier is not None
            and notification.property_identifier != self.property_identifier
        )

    def unsubscribe(self) -> bool:
        return self._router.unsubscribe(self)


class NotificationRouter:
    """Fan-out of notifications to subscriptions in registration order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(
        self,
        callback: Callable[[Notification], Any],
        *,
        device: int | None = None,
        object_identifier: ObjectIdentifier | None = None,
        property_identifier: PropertyIdentifier | None = None,
        events: bool = False,
    ) -> Subscription:
        """Register *callback* for notifications matching the filter.

        :param events: Also deliver :class:`EventNotice` records.  Event
            notices carry no property, so a property filter excludes them.
        """
        subscription = Subscription(
            self,
            next(self._ids),
            callback,
            device=device,
            object_identifier=object_identifier,
            property_identifier=property_identifier,
            events=events,
        )
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                return False
        return True

    def dispatch(self, notification: Notification) -> int:
        """Deliver *notification* to every matching subscription.

        Listeners run synchronously on the calling thread.  A listener that
        raises is logged and the rest still run.

        :returns: Number of listeners the notification was delivered to.
        """
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(notification)]
        for subscription in targets:
            try:
                subscription.callback(notification)
            except Exception:
                logger.warning(
                    "Notification listener %r failed for %s",
                    subscription,
                    notification.object_identifier,
                    exc_info=True,
                )
        if not targets:
            logger.debug("No listener for notification from device %d", notification.device_instance)
        return len(targets)
