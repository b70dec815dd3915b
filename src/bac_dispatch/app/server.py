"""Local device: the minimal server side of a BACnet application.

A :class:`LocalDevice` holds the local device object and any extra local
objects as plain property tables, and answers the requests a peer needs
in order to discover and talk to it:

- Who-Is (any range containing the local instance) with an I-Am;
- ReadProperty and WriteProperty against the object tables;
- ConfirmedCOVNotification, handed to the notification hook and
  acknowledged with a SimpleACK.

Any other confirmed service is rejected with ``unrecognized-service``.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from bac_dispatch.encoding.primitives import decode_and_unwrap, encode_property_value
from bac_dispatch.network.address import GLOBAL_BROADCAST
from bac_dispatch.services.cov import COVNotificationRequest
from bac_dispatch.services.errors import BACnetError, BACnetTransportError
from bac_dispatch.services.read_property import ReadPropertyACK, ReadPropertyRequest
from bac_dispatch.services.who_is import IAmRequest, WhoIsRequest
from bac_dispatch.services.write_property import WritePropertyRequest
from bac_dispatch.types.enums import (
    ConfirmedServiceChoice,
    ErrorClass,
    ErrorCode,
    ObjectType,
    PropertyIdentifier,
    RejectReason,
    Segmentation,
    ServicesSupported,
    UnconfirmedServiceChoice,
)
from bac_dispatch.types.primitives import BitString, ObjectIdentifier

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from bac_dispatch.app.dispatcher import Dispatcher
    from bac_dispatch.encoding.codec import APDUCodec, ConfirmedRequest, UnconfirmedMessage
    from bac_dispatch.network.address import BACnetAddress

logger = logging.getLogger(__name__)

EXECUTED_SERVICES = frozenset(
    {
        ServicesSupported.READ_PROPERTY,
        ServicesSupported.WRITE_PROPERTY,
        ServicesSupported.CONFIRMED_COV_NOTIFICATION,
        ServicesSupported.UNCONFIRMED_COV_NOTIFICATION,
        ServicesSupported.UNCONFIRMED_EVENT_NOTIFICATION,
        ServicesSupported.I_AM,
        ServicesSupported.WHO_IS,
    }
)

_READ_ONLY = frozenset(
    {
        PropertyIdentifier.OBJECT_IDENTIFIER,
        PropertyIdentifier.OBJECT_TYPE,
        PropertyIdentifier.OBJECT_LIST,
        PropertyIdentifier.PROTOCOL_SERVICES_SUPPORTED,
    }
)

_ANALOG_TYPES = frozenset({ObjectType.ANALOG_INPUT, ObjectType.ANALOG_OUTPUT, ObjectType.ANALOG_VALUE})

# Properties of analog objects whose numeric values travel as REAL.
_REAL_VALUED = frozenset(
    {PropertyIdentifier.PRESENT_VALUE, PropertyIdentifier.RELINQUISH_DEFAULT, PropertyIdentifier.COV_INCREMENT}
)


def services_bitstring(services: frozenset[int] = EXECUTED_SERVICES) -> BitString:
    """Protocol-services-supported bit string with *services* set."""
    width = max(ServicesSupported) + 1
    return BitString.from_bits([i in services for i in range(width)])


class LocalDevice:
    """Property tables of the local device and its objects.

    :param instance_number: Device instance (0-4194302).
    :param name: Object name of the device object.
    """

    def __init__(
        self,
        instance_number: int,
        *,
        name: str = "bac-dispatch",
        vendor_name: str = "bac-dispatch",
        vendor_id: int = 0,
        model_name: str = "bac-dispatch",
        max_apdu_length: int = 1476,
        apdu_timeout: int = 6000,
        apdu_retries: int = 3,
    ) -> None:
        self._identifier = ObjectIdentifier(ObjectType.DEVICE, instance_number)
        self._lock = threading.Lock()
        self._objects: dict[ObjectIdentifier, dict[PropertyIdentifier, Any]] = {
            self._identifier: {
                PropertyIdentifier.OBJECT_IDENTIFIER: self._identifier,
                PropertyIdentifier.OBJECT_NAME: name,
                PropertyIdentifier.OBJECT_TYPE: ObjectType.DEVICE,
                PropertyIdentifier.SYSTEM_STATUS: 0,
                PropertyIdentifier.VENDOR_NAME: vendor_name,
                PropertyIdentifier.VENDOR_IDENTIFIER: vendor_id,
                PropertyIdentifier.MODEL_NAME: model_name,
                PropertyIdentifier.PROTOCOL_VERSION: 1,
                PropertyIdentifier.PROTOCOL_REVISION: 22,
                PropertyIdentifier.PROTOCOL_SERVICES_SUPPORTED: services_bitstring(),
                PropertyIdentifier.MAX_APDU_LENGTH_ACCEPTED: max_apdu_length,
                PropertyIdentifier.SEGMENTATION_SUPPORTED: Segmentation.NONE,
                PropertyIdentifier.APDU_TIMEOUT: apdu_timeout,
                PropertyIdentifier.NUMBER_OF_APDU_RETRIES: apdu_retries,
                PropertyIdentifier.DATABASE_REVISION: 0,
            }
        }
        self._dispatcher: Dispatcher | None = None
        self._codec: APDUCodec | None = None
        self._on_cov: Callable[[BACnetAddress, COVNotificationRequest, bool], Any] | None = None

    @property
    def object_identifier(self) -> ObjectIdentifier:
        return self._identifier

    @property
    def instance_number(self) -> int:
        return self._identifier.instance_number

    @property
    def object_list(self) -> list[ObjectIdentifier]:
        with self._lock:
            return list(self._objects)

    # --- Object table ---

    def add_object(self, object_id: ObjectIdentifier, properties: Mapping[PropertyIdentifier, Any]) -> None:
        """Add a local object with the given properties.

        Object identifier, name and type are filled in when missing.

        :raises ValueError: If an object with *object_id* already exists.
        """
        table = dict(properties)
        table.setdefault(PropertyIdentifier.OBJECT_IDENTIFIER, object_id)
        table.setdefault(PropertyIdentifier.OBJECT_NAME, str(object_id))
        table.setdefault(PropertyIdentifier.OBJECT_TYPE, object_id.object_type)
        with self._lock:
            if object_id in self._objects:
                msg = f"Object {object_id} already exists"
                raise ValueError(msg)
            self._objects[object_id] = table
            self._bump_revision()
        logger.debug("Local object %s added", object_id)

    def remove_object(self, object_id: ObjectIdentifier) -> bool:
        if object_id == self._identifier:
            msg = "The device object cannot be removed"
            raise ValueError(msg)
        with self._lock:
            if self._objects.pop(object_id, None) is None:
                return False
            self._bump_revision()
        return True

    def _bump_revision(self) -> None:
        device = self._objects[self._identifier]
        device[PropertyIdentifier.DATABASE_REVISION] += 1

    def read(
        self,
        object_id: ObjectIdentifier,
        prop: PropertyIdentifier,
        array_index: int | None = None,
    ) -> Any:
        """Read one property of a local object.

        :raises BACnetError: ``object/unknown-object``,
            ``property/unknown-property``, ``property/property-is-not-an-array``
            or ``property/invalid-array-index``.
        """
        with self._lock:
            table = self._objects.get(object_id)
            if table is None:
                raise BACnetError(ErrorClass.OBJECT, ErrorCode.UNKNOWN_OBJECT)
            if object_id == self._identifier and prop == PropertyIdentifier.OBJECT_LIST:
                value: Any = list(self._objects)
            elif prop in table:
                value = table[prop]
            else:
                raise BACnetError(ErrorClass.PROPERTY, ErrorCode.UNKNOWN_PROPERTY)

        if array_index is None:
            return value
        if not isinstance(value, list):
            raise BACnetError(ErrorClass.PROPERTY, ErrorCode.PROPERTY_IS_NOT_AN_ARRAY)
        if array_index == 0:
            return len(value)
        if 1 <= array_index <= len(value):
            return value[array_index - 1]
        raise BACnetError(ErrorClass.PROPERTY, ErrorCode.INVALID_ARRAY_INDEX)

    def write(
        self,
        object_id: ObjectIdentifier,
        prop: PropertyIdentifier,
        value: Any,
        array_index: int | None = None,
    ) -> None:
        """Write one existing property of a local object.

        :raises BACnetError: ``object/unknown-object``,
            ``property/unknown-property``, ``property/write-access-denied``
            or an array error.
        """
        with self._lock:
            table = self._objects.get(object_id)
            if table is None:
                raise BACnetError(ErrorClass.OBJECT, ErrorCode.UNKNOWN_OBJECT)
            if prop in _READ_ONLY:
                raise BACnetError(ErrorClass.PROPERTY, ErrorCode.WRITE_ACCESS_DENIED)
            if prop not in table:
                raise BACnetError(ErrorClass.PROPERTY, ErrorCode.UNKNOWN_PROPERTY)
            if array_index is None:
                table[prop] = value
                return
            current = table[prop]
            if not isinstance(current, list):
                raise BACnetError(ErrorClass.PROPERTY, ErrorCode.PROPERTY_IS_NOT_AN_ARRAY)
            if not 1 <= array_index <= len(current):
                raise BACnetError(ErrorClass.PROPERTY, ErrorCode.INVALID_ARRAY_INDEX)
            current[array_index - 1] = value

    def i_am(self) -> IAmRequest:
        with self._lock:
            device = self._objects[self._identifier]
            return IAmRequest(
                object_identifier=self._identifier,
                max_apdu_length=device[PropertyIdentifier.MAX_APDU_LENGTH_ACCEPTED],
                segmentation_supported=Segmentation(device[PropertyIdentifier.SEGMENTATION_SUPPORTED]),
                vendor_id=device[PropertyIdentifier.VENDOR_IDENTIFIER],
            )

    # --- Wiring ---

    def attach(
        self,
        dispatcher: Dispatcher,
        codec: APDUCodec,
        *,
        on_cov: Callable[[BACnetAddress, COVNotificationRequest, bool], Any] | None = None,
    ) -> None:
        """Serve requests arriving through *dispatcher*.

        :param codec: Encodes the responses.
        :param on_cov: Receives confirmed COV notifications before they are
            acknowledged.
        """
        self._dispatcher = dispatcher
        self._codec = codec
        self._on_cov = on_cov
        dispatcher.add_unconfirmed_handler(UnconfirmedServiceChoice.WHO_IS, self.handle_who_is)
        dispatcher.set_request_handler(self.handle_request)

    def detach(self) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.remove_unconfirmed_handler(UnconfirmedServiceChoice.WHO_IS, self.handle_who_is)
        self._dispatcher.set_request_handler(None)
        self._dispatcher = None

    def announce(self, destination: BACnetAddress = GLOBAL_BROADCAST) -> None:
        """Send an I-Am for the local device.

        :raises BACnetTransportError: If the send fails.
        """
        if self._dispatcher is None:
            msg = "LocalDevice is not attached to a dispatcher"
            raise RuntimeError(msg)
        self._dispatcher.send_unconfirmed(destination, UnconfirmedServiceChoice.I_AM, self.i_am().encode())

    # --- Handlers ---

    def handle_who_is(self, source: BACnetAddress, message: UnconfirmedMessage) -> None:
        try:
            request = WhoIsRequest.decode(message.data)
        except ValueError as e:
            logger.warning("Dropped malformed Who-Is from %s: %s", source, e)
            return
        if not request.matches(self.instance_number):
            return
        logger.debug("Answering Who-Is from %s", source)
        try:
            self.announce()
        except BACnetTransportError as e:
            logger.warning("Could not answer Who-Is from %s: %s", source, e)

    def handle_request(self, source: BACnetAddress, request: ConfirmedRequest) -> None:
        """Answer one confirmed request addressed to the local device."""
        if self._dispatcher is None or self._codec is None:
            return
        codec = self._codec
        choice = request.service_choice
        try:
            match choice:
                case ConfirmedServiceChoice.READ_PROPERTY:
                    frame = codec.encode_complex_ack(
                        request.invoke_id, choice, self._read_property(source, request.data)
                    )
                case ConfirmedServiceChoice.WRITE_PROPERTY:
                    self._write_property(source, request.data)
                    frame = codec.encode_simple_ack(request.invoke_id, choice)
                case ConfirmedServiceChoice.CONFIRMED_COV_NOTIFICATION:
                    self._cov_notification(source, request.data)
                    frame = codec.encode_simple_ack(request.invoke_id, choice)
                case _:
                    logger.debug("Rejecting unsupported service %d from %s", choice, source)
                    frame = codec.encode_reject(request.invoke_id, RejectReason.UNRECOGNIZED_SERVICE)
        except BACnetError as e:
            logger.debug("Service %d from %s failed: %s", choice, source, e)
            frame = codec.encode_error(request.invoke_id, choice, e.error_class, e.error_code)
        except ValueError as e:
            logger.warning("Malformed service %d request from %s: %s", choice, source, e)
            frame = codec.encode_reject(request.invoke_id, RejectReason.INVALID_TAG)
        self._dispatcher.send_response(source, frame)

    def _read_property(self, source: BACnetAddress, data: bytes) -> bytes:
        request = ReadPropertyRequest.decode(data)
        logger.debug(
            "Handling read_property %s %s from %s",
            request.object_identifier,
            request.property_identifier.name,
            source,
        )
        value = self.read(request.object_identifier, request.property_identifier, request.property_array_index)
        as_real = (
            request.object_identifier.object_type in _ANALOG_TYPES
            and request.property_identifier in _REAL_VALUED
        )
        try:
            encoded = encode_property_value(value, int_as_real=as_real)
        except TypeError:
            raise BACnetError(ErrorClass.PROPERTY, ErrorCode.OTHER) from None
        return ReadPropertyACK(
            object_identifier=request.object_identifier,
            property_identifier=request.property_identifier,
            property_array_index=request.property_array_index,
            property_value=encoded,
        ).encode()

    def _write_property(self, source: BACnetAddress, data: bytes) -> None:
        request = WritePropertyRequest.decode(data)
        logger.debug(
            "Handling write_property %s %s from %s",
            request.object_identifier,
            request.property_identifier.name,
            source,
        )
        try:
            value = decode_and_unwrap(request.property_value)
        except (ValueError, IndexError):
            raise BACnetError(ErrorClass.PROPERTY, ErrorCode.INVALID_DATA_TYPE) from None
        self.write(request.object_identifier, request.property_identifier, value, request.property_array_index)

    def _cov_notification(self, source: BACnetAddress, data: bytes) -> None:
        notification = COVNotificationRequest.decode(data)
        if self._on_cov is not None:
            self._on_cov(source, notification, True)
