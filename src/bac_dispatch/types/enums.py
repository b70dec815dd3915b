"""BACnet enumerations per ASHRAE 135-2016 Clause 21.

Only the members this stack needs by name are spelled out.  Enumerations
that devices routinely extend (object types, properties, error codes, event
types) accept any in-range value and synthesise a ``VENDOR_<n>`` member
for values without a standard name.
"""

from __future__ import annotations

from enum import IntEnum


# Largest encodable value per extensible enumeration; the rest allow 16 bits.
_MAX_VALUES: dict[str, int] = {
    "ObjectType": 1023,
    "PropertyIdentifier": 0x3FFFFF,
    "RejectReason": 0xFF,
    "AbortReason": 0xFF,
    "Enumerated": 0xFFFFFFFF,
}


class _ExtensibleEnum(IntEnum):
    """IntEnum base that tolerates unnamed values within the encodable range."""

    @classmethod
    def _missing_(cls, value: object) -> _ExtensibleEnum | None:
        if isinstance(value, int) and 0 <= value <= _MAX_VALUES.get(cls.__name__, 0xFFFF):
            member = int.__new__(cls, value)
            member._name_ = f"VENDOR_{value}"
            member._value_ = value
            return member
        return None


class PduType(IntEnum):
    """APDU type, the high nibble of the first APDU octet (Clause 20.1)."""

    CONFIRMED_REQUEST = 0
    UNCONFIRMED_REQUEST = 1
    SIMPLE_ACK = 2
    COMPLEX_ACK = 3
    SEGMENT_ACK = 4
    ERROR = 5
    REJECT = 6
    ABORT = 7


class ConfirmedServiceChoice(IntEnum):
    """Confirmed service choices (Clause 21, BACnetConfirmedServiceChoice)."""

    ACKNOWLEDGE_ALARM = 0
    CONFIRMED_COV_NOTIFICATION = 1
    CONFIRMED_EVENT_NOTIFICATION = 2
    GET_ALARM_SUMMARY = 3
    GET_ENROLLMENT_SUMMARY = 4
    SUBSCRIBE_COV = 5
    ATOMIC_READ_FILE = 6
    ATOMIC_WRITE_FILE = 7
    ADD_LIST_ELEMENT = 8
    REMOVE_LIST_ELEMENT = 9
    CREATE_OBJECT = 10
    DELETE_OBJECT = 11
    READ_PROPERTY = 12
    READ_PROPERTY_MULTIPLE = 14
    WRITE_PROPERTY = 15
    WRITE_PROPERTY_MULTIPLE = 16
    DEVICE_COMMUNICATION_CONTROL = 17
    CONFIRMED_PRIVATE_TRANSFER = 18
    CONFIRMED_TEXT_MESSAGE = 19
    REINITIALIZE_DEVICE = 20
    VT_OPEN = 21
    VT_CLOSE = 22
    VT_DATA = 23
    READ_RANGE = 26
    LIFE_SAFETY_OPERATION = 27
    SUBSCRIBE_COV_PROPERTY = 28
    GET_EVENT_INFORMATION = 29
    SUBSCRIBE_COV_PROPERTY_MULTIPLE = 30
    CONFIRMED_COV_NOTIFICATION_MULTIPLE = 31
    CONFIRMED_AUDIT_NOTIFICATION = 32
    AUDIT_LOG_QUERY = 33


class UnconfirmedServiceChoice(IntEnum):
    """Unconfirmed service choices (Clause 21, BACnetUnconfirmedServiceChoice)."""

    I_AM = 0
    I_HAVE = 1
    UNCONFIRMED_COV_NOTIFICATION = 2
    UNCONFIRMED_EVENT_NOTIFICATION = 3
    UNCONFIRMED_PRIVATE_TRANSFER = 4
    UNCONFIRMED_TEXT_MESSAGE = 5
    TIME_SYNCHRONIZATION = 6
    WHO_HAS = 7
    WHO_IS = 8
    UTC_TIME_SYNCHRONIZATION = 9
    WRITE_GROUP = 10
    UNCONFIRMED_COV_NOTIFICATION_MULTIPLE = 11
    UNCONFIRMED_AUDIT_NOTIFICATION = 12
    WHO_AM_I = 13
    YOU_ARE = 14


class ObjectType(_ExtensibleEnum):
    """BACnet object types (BACnetObjectType). Values 128-1023 are proprietary."""

    ANALOG_INPUT = 0
    ANALOG_OUTPUT = 1
    ANALOG_VALUE = 2
    BINARY_INPUT = 3
    BINARY_OUTPUT = 4
    BINARY_VALUE = 5
    CALENDAR = 6
    COMMAND = 7
    DEVICE = 8
    EVENT_ENROLLMENT = 9
    FILE = 10
    GROUP = 11
    LOOP = 12
    MULTI_STATE_INPUT = 13
    MULTI_STATE_OUTPUT = 14
    NOTIFICATION_CLASS = 15
    PROGRAM = 16
    SCHEDULE = 17
    AVERAGING = 18
    MULTI_STATE_VALUE = 19
    TREND_LOG = 20
    LIFE_SAFETY_POINT = 21
    LIFE_SAFETY_ZONE = 22
    ACCUMULATOR = 23
    PULSE_CONVERTER = 24
    EVENT_LOG = 25
    GLOBAL_GROUP = 26
    TREND_LOG_MULTIPLE = 27
    LOAD_CONTROL = 28
    STRUCTURED_VIEW = 29
    ACCESS_DOOR = 30
    TIMER = 31
    CHARACTERSTRING_VALUE = 40
    INTEGER_VALUE = 45
    LARGE_ANALOG_VALUE = 46
    POSITIVE_INTEGER_VALUE = 48
    NETWORK_PORT = 56


class PropertyIdentifier(_ExtensibleEnum):
    """BACnet property identifiers (BACnetPropertyIdentifier), common subset."""

    ACKED_TRANSITIONS = 0
    ACK_REQUIRED = 1
    ACTIVE_TEXT = 4
    ALL = 8
    APDU_SEGMENT_TIMEOUT = 10
    APDU_TIMEOUT = 11
    APPLICATION_SOFTWARE_VERSION = 12
    COV_INCREMENT = 22
    DAYLIGHT_SAVINGS_STATUS = 24
    DEADBAND = 25
    DESCRIPTION = 28
    DEVICE_ADDRESS_BINDING = 30
    EVENT_ENABLE = 35
    EVENT_STATE = 36
    FIRMWARE_REVISION = 44
    HIGH_LIMIT = 45
    INACTIVE_TEXT = 46
    LOCAL_DATE = 56
    LOCAL_TIME = 57
    LOCATION = 58
    LOW_LIMIT = 59
    MAX_APDU_LENGTH_ACCEPTED = 62
    MAX_PRES_VALUE = 65
    MIN_PRES_VALUE = 69
    MODEL_NAME = 70
    NOTIFICATION_CLASS = 17
    NUMBER_OF_APDU_RETRIES = 73
    NUMBER_OF_STATES = 74
    OBJECT_IDENTIFIER = 75
    OBJECT_LIST = 76
    OBJECT_NAME = 77
    OBJECT_TYPE = 79
    OPTIONAL = 80
    OUT_OF_SERVICE = 81
    POLARITY = 84
    PRESENT_VALUE = 85
    PRIORITY = 86
    PRIORITY_ARRAY = 87
    PROTOCOL_OBJECT_TYPES_SUPPORTED = 96
    PROTOCOL_SERVICES_SUPPORTED = 97
    PROTOCOL_VERSION = 98
    RELIABILITY = 103
    RELINQUISH_DEFAULT = 104
    REQUIRED = 105
    SEGMENTATION_SUPPORTED = 107
    STATE_TEXT = 110
    STATUS_FLAGS = 111
    SYSTEM_STATUS = 112
    UNITS = 117
    VENDOR_IDENTIFIER = 120
    VENDOR_NAME = 121
    PROTOCOL_REVISION = 139
    DATABASE_REVISION = 155
    PROPERTY_LIST = 371


class ErrorClass(_ExtensibleEnum):
    """Error classes carried in an Error-PDU (Clause 18)."""

    DEVICE = 0
    OBJECT = 1
    PROPERTY = 2
    RESOURCES = 3
    SECURITY = 4
    SERVICES = 5
    VT = 6
    COMMUNICATION = 7


class ErrorCode(_ExtensibleEnum):
    """Error codes carried in an Error-PDU (Clause 18), common subset."""

    OTHER = 0
    CONFIGURATION_IN_PROGRESS = 2
    DEVICE_BUSY = 3
    INCONSISTENT_PARAMETERS = 7
    INVALID_DATA_TYPE = 9
    MISSING_REQUIRED_PARAMETER = 16
    NO_SPACE_FOR_OBJECT = 18
    SERVICE_REQUEST_DENIED = 29
    TIMEOUT = 30
    UNKNOWN_OBJECT = 31
    UNKNOWN_PROPERTY = 32
    VALUE_OUT_OF_RANGE = 37
    WRITE_ACCESS_DENIED = 40
    INVALID_ARRAY_INDEX = 42
    PROPERTY_IS_NOT_AN_ARRAY = 50
    COMMUNICATION_DISABLED = 83
    OPTIONAL_FUNCTIONALITY_NOT_SUPPORTED = 45


class RejectReason(_ExtensibleEnum):
    """Reject-PDU reasons (Clause 18.9)."""

    OTHER = 0
    BUFFER_OVERFLOW = 1
    INCONSISTENT_PARAMETERS = 2
    INVALID_PARAMETER_DATA_TYPE = 3
    INVALID_TAG = 4
    MISSING_REQUIRED_PARAMETER = 5
    PARAMETER_OUT_OF_RANGE = 6
    TOO_MANY_ARGUMENTS = 7
    UNDEFINED_ENUMERATION = 8
    UNRECOGNIZED_SERVICE = 9


class AbortReason(_ExtensibleEnum):
    """Abort-PDU reasons (Clause 18.10)."""

    OTHER = 0
    BUFFER_OVERFLOW = 1
    INVALID_APDU_IN_THIS_STATE = 2
    PREEMPTED_BY_HIGHER_PRIORITY_TASK = 3
    SEGMENTATION_NOT_SUPPORTED = 4
    SECURITY_ERROR = 5
    INSUFFICIENT_SECURITY = 6
    WINDOW_SIZE_OUT_OF_RANGE = 7
    APPLICATION_EXCEEDED_REPLY_TIME = 8
    OUT_OF_RESOURCES = 9
    TSM_TIMEOUT = 10
    APDU_TOO_LONG = 11


class Segmentation(IntEnum):
    """Segmentation support advertised in I-Am (BACnetSegmentation)."""

    BOTH = 0
    TRANSMIT = 1
    RECEIVE = 2
    NONE = 3


class EventState(_ExtensibleEnum):
    """Event states (BACnetEventState)."""

    NORMAL = 0
    FAULT = 1
    OFFNORMAL = 2
    HIGH_LIMIT = 3
    LOW_LIMIT = 4
    LIFE_SAFETY_ALARM = 5


class EventType(_ExtensibleEnum):
    """Event algorithms (BACnetEventType), common subset."""

    CHANGE_OF_BITSTRING = 0
    CHANGE_OF_STATE = 1
    CHANGE_OF_VALUE = 2
    COMMAND_FAILURE = 3
    FLOATING_LIMIT = 4
    OUT_OF_RANGE = 5
    CHANGE_OF_LIFE_SAFETY = 8
    EXTENDED = 9
    BUFFER_READY = 10
    UNSIGNED_RANGE = 11
    ACCESS_EVENT = 13
    DOUBLE_OUT_OF_RANGE = 14
    SIGNED_OUT_OF_RANGE = 15
    UNSIGNED_OUT_OF_RANGE = 16
    CHANGE_OF_CHARACTERSTRING = 17
    CHANGE_OF_STATUS_FLAGS = 18
    CHANGE_OF_RELIABILITY = 19
    NONE = 20
    CHANGE_OF_DISCRETE_VALUE = 21
    CHANGE_OF_TIMER = 22


class NotifyType(IntEnum):
    """Notification kinds (BACnetNotifyType)."""

    ALARM = 0
    EVENT = 1
    ACK_NOTIFICATION = 2


class BvlcFunction(IntEnum):
    """BVLC function codes for BACnet/IP (Annex J.2)."""

    BVLC_RESULT = 0x00
    WRITE_BROADCAST_DISTRIBUTION_TABLE = 0x01
    READ_BROADCAST_DISTRIBUTION_TABLE = 0x02
    READ_BROADCAST_DISTRIBUTION_TABLE_ACK = 0x03
    FORWARDED_NPDU = 0x04
    REGISTER_FOREIGN_DEVICE = 0x05
    READ_FOREIGN_DEVICE_TABLE = 0x06
    READ_FOREIGN_DEVICE_TABLE_ACK = 0x07
    DELETE_FOREIGN_DEVICE_TABLE_ENTRY = 0x08
    DISTRIBUTE_BROADCAST_TO_NETWORK = 0x09
    ORIGINAL_UNICAST_NPDU = 0x0A
    ORIGINAL_BROADCAST_NPDU = 0x0B
    SECURE_BVLL = 0x0C


class NetworkPriority(IntEnum):
    """NPDU network priority (Clause 6.2.2)."""

    NORMAL = 0
    URGENT = 1
    CRITICAL_EQUIPMENT = 2
    LIFE_SAFETY = 3


class ServicesSupported(_ExtensibleEnum):
    """Bit positions of BACnetServicesSupported (Clause 21), common subset.

    Confirmed services 0-25 share their service-choice numbers; the
    unconfirmed services follow from bit 26.
    """

    ACKNOWLEDGE_ALARM = 0
    CONFIRMED_COV_NOTIFICATION = 1
    CONFIRMED_EVENT_NOTIFICATION = 2
    SUBSCRIBE_COV = 5
    READ_PROPERTY = 12
    READ_PROPERTY_MULTIPLE = 14
    WRITE_PROPERTY = 15
    WRITE_PROPERTY_MULTIPLE = 16
    DEVICE_COMMUNICATION_CONTROL = 17
    REINITIALIZE_DEVICE = 20
    I_AM = 26
    I_HAVE = 27
    UNCONFIRMED_COV_NOTIFICATION = 28
    UNCONFIRMED_EVENT_NOTIFICATION = 29
    TIME_SYNCHRONIZATION = 32
    WHO_HAS = 33
    WHO_IS = 34
    READ_RANGE = 35
    SUBSCRIBE_COV_PROPERTY = 38


class BinaryPV(IntEnum):
    """Present value of binary objects (BACnetBinaryPV)."""

    INACTIVE = 0
    ACTIVE = 1


class Enumerated(_ExtensibleEnum):
    """Enumerated value of a type this package does not name.

    ``Enumerated(n)`` encodes with the Enumerated application tag; values
    other than 0 come back as ``VENDOR_<n>`` pseudo-members.
    """

    # Calls on a memberless IntEnum never reach ``_missing_``.
    ZERO = 0
