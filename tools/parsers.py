"""Input parsing for CLI values.

Object and property identifiers are parsed by
:mod:`bac_dispatch.types.parsing`; this module turns the VALUE argument
of ``write`` into the Python value the application encodes.
"""

from __future__ import annotations

from bac_dispatch.types.enums import BinaryPV, Enumerated, ObjectType, PropertyIdentifier

_ANALOG_TYPES = frozenset({ObjectType.ANALOG_INPUT, ObjectType.ANALOG_OUTPUT, ObjectType.ANALOG_VALUE})
_BINARY_TYPES = frozenset({ObjectType.BINARY_INPUT, ObjectType.BINARY_OUTPUT, ObjectType.BINARY_VALUE})
_STRING_PROPERTIES = frozenset(
    {PropertyIdentifier.OBJECT_NAME, PropertyIdentifier.DESCRIPTION, PropertyIdentifier.LOCATION}
)

_BOOLEAN_WORDS = {"true": True, "false": False, "on": True, "off": False}
_BINARY_WORDS = {"active": BinaryPV.ACTIVE, "inactive": BinaryPV.INACTIVE}


def parse_value(
    text: str,
    object_type: ObjectType,
    prop: PropertyIdentifier,
    type_override: str | None = None,
) -> object:
    """Infer the BACnet type of a CLI value.

    :param type_override: One of ``real``, ``unsigned``, ``signed``,
        ``bool``, ``enum``, ``string`` or ``null``.
    :raises ValueError: If *text* does not fit the chosen type.
    """
    raw = text.strip()
    kind = type_override.lower() if type_override else _infer(raw, object_type, prop)
    match kind:
        case "null":
            return None
        case "real":
            return float(raw)
        case "unsigned":
            value = int(raw)
            if value < 0:
                msg = f"Unsigned value cannot be negative: {raw}"
                raise ValueError(msg)
            return value
        case "signed":
            return int(raw)
        case "bool":
            try:
                return _BOOLEAN_WORDS[raw.lower()]
            except KeyError:
                msg = f"Not a boolean: {raw!r}"
                raise ValueError(msg) from None
        case "enum":
            word = raw.lower()
            if word in _BINARY_WORDS:
                return _BINARY_WORDS[word]
            value = int(raw)
            try:
                return Enumerated(value)
            except ValueError:
                msg = f"Enumerated value out of range: {raw}"
                raise ValueError(msg) from None
        case "string":
            return text
        case _:
            msg = f"Unknown value type: {type_override!r}"
            raise ValueError(msg)


def _infer(raw: str, object_type: ObjectType, prop: PropertyIdentifier) -> str:
    word = raw.lower()
    if word == "null":
        return "null"
    if prop in _STRING_PROPERTIES:
        return "string"
    if prop == PropertyIdentifier.PRESENT_VALUE:
        if object_type in _ANALOG_TYPES:
            return "real"
        if object_type in _BINARY_TYPES:
            return "enum"
    if word in _BOOLEAN_WORDS:
        return "bool"
    if word in _BINARY_WORDS:
        return "enum"
    try:
        int(raw)
    except ValueError:
        pass
    else:
        return "signed" if raw.startswith("-") else "unsigned"
    try:
        float(raw)
    except ValueError:
        return "string"
    return "real"
