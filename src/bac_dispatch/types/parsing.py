"""Parsing of object and property identifiers given as text.

Callers of :class:`~bac_dispatch.client.Client` and the CLI name objects
as ``"ai,1"`` or ``("analog-input", 1)`` and properties as ``"pv"`` or
``"present-value"``; both resolve through the same alias-then-name-then-number
lookup.
"""

from __future__ import annotations

from enum import IntEnum
from functools import lru_cache
from typing import TypeVar

from bac_dispatch.types.enums import ObjectType, PropertyIdentifier
from bac_dispatch.types.primitives import ObjectIdentifier

_E = TypeVar("_E", bound=IntEnum)

OBJECT_TYPE_ALIASES: dict[str, ObjectType] = {
    "ai": ObjectType.ANALOG_INPUT,
    "ao": ObjectType.ANALOG_OUTPUT,
    "av": ObjectType.ANALOG_VALUE,
    "bi": ObjectType.BINARY_INPUT,
    "bo": ObjectType.BINARY_OUTPUT,
    "bv": ObjectType.BINARY_VALUE,
    "msi": ObjectType.MULTI_STATE_INPUT,
    "mso": ObjectType.MULTI_STATE_OUTPUT,
    "msv": ObjectType.MULTI_STATE_VALUE,
    "dev": ObjectType.DEVICE,
}

PROPERTY_ALIASES: dict[str, PropertyIdentifier] = {
    "pv": PropertyIdentifier.PRESENT_VALUE,
    "name": PropertyIdentifier.OBJECT_NAME,
    "desc": PropertyIdentifier.DESCRIPTION,
    "units": PropertyIdentifier.UNITS,
    "status": PropertyIdentifier.STATUS_FLAGS,
    "oos": PropertyIdentifier.OUT_OF_SERVICE,
    "objects": PropertyIdentifier.OBJECT_LIST,
}

_SEPARATORS = (",", ":")


def _lookup(enum_cls: type[_E], aliases: dict[str, _E], text: str, kind: str) -> _E:
    key = text.strip().lower()
    if key in aliases:
        return aliases[key]
    member = enum_cls.__members__.get(key.replace("-", "_").upper())
    if member is not None:
        return member
    if key.isdigit():
        try:
            return enum_cls(int(key))
        except ValueError:
            pass
    msg = f"Unknown {kind}: {text!r}"
    raise ValueError(msg)


@lru_cache(maxsize=256)
def _object_type(text: str) -> ObjectType:
    return _lookup(ObjectType, OBJECT_TYPE_ALIASES, text, "object type")


@lru_cache(maxsize=512)
def _property(text: str) -> PropertyIdentifier:
    return _lookup(PropertyIdentifier, PROPERTY_ALIASES, text, "property identifier")


def _split_identifier(text: str) -> tuple[str, str]:
    for sep in _SEPARATORS:
        type_part, found, instance_part = text.partition(sep)
        if found:
            return type_part, instance_part
    msg = f"Cannot parse object identifier: {text!r}. Expected format like 'ai,1'"
    raise ValueError(msg)


def parse_object_identifier(
    obj: str | tuple[str | ObjectType | int, int] | ObjectIdentifier,
) -> ObjectIdentifier:
    """Parse a flexible object identifier.

    Accepted formats::

        "analog-input,1"              -> ObjectIdentifier(ANALOG_INPUT, 1)
        "ai:1"                        -> ObjectIdentifier(ANALOG_INPUT, 1)
        ("ai", 1), (0, 1)             -> ObjectIdentifier(ANALOG_INPUT, 1)
        (ObjectType.ANALOG_INPUT, 1)  -> ObjectIdentifier(ANALOG_INPUT, 1)
        ObjectIdentifier(...)         -> unchanged

    :raises ValueError: If the type or instance cannot be resolved.
    """
    match obj:
        case ObjectIdentifier():
            return obj
        case str():
            type_part, instance_part = _split_identifier(obj)
            try:
                instance = int(instance_part.strip())
            except ValueError:
                msg = f"Invalid instance number in {obj!r}"
                raise ValueError(msg) from None
            return ObjectIdentifier(_object_type(type_part), instance)
        case (ObjectType() as object_type, int() as instance):
            return ObjectIdentifier(object_type, instance)
        case (int() as number, int() as instance):
            return ObjectIdentifier(ObjectType(number), instance)
        case (str() as name, int() as instance):
            return ObjectIdentifier(_object_type(name), instance)
        case tuple():
            msg = f"Object identifier tuple must be (type, instance), got {obj!r}"
            raise ValueError(msg)
    msg = f"Cannot parse object identifier from {type(obj).__name__}"
    raise ValueError(msg)


def parse_property_identifier(prop: str | int | PropertyIdentifier) -> PropertyIdentifier:
    """Parse ``"present-value"``, ``"pv"``, ``"85"``, ``85`` or a member."""
    if isinstance(prop, PropertyIdentifier):
        return prop
    if isinstance(prop, int):
        return PropertyIdentifier(prop)
    if isinstance(prop, str):
        return _property(prop)
    msg = f"Cannot parse property identifier from {type(prop).__name__}"
    raise ValueError(msg)
