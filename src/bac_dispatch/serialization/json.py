"""JSON serializer backed by orjson."""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any

try:
    import orjson
except ImportError:  # pragma: no cover
    orjson = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


def json_default(obj: object) -> object:
    """Fallback conversion for values orjson cannot encode natively.

    ``to_dict()`` objects become dicts, ``bytes``/``memoryview`` become hex
    strings, sets become sorted lists and enum members become ints.

    :raises TypeError: If *obj* is not a recognised type.
    """
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).hex()
    if isinstance(obj, memoryview):
        return bytes(obj).hex()
    if isinstance(obj, IntEnum):
        return int(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    msg = f"Cannot serialize {type(obj).__name__}"
    logger.warning("serialize failed: %s", msg)
    raise TypeError(msg)


class JsonSerializer:
    """orjson-based JSON encoding of directory snapshots.

    Binary values are written as hex strings and come back as plain
    strings on decode.

    :param pretty: Indent output with 2 spaces.
    :param sort_keys: Sort dict keys alphabetically.
    """

    def __init__(self, *, pretty: bool = False, sort_keys: bool = False) -> None:
        if orjson is None:  # pragma: no cover
            msg = "orjson is required for JsonSerializer; install bac-dispatch[serialization]"
            raise ImportError(msg)
        # Dataclasses go through json_default so their to_dict() form is used.
        self._options = orjson.OPT_NON_STR_KEYS | orjson.OPT_PASSTHROUGH_DATACLASS
        if pretty:
            self._options |= orjson.OPT_INDENT_2
        if sort_keys:
            self._options |= orjson.OPT_SORT_KEYS

    @property
    def content_type(self) -> str:
        return "application/json"

    def encode(self, data: Any) -> bytes:
        return orjson.dumps(data, default=json_default, option=self._options)

    def decode(self, raw: bytes) -> Any:
        result = orjson.loads(raw)
        if not isinstance(result, (dict, list)):
            msg = f"Expected a JSON object or array, got {type(result).__name__}"
            logger.warning("deserialize failed: %s", msg)
            raise TypeError(msg)
        return result
