"""Export of directory snapshots and protocol values to interchange formats.

Directory entries, announcements and protocol types expose ``to_dict()``;
:func:`serialize` accepts those, plain dicts, and lists of either.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

__all__ = ["Serializer", "deserialize", "get_serializer", "serialize"]


@runtime_checkable
class Serializer(Protocol):
    """Interface for format-specific serialization backends."""

    def encode(self, data: Any) -> bytes: ...

    def decode(self, raw: bytes) -> Any: ...

    @property
    def content_type(self) -> str:
        """MIME type of the output format."""
        ...


def get_serializer(format: str = "json", **kwargs: Any) -> Serializer:
    """Serializer instance for *format*.

    :param kwargs: Options passed to the serializer constructor.
    :raises ValueError: If the format is not supported.
    :raises ImportError: If the backend library is not installed.
    """
    if format == "json":
        from bac_dispatch.serialization.json import JsonSerializer

        return JsonSerializer(**kwargs)
    msg = f"Unsupported serialization format: {format}"
    raise ValueError(msg)


def serialize(obj: Any, format: str = "json", **kwargs: Any) -> bytes:
    """Serialize an object with ``to_dict()``, a dict, or a list of these."""
    serializer = get_serializer(format, **kwargs)
    if isinstance(obj, (list, tuple)):
        data: Any = [o.to_dict() if hasattr(o, "to_dict") else o for o in obj]
    else:
        data = obj.to_dict() if hasattr(obj, "to_dict") else obj
    return serializer.encode(data)


def deserialize(raw: bytes, format: str = "json") -> Any:
    """Parse *raw* back into plain dicts and lists."""
    return get_serializer(format).decode(raw)
