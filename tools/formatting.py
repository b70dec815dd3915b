"""Output formatting for the BACnet CLI.

Supports table (human-readable) and JSON output modes.  JSON goes through
:mod:`bac_dispatch.serialization`, so directory snapshots print as their
``to_dict()`` form.
"""

from __future__ import annotations

import sys
from typing import Any

from bac_dispatch.serialization import serialize
from bac_dispatch.services.errors import (
    BACnetAbortError,
    BACnetError,
    BACnetRejectError,
    BACnetTimeoutError,
)


def print_table(
    headers: list[str],
    rows: list[list[Any]],
) -> None:
    """Print aligned columns with a separator line."""
    str_rows = [[str(v) for v in row] for row in rows]
    widths = [len(h) for h in headers]
    for row in str_rows:
        for i, val in enumerate(row[: len(widths)]):
            widths[i] = max(widths[i], len(val))

    print("  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
    print("  ".join("-" * w for w in widths))
    for row in str_rows:
        print("  ".join((row[i] if i < len(row) else "").ljust(widths[i]) for i in range(len(headers))))


def print_json(data: Any) -> None:
    """Print data as indented JSON."""
    print(serialize(data, pretty=True).decode())


def print_error(message: str, use_json: bool = False) -> None:
    """Print an error message, respecting output mode."""
    if use_json:
        print(serialize({"error": message}).decode())
    else:
        print(f"Error: {message}", file=sys.stderr)


def print_kv(pairs: list[tuple[str, Any]]) -> None:
    """Print key-value pairs aligned on the key column."""
    if not pairs:
        return
    width = max(len(k) for k, _ in pairs)
    for key, value in pairs:
        print(f"  {key.ljust(width)}  {value}")


def format_value(value: object) -> str:
    """Human-readable rendering of a decoded property value."""
    if isinstance(value, list):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    if isinstance(value, float):
        return f"{value:g}"
    if isinstance(value, bytes):
        return value.hex()
    if value is None:
        return "null"
    return str(value)


def describe_failure(exc: BaseException) -> str:
    """One-line description of a failed exchange."""
    match exc:
        case BACnetError():
            return f"BACnet error: {exc.error_class.name}/{exc.error_code.name}"
        case BACnetRejectError():
            return f"Request rejected: {exc.reason.name}"
        case BACnetAbortError():
            return f"Transaction aborted: {exc.reason.name}"
        case BACnetTimeoutError():
            return f"Device did not respond after {exc.attempts} attempt(s)"
        case _:
            return str(exc) or type(exc).__name__
