"""write command -- write a property value to a BACnet device."""

from __future__ import annotations

import sys

import click

from bac_dispatch.client import Client
from bac_dispatch.network.address import parse_address
from bac_dispatch.types.parsing import parse_object_identifier, parse_property_identifier
from tools.connection import build_config, run_command
from tools.formatting import describe_failure, print_error, print_json
from tools.parsers import parse_value


@click.command()
@click.argument("address")
@click.argument("object")
@click.argument("property")
@click.argument("value")
@click.option(
    "--priority", type=click.IntRange(1, 16), default=None, help="Write priority (1-16)."
)
@click.option("--index", "array_index", type=int, default=None, help="Array index.")
@click.option(
    "--type",
    "type_override",
    type=click.Choice(["real", "unsigned", "signed", "bool", "enum", "string", "null"]),
    default=None,
    help="Force the value type.",
)
@click.pass_context
def write(
    ctx: click.Context,
    address: str,
    object: str,
    property: str,
    value: str,
    priority: int | None,
    array_index: int | None,
    type_override: str | None,
) -> None:
    """Write a property value to a remote device.

    ADDRESS is the device IP (or IP:port, or network:IP).
    OBJECT is type,instance (e.g. av,1 or bo:3).
    PROPERTY is the property name (e.g. present-value).
    VALUE is the value to write (e.g. 72.5, active, null).
    """
    use_json: bool = ctx.obj["use_json"]

    try:
        addr = parse_address(address)
        obj_id = parse_object_identifier(object)
        prop = parse_property_identifier(property)
        parsed = parse_value(value, obj_id.object_type, prop, type_override)
    except ValueError as e:
        print_error(str(e), use_json)
        sys.exit(1)

    async def _run(client: Client) -> None:
        await client.write(addr, obj_id, prop, parsed, priority=priority, array_index=array_index)
        if use_json:
            print_json({"status": "ok", "object": str(obj_id), "property": prop.name, "value": parsed})
        else:
            print(f"OK: wrote {value} to {obj_id} {prop.name}")

    try:
        run_command(build_config(ctx.obj), _run)
    except Exception as e:
        print_error(describe_failure(e), use_json)
        sys.exit(1)
