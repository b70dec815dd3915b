"""read command -- read a single property from a BACnet device."""

from __future__ import annotations

import sys

import click

from bac_dispatch.client import Client
from bac_dispatch.network.address import parse_address
from bac_dispatch.types.parsing import parse_object_identifier, parse_property_identifier
from tools.connection import build_config, run_command
from tools.formatting import describe_failure, format_value, print_error, print_json, print_kv


@click.command()
@click.argument("address")
@click.argument("object")
@click.argument("property")
@click.option("--index", "array_index", type=int, default=None, help="Array index.")
@click.pass_context
def read(
    ctx: click.Context,
    address: str,
    object: str,
    property: str,
    array_index: int | None,
) -> None:
    """Read a single property from a remote device.

    ADDRESS is the device IP (or IP:port, or network:IP).
    OBJECT is type,instance (e.g. ai,1 or device:0).
    PROPERTY is the property name (e.g. present-value, pv, object-name).
    """
    use_json: bool = ctx.obj["use_json"]

    try:
        addr = parse_address(address)
        obj_id = parse_object_identifier(object)
        prop = parse_property_identifier(property)
    except ValueError as e:
        print_error(str(e), use_json)
        sys.exit(1)

    async def _run(client: Client) -> None:
        value = await client.read(addr, obj_id, prop, array_index)
        if use_json:
            print_json({"object": str(obj_id), "property": prop.name, "value": value})
        else:
            print_kv([("Object", str(obj_id)), ("Property", prop.name), ("Value", format_value(value))])

    try:
        run_command(build_config(ctx.obj), _run)
    except Exception as e:
        print_error(describe_failure(e), use_json)
        sys.exit(1)
