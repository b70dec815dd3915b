"""discover command -- find BACnet devices with a Who-Is broadcast."""

from __future__ import annotations

import sys

import click

from bac_dispatch.client import Client
from bac_dispatch.network.address import parse_address
from bac_dispatch.services.errors import BACnetBaseError
from tools.connection import build_config, run_command
from tools.formatting import describe_failure, print_error, print_json, print_table


@click.command()
@click.option("--low", type=int, default=None, help="Low device instance limit.")
@click.option("--high", type=int, default=None, help="High device instance limit.")
@click.option(
    "--timeout", type=float, default=3.0, show_default=True, help="Seconds to collect responses."
)
@click.option("--expect", "expected_count", type=int, default=None, help="Stop after this many devices.")
@click.option("--destination", default="*", show_default=True, help="Broadcast address ('*', '2:*', IP).")
@click.option("--objects", "load_objects", is_flag=True, default=False, help="Also read each object list.")
@click.pass_context
def discover(
    ctx: click.Context,
    low: int | None,
    high: int | None,
    timeout: float,
    expected_count: int | None,
    destination: str,
    load_objects: bool,
) -> None:
    """Discover BACnet devices and list their directory entries."""
    use_json: bool = ctx.obj["use_json"]

    try:
        dest = parse_address(destination)
    except ValueError as e:
        print_error(str(e), use_json)
        sys.exit(1)

    async def _run(client: Client) -> None:
        found = await client.discover(
            low_limit=low,
            high_limit=high,
            destination=dest,
            timeout=timeout,
            expected_count=expected_count,
        )
        if load_objects:
            for entry in found:
                try:
                    await client.load_objects(entry)
                except BACnetBaseError as e:
                    print_error(f"Device {entry.instance}: {describe_failure(e)}", use_json)
            found = [client.device(e.instance) or e for e in found]

        if use_json:
            print_json({"devices": found})
            return
        if not found:
            print("No devices responded.")
            return
        print(f"Found {len(found)} device(s):\n")
        print_table(
            ["Instance", "Address", "Max APDU", "Segmentation", "Vendor ID", "Objects"],
            [
                [
                    e.instance,
                    e.address,
                    e.max_apdu_length,
                    e.segmentation_supported.name,
                    e.vendor_id,
                    len(e.objects) if e.objects_loaded else "-",
                ]
                for e in found
            ],
        )

    try:
        run_command(build_config(ctx.obj), _run)
    except Exception as e:
        print_error(describe_failure(e), use_json)
        sys.exit(1)
