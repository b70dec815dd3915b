"""Click CLI group and global options for the BACnet CLI."""

from __future__ import annotations

import logging
import sys

import click

from tools.commands.discover import discover
from tools.commands.read import read
from tools.commands.write import write


@click.group()
@click.option(
    "--interface",
    default="0.0.0.0",
    show_default=True,
    help="Local bind address.",
)
@click.option(
    "--port",
    default=0xBAC0,
    type=int,
    show_default=True,
    help="Local BACnet/IP port.",
)
@click.option(
    "--broadcast",
    default="255.255.255.255",
    show_default=True,
    help="Directed broadcast address of the local subnet.",
)
@click.option(
    "--instance",
    default=999,
    type=int,
    show_default=True,
    help="Local device instance number.",
)
@click.option(
    "--apdu-timeout",
    default=3000,
    type=int,
    show_default=True,
    help="Per-attempt response timeout in milliseconds.",
)
@click.option(
    "--retries",
    "apdu_retries",
    default=2,
    type=int,
    show_default=True,
    help="Retransmissions after the first attempt.",
)
@click.option(
    "--json",
    "use_json",
    is_flag=True,
    default=False,
    help="Output JSON instead of table.",
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    interface: str,
    port: int,
    broadcast: str,
    instance: int,
    apdu_timeout: int,
    apdu_retries: int,
    use_json: bool,
    verbose: bool,
) -> None:
    """BACnet/IP discovery and property access powered by bac-dispatch."""
    ctx.ensure_object(dict)
    ctx.obj["interface"] = interface
    ctx.obj["port"] = port
    ctx.obj["broadcast"] = broadcast
    ctx.obj["instance"] = instance
    ctx.obj["apdu_timeout"] = apdu_timeout
    ctx.obj["apdu_retries"] = apdu_retries
    ctx.obj["use_json"] = use_json

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


cli.add_command(discover)
cli.add_command(read)
cli.add_command(write)
