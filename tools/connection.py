"""Async bridge between Click (sync) and the async Client."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from bac_dispatch.app.application import DeviceConfig
from bac_dispatch.client import Client

T = TypeVar("T")


def build_config(obj: dict[str, Any]) -> DeviceConfig:
    """Local device configuration from the CLI group's global options."""
    return DeviceConfig(
        instance_number=obj["instance"],
        interface=obj["interface"],
        port=obj["port"],
        broadcast_address=obj["broadcast"],
        apdu_timeout=obj["apdu_timeout"],
        apdu_retries=obj["apdu_retries"],
        announce_on_start=False,
    )


def run_command(
    config: DeviceConfig,
    coro_factory: Callable[[Client], Coroutine[Any, Any, T]],
) -> T:
    """Start a client for *config*, run ``coro_factory(client)`` and stop it.

    :returns: The return value of the coroutine.
    """

    async def _run() -> T:
        async with Client(config) as client:
            return await coro_factory(client)

    return asyncio.run(_run())
