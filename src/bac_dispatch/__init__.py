"""bac-dispatch: BACnet service dispatch, discovery and remote device directory.

Typical usage::

    from bac_dispatch import Client, DeviceConfig

    async with Client(DeviceConfig(instance_number=999)) as client:
        devices = await client.discover(timeout=3.0)
        value = await client.read("192.168.1.100", "ai,1", "pv")
"""

__version__ = "0.1.0"

from bac_dispatch.app.application import BACnetApplication, DeviceConfig
from bac_dispatch.app.collector import DeviceAnnouncement, DiscoverySession
from bac_dispatch.app.directory import CachedValue, RemoteDeviceEntry, RemoteDirectory, RemoteObjectEntry
from bac_dispatch.app.future import FutureState, ServiceFuture
from bac_dispatch.app.notifications import EventNotice, PropertyChange
from bac_dispatch.app.retry import RetryPolicy
from bac_dispatch.client import Client
from bac_dispatch.serialization import deserialize, serialize

__all__ = [
    "BACnetApplication",
    "CachedValue",
    "Client",
    "DeviceAnnouncement",
    "DeviceConfig",
    "DiscoverySession",
    "EventNotice",
    "FutureState",
    "PropertyChange",
    "RemoteDeviceEntry",
    "RemoteDirectory",
    "RemoteObjectEntry",
    "RetryPolicy",
    "ServiceFuture",
    "__version__",
    "deserialize",
    "serialize",
]
