"""High-level BACnet application interface.

Public API:

- :class:`BACnetApplication`: orchestrator wiring the transport, the
  dispatcher, discovery, the remote directory and the local device.
- :class:`DeviceConfig`: configuration dataclass for an application.
- :class:`ServiceFuture`: handle returned by every dispatched exchange.
"""

from bac_dispatch.app.application import BACnetApplication, DeviceConfig
from bac_dispatch.app.future import FutureState, ServiceFuture

__all__ = ["BACnetApplication", "DeviceConfig", "FutureState", "ServiceFuture"]
