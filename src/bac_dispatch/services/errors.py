"""Error types for BACnet exchanges per ASHRAE 135-2016 Clause 18.

Every failure of a dispatched confirmed request reaches the caller as one of
these exceptions through the request's :class:`~bac_dispatch.app.future.ServiceFuture`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bac_dispatch.network.address import BACnetAddress
    from bac_dispatch.types.enums import AbortReason, ErrorClass, ErrorCode, RejectReason


class BACnetBaseError(Exception):
    """Base exception for BACnet protocol errors."""


class BACnetError(BACnetBaseError):
    """BACnet Error-PDU received (Clause 18).

    Contains error class and code per the specification.
    """

    def __init__(
        self,
        error_class: ErrorClass,
        error_code: ErrorCode,
        error_data: bytes = b"",
    ) -> None:
        """Initialise a BACnet error.

        Args:
            error_class: The error class enumeration.
            error_code: The error code enumeration.
            error_data: Raw octets following the class/code pair, kept
                undecoded.
        """
        self.error_class = error_class
        self.error_code = error_code
        self.error_data = error_data
        super().__init__(f"{error_class.name}: {error_code.name}")


class BACnetRejectError(BACnetBaseError):
    """BACnet Reject-PDU received (Clause 18.9).

    Indicates a syntax or protocol error in the request.
    """

    def __init__(self, reason: RejectReason) -> None:
        self.reason = reason
        super().__init__(f"Reject: {reason.name}")


class BACnetAbortError(BACnetBaseError):
    """BACnet Abort-PDU received (Clause 18.10).

    Indicates the transaction was aborted.
    """

    def __init__(self, reason: AbortReason) -> None:
        self.reason = reason
        super().__init__(f"Abort: {reason.name}")


class BACnetTimeoutError(BACnetBaseError):
    """Request timed out after all retries exhausted."""

    def __init__(self, message: str = "No response", *, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message)


class BACnetCancelledError(BACnetBaseError):
    """The exchange was cancelled by its caller before it completed."""


class BACnetCallerTimeoutError(BACnetBaseError, TimeoutError):
    """A caller stopped waiting on a future.

    The underlying exchange keeps running and may still resolve.
    """


class InvokeIdExhaustedError(BACnetBaseError):
    """Every invoke ID for a destination is held by an outstanding request."""

    def __init__(self, destination: BACnetAddress) -> None:
        self.destination = destination
        super().__init__(f"No available invoke IDs for {destination}")


class BACnetTransportError(BACnetBaseError):
    """A frame could not be handed to the local transport."""


class MalformedFrameError(BACnetBaseError, ValueError):
    """Inbound octets could not be decoded."""


class FutureAlreadyResolvedError(BACnetBaseError, RuntimeError):
    """A second terminal transition was attempted on a resolved future."""


class UnknownDeviceError(BACnetBaseError, LookupError):
    """No remote directory entry exists for a device instance."""

    def __init__(self, instance: int) -> None:
        self.instance = instance
        super().__init__(f"Device {instance} is not in the directory")
