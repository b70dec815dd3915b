"""APDU codec: the boundary between frames and typed service messages.

A frame here is one BACnet APDU (Clause 20.1).  :class:`APDUCodec` turns
service data into request/response APDUs and classifies inbound APDUs into
one of four kinds:

- :class:`ConfirmedResponse` -- an answer to one of our confirmed requests
  (SimpleACK, ComplexACK, Error, Reject or server Abort);
- :class:`UnconfirmedMessage` -- an Unconfirmed-Request PDU;
- :class:`ConfirmedRequest` -- a confirmed request addressed to us;
- :class:`Malformed` -- anything undecodable or unsupported.

Decoding never raises; callers branch on the returned kind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from bac_dispatch.encoding.primitives import decode_unsigned, encode_application_enumerated
from bac_dispatch.encoding.tags import TagClass, decode_tag
from bac_dispatch.services.errors import (
    BACnetAbortError,
    BACnetBaseError,
    BACnetError,
    BACnetRejectError,
    MalformedFrameError,
)
from bac_dispatch.types.enums import AbortReason, ErrorClass, ErrorCode, PduType, RejectReason

logger = logging.getLogger(__name__)

# Max-APDU-length field encoding (Clause 20.1.2.5)
_MAX_APDU_ENCODE: dict[int, int] = {50: 0, 128: 1, 206: 2, 480: 3, 1024: 4, 1476: 5}
_MAX_APDU_DECODE: dict[int, int] = {v: k for k, v in _MAX_APDU_ENCODE.items()}

# PDU flag bits in the first octet
_SEGMENTED = 0x08
_SENT_BY_SERVER = 0x01


@dataclass(frozen=True, slots=True)
class ConfirmedResponse:
    """A response correlated by invoke ID.

    Exactly one of *data* (ACK contents, empty for SimpleACK) or *error*
    is meaningful: *error* is set for Error, Reject and Abort PDUs.
    """

    invoke_id: int
    service_choice: int | None
    data: bytes = b""
    error: BACnetBaseError | None = None

    @property
    def is_ack(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class UnconfirmedMessage:
    """An Unconfirmed-Request PDU."""

    service_choice: int
    data: bytes


@dataclass(frozen=True, slots=True)
class ConfirmedRequest:
    """A Confirmed-Request PDU addressed to the local device."""

    invoke_id: int
    service_choice: int
    data: bytes
    max_apdu_length: int = 1476


@dataclass(frozen=True, slots=True)
class Malformed:
    """An inbound frame that could not be decoded or is not supported."""

    reason: str


DecodedFrame = ConfirmedResponse | UnconfirmedMessage | ConfirmedRequest | Malformed


@runtime_checkable
class Codec(Protocol):
    """Encode service messages into frames and classify inbound frames."""

    def encode_confirmed_request(
        self, service_choice: int, invoke_id: int, service_data: bytes
    ) -> bytes: ...

    def encode_unconfirmed_request(self, service_choice: int, service_data: bytes) -> bytes: ...

    def decode(self, frame: bytes) -> DecodedFrame: ...


class APDUCodec:
    """BACnet APDU codec for non-segmented exchanges.

    :param max_apdu_length: Max-APDU-length-accepted advertised in our
        confirmed requests.
    """

    def __init__(self, *, max_apdu_length: int = 1476) -> None:
        if max_apdu_length not in _MAX_APDU_ENCODE:
            msg = f"max_apdu_length must be one of {sorted(_MAX_APDU_ENCODE)}, got {max_apdu_length}"
            raise ValueError(msg)
        self._max_apdu_length = max_apdu_length

    @property
    def max_apdu_length(self) -> int:
        return self._max_apdu_length

    # --- Requests ---

    def encode_confirmed_request(
        self, service_choice: int, invoke_id: int, service_data: bytes
    ) -> bytes:
        """Encode a non-segmented Confirmed-Request PDU (Clause 20.1.2).

        Segmented-response-accepted is left clear and max-segments is
        unspecified, so servers answer in a single APDU or abort.
        """
        _check_octet("invoke_id", invoke_id)
        header = bytes(
            [
                PduType.CONFIRMED_REQUEST << 4,
                _MAX_APDU_ENCODE[self._max_apdu_length],
                invoke_id,
                service_choice,
            ]
        )
        return header + service_data

    def encode_unconfirmed_request(self, service_choice: int, service_data: bytes) -> bytes:
        """Encode an Unconfirmed-Request PDU (Clause 20.1.3)."""
        return bytes([PduType.UNCONFIRMED_REQUEST << 4, service_choice]) + service_data

    # --- Responses (local device acting as server) ---

    def encode_simple_ack(self, invoke_id: int, service_choice: int) -> bytes:
        return bytes([PduType.SIMPLE_ACK << 4, invoke_id, service_choice])

    def encode_complex_ack(self, invoke_id: int, service_choice: int, service_ack: bytes) -> bytes:
        return bytes([PduType.COMPLEX_ACK << 4, invoke_id, service_choice]) + service_ack

    def encode_error(
        self,
        invoke_id: int,
        service_choice: int,
        error_class: ErrorClass,
        error_code: ErrorCode,
    ) -> bytes:
        return (
            bytes([PduType.ERROR << 4, invoke_id, service_choice])
            + encode_application_enumerated(error_class)
            + encode_application_enumerated(error_code)
        )

    def encode_reject(self, invoke_id: int, reason: RejectReason) -> bytes:
        return bytes([PduType.REJECT << 4, invoke_id, reason])

    def encode_abort(self, invoke_id: int, reason: AbortReason, *, sent_by_server: bool = True) -> bytes:
        first = (PduType.ABORT << 4) | (_SENT_BY_SERVER if sent_by_server else 0)
        return bytes([first, invoke_id, reason])

    # --- Decoding ---

    def decode(self, frame: bytes) -> DecodedFrame:
        """Classify an inbound APDU.  Never raises."""
        try:
            return self._decode(memoryview(frame))
        except (MalformedFrameError, ValueError, IndexError) as e:
            return Malformed(str(e) or type(e).__name__)

    def _decode(self, data: memoryview) -> DecodedFrame:
        if len(data) < 2:
            return Malformed(f"APDU too short: {len(data)} octet(s)")
        first = data[0]
        try:
            pdu_type = PduType(first >> 4)
        except ValueError:
            return Malformed(f"Unknown PDU type {first >> 4}")

        match pdu_type:
            case PduType.CONFIRMED_REQUEST:
                _require(data, 4, "Confirmed-Request")
                if first & _SEGMENTED:
                    return Malformed("Segmented confirmed requests are not supported")
                return ConfirmedRequest(
                    invoke_id=data[2],
                    service_choice=data[3],
                    data=bytes(data[4:]),
                    max_apdu_length=_MAX_APDU_DECODE.get(data[1] & 0x0F, 1476),
                )
            case PduType.UNCONFIRMED_REQUEST:
                return UnconfirmedMessage(service_choice=data[1], data=bytes(data[2:]))
            case PduType.SIMPLE_ACK:
                _require(data, 3, "SimpleACK")
                return ConfirmedResponse(invoke_id=data[1], service_choice=data[2])
            case PduType.COMPLEX_ACK:
                _require(data, 3, "ComplexACK")
                if first & _SEGMENTED:
                    return Malformed("Segmented ComplexACK is not supported")
                return ConfirmedResponse(
                    invoke_id=data[1], service_choice=data[2], data=bytes(data[3:])
                )
            case PduType.ERROR:
                return self._decode_error(data)
            case PduType.REJECT:
                _require(data, 3, "Reject")
                return ConfirmedResponse(
                    invoke_id=data[1],
                    service_choice=None,
                    error=BACnetRejectError(RejectReason(data[2])),
                )
            case PduType.ABORT:
                _require(data, 3, "Abort")
                if not first & _SENT_BY_SERVER:
                    return Malformed("Abort from a client; no server transactions to abort")
                return ConfirmedResponse(
                    invoke_id=data[1],
                    service_choice=None,
                    error=BACnetAbortError(AbortReason(data[2])),
                )
            case _:
                return Malformed(f"{pdu_type.name} is not supported")

    def _decode_error(self, data: memoryview) -> DecodedFrame:
        _require(data, 5, "Error")
        offset = 3
        values: list[int] = []
        for _ in range(2):
            tag, offset = decode_tag(data, offset)
            if tag.cls != TagClass.APPLICATION or tag.number != 9:
                return Malformed("Error-PDU class/code must be enumerated values")
            values.append(decode_unsigned(data[offset : offset + tag.length]))
            offset += tag.length
        return ConfirmedResponse(
            invoke_id=data[1],
            service_choice=data[2],
            error=BACnetError(ErrorClass(values[0]), ErrorCode(values[1]), bytes(data[offset:])),
        )


def _require(data: memoryview, length: int, name: str) -> None:
    if len(data) < length:
        msg = f"{name} too short: need at least {length} octets, got {len(data)}"
        raise MalformedFrameError(msg)


def _check_octet(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        msg = f"{name} must be 0-255, got {value}"
        raise ValueError(msg)
