"""
Datagrams of the Semtech UDP packet forwarder protocol (version 2).

 Bytes  | Function
:------:|---------------------------------------------------------------------
 0      | protocol version = 2
 1-2    | random token, big endian
 3      | identifier, see GatewayPacketType
 4-11   | gateway unique identifier (PUSH_DATA, PULL_DATA and TX_ACK only)
 12-end | JSON object (PUSH_DATA, TX_ACK), starts at byte 4 for PULL_RESP
"""

import logging
import struct
from abc import abstractmethod
from typing import Annotated, ClassVar, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lkt_bridge.errors import FormatError, InvalidValueError
from lkt_bridge.packets import (
    PROTOCOL_VERSION,
    GatewayPacketType,
    PullRespPayload,
    PushDataPayload,
    TxAckError,
    TxAckPayload,
)

HEADER_SIZE = 4  # version + token + identifier
GATEWAY_HEADER_SIZE = 12  # HEADER_SIZE + gateway id

Token = Annotated[int, Field(strict=True, ge=0, le=0xFFFF)]
GatewayId = Annotated[bytes, Field(min_length=8, max_length=8)]

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def generate_header(
    token: int,
    pkt_type: GatewayPacketType,
    gateway_id: bytes | None = None,
) -> bytes:
    header = struct.pack("!BHB", PROTOCOL_VERSION, token, pkt_type)
    if gateway_id is not None:
        header += gateway_id
    return header


def parse_header(
    data: bytes,
    pkt_type: GatewayPacketType,
    with_gateway: bool = False,
    with_payload: bool = False,
) -> tuple[int, bytes | None, bytes]:
    """
    Validate the header of a datagram and split it.

    Checks, in order: length (exact for header-only datagrams, at least one
    payload byte otherwise), protocol version, identifier.

    :returns: (random token, gateway id or None, payload bytes)
    :raises FormatError: on the first failed check
    """
    size = GATEWAY_HEADER_SIZE if with_gateway else HEADER_SIZE
    if with_payload:
        if len(data) <= size:
            raise FormatError(f"expected at least {size + 1} bytes, got: {len(data)}")
    elif len(data) != size:
        raise FormatError(f"expected {size} bytes, got: {len(data)}")

    if data[0] != PROTOCOL_VERSION:
        raise FormatError(
            f"expected protocol version: {PROTOCOL_VERSION}, got: {data[0]}"
        )

    if data[3] != pkt_type:
        raise FormatError(f"invalid identifier: {data[3]}")

    token: int = struct.unpack("!H", data[1:3])[0]
    gateway_id = bytes(data[HEADER_SIZE:GATEWAY_HEADER_SIZE]) if with_gateway else None
    return token, gateway_id, bytes(data[size:])


def parse_payload(model: type[PayloadT], data: bytes) -> PayloadT:
    try:
        return model.model_validate_json(data)
    except ValidationError as e:
        raise InvalidValueError(f"invalid {model.__name__}: {e}") from e


class Envelope(BaseModel):
    model_config = ConfigDict(ser_json_bytes="hex")

    IDENT: ClassVar[GatewayPacketType]

    random_token: Token

    @abstractmethod
    def to_bytes(self) -> bytes: ...

    @classmethod
    @abstractmethod
    def from_bytes(cls, data: bytes) -> Self: ...


class PushData(Envelope):
    """Gateway → server: received packets and/or gateway status."""

    IDENT: ClassVar[GatewayPacketType] = GatewayPacketType.PKT_PUSH_DATA

    gateway_id: GatewayId
    payload: PushDataPayload = Field(default_factory=PushDataPayload)

    def to_bytes(self) -> bytes:
        header = generate_header(self.random_token, self.IDENT, self.gateway_id)
        return header + self.payload.model_dump_json().encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        token, gateway_id, payload = parse_header(
            data, cls.IDENT, with_gateway=True, with_payload=True
        )
        return cls(
            random_token=token,
            gateway_id=gateway_id,
            payload=parse_payload(PushDataPayload, payload),
        )


class PushAck(Envelope):
    """Server → gateway: acknowledges a PUSH_DATA."""

    IDENT: ClassVar[GatewayPacketType] = GatewayPacketType.PKT_PUSH_ACK

    def to_bytes(self) -> bytes:
        return generate_header(self.random_token, self.IDENT)

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        token, _, _ = parse_header(data, cls.IDENT)
        return cls(random_token=token)


class PullData(Envelope):
    """Gateway → server: keepalive, opens the downlink route."""

    IDENT: ClassVar[GatewayPacketType] = GatewayPacketType.PKT_PULL_DATA

    gateway_id: GatewayId

    def to_bytes(self) -> bytes:
        return generate_header(self.random_token, self.IDENT, self.gateway_id)

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        token, gateway_id, _ = parse_header(data, cls.IDENT, with_gateway=True)
        return cls(random_token=token, gateway_id=gateway_id)


class PullAck(Envelope):
    """Server → gateway: acknowledges a PULL_DATA."""

    IDENT: ClassVar[GatewayPacketType] = GatewayPacketType.PKT_PULL_ACK

    def to_bytes(self) -> bytes:
        return generate_header(self.random_token, self.IDENT)

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        token, _, _ = parse_header(data, cls.IDENT)
        return cls(random_token=token)


class PullResp(Envelope):
    """Server → gateway: a packet to emit."""

    IDENT: ClassVar[GatewayPacketType] = GatewayPacketType.PKT_PULL_RESP

    payload: PullRespPayload

    def to_bytes(self) -> bytes:
        header = generate_header(self.random_token, self.IDENT)
        return header + self.payload.model_dump_json(exclude_none=True).encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        token, _, payload = parse_header(data, cls.IDENT, with_payload=True)
        return cls(random_token=token, payload=parse_payload(PullRespPayload, payload))


class TxAck(Envelope):
    """Gateway → server: outcome of a PULL_RESP, the error is empty on success."""

    IDENT: ClassVar[GatewayPacketType] = GatewayPacketType.PKT_TX_ACK

    gateway_id: GatewayId
    payload: TxAckPayload = Field(default_factory=TxAckPayload)

    @classmethod
    def for_error(cls, random_token: int, gateway_id: bytes, error: str = "") -> Self:
        return cls(
            random_token=random_token,
            gateway_id=gateway_id,
            payload=TxAckPayload(txpk_ack=TxAckError(error=error)),
        )

    @property
    def error(self) -> str:
        return self.payload.txpk_ack.error

    def to_bytes(self) -> bytes:
        header = generate_header(self.random_token, self.IDENT, self.gateway_id)
        return header + self.payload.model_dump_json().encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        # a TX_ACK without JSON object reports a success
        if len(data) == GATEWAY_HEADER_SIZE:
            token, gateway_id, _ = parse_header(data, cls.IDENT, with_gateway=True)
            return cls(random_token=token, gateway_id=gateway_id)
        token, gateway_id, payload = parse_header(
            data, cls.IDENT, with_gateway=True, with_payload=True
        )
        return cls(
            random_token=token,
            gateway_id=gateway_id,
            payload=parse_payload(TxAckPayload, payload),
        )


ENVELOPES: dict[GatewayPacketType, type[Envelope]] = {
    envelope.IDENT: envelope
    for envelope in (PushData, PushAck, PullData, PullResp, PullAck, TxAck)
}


def decode(data: bytes) -> Envelope:
    """
    Decode any datagram, dispatching on its identifier byte.

    :raises FormatError: bad length, version or unknown identifier
    :raises InvalidValueError: the JSON object does not match its schema
    """
    if len(data) < HEADER_SIZE:
        raise FormatError(f"expected at least {HEADER_SIZE} bytes, got: {len(data)}")

    if data[0] != PROTOCOL_VERSION:
        raise FormatError(
            f"expected protocol version: {PROTOCOL_VERSION}, got: {data[0]}"
        )

    try:
        pkt_type = GatewayPacketType(data[3])
    except ValueError:
        raise FormatError(f"invalid identifier: {data[3]}") from None

    envelope = ENVELOPES[pkt_type].from_bytes(data)
    logging.debug(f"decoded {pkt_type} with token {envelope.random_token}")
    return envelope
