"""
JSON payloads of the Semtech UDP packet forwarder protocol.

https://github.com/Lora-net/packet_forwarder/blob/master/PROTOCOL.TXT
"""

import datetime
import enum
import re
from typing import Annotated, Any, TypeAlias, override

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    StrictBool,
    field_serializer,
    field_validator,
    model_serializer,
)

from lkt_bridge.errors import InvalidValueError
from lkt_bridge.helpers import (
    format_compact_time,
    format_expanded_time,
    parse_compact_time,
    parse_expanded_time,
)

PROTOCOL_VERSION = 0x02

U8 = Annotated[int, Field(strict=True, ge=0, le=0xFF)]
U32 = Annotated[int, Field(strict=True, ge=0, le=0xFFFF_FFFF)]
U64 = Annotated[int, Field(strict=True, ge=0, le=0xFFFF_FFFF_FFFF_FFFF)]

_ALPHABETIC = re.compile(r"[^\W\d_]")
_DIGITS = re.compile(r"[0-9]+")


class GatewayPacketType(enum.IntEnum):
    PKT_PUSH_DATA = 0
    PKT_PUSH_ACK = 1
    PKT_PULL_DATA = 2
    PKT_PULL_RESP = 3
    PKT_PULL_ACK = 4
    PKT_TX_ACK = 5

    @override
    def __str__(self):
        return self.name


class CRC(enum.IntEnum):
    """CRC status of a received packet: 1 = OK, -1 = fail, 0 = no CRC"""

    NO_CRC = 0
    OK = 1
    FAIL = -1


class Modulation(enum.StrEnum):
    LORA = "LORA"
    FSK = "FSK"

    @classmethod
    def decode(cls, value: object) -> "Modulation":
        """Strict, case-sensitive decode of ``"LORA"`` / ``"FSK"``."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidValueError(f"modulation must be a string, got: {value!r}")
        try:
            return cls(value)
        except ValueError:
            raise InvalidValueError(f"unexpected modulation: {value!r}") from None


class CodeRate(enum.StrEnum):
    LORA_4_5 = "4/5"
    LORA_4_6 = "4/6"
    LORA_4_7 = "4/7"
    LORA_4_8 = "4/8"
    UNDEFINED = ""

    def encode(self) -> str | None:
        if self is CodeRate.UNDEFINED:
            return None
        return self.value

    @classmethod
    def decode(cls, value: object) -> "CodeRate | None":
        """
        Lenient decode: unknown strings become ``UNDEFINED`` instead of failing.

        JSON null means the field is absent.
        """
        if value is None or isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InvalidValueError(f"coding rate must be a string, got: {value!r}")
        if value in (cls.LORA_4_5, cls.LORA_4_6, cls.LORA_4_7, cls.LORA_4_8):
            return cls(value)
        return cls.UNDEFINED


class LoRaDataRate(BaseModel):
    model_config = ConfigDict(frozen=True)

    spreading_factor: int
    bandwidth: int  # Hz

    def encode(self) -> str:
        return f"SF{self.spreading_factor}BW{self.bandwidth // 1000}"


class FSKDataRate(BaseModel):
    model_config = ConfigDict(frozen=True)

    bitrate: int

    def encode(self) -> int:
        return self.bitrate


DataRate: TypeAlias = LoRaDataRate | FSKDataRate


def _parse_u32(token: str, name: str) -> int:
    if not _DIGITS.fullmatch(token) or int(token) > 0xFFFF_FFFF:
        raise InvalidValueError(f"parse {name} error: {token!r}")
    return int(token)


def encode_datarate(value: DataRate) -> str | int:
    return value.encode()


def decode_datarate(value: object) -> DataRate:
    """
    Decode a ``datr`` value.

    A string like ``SF12BW125`` is split on every alphabetic character and
    must give exactly 5 tokens, the 3rd being the spreading factor and the 5th
    the bandwidth in kHz. A number is an FSK bitrate.
    """
    if isinstance(value, (LoRaDataRate, FSKDataRate)):
        return value
    if isinstance(value, str):
        tokens = _ALPHABETIC.split(value)
        if len(tokens) != 5:
            raise InvalidValueError(f"invalid datarate string: {value!r}")
        sf = _parse_u32(tokens[2], "sf")
        bw = _parse_u32(tokens[4], "bw")
        return LoRaDataRate(spreading_factor=sf, bandwidth=bw * 1000)
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise InvalidValueError(f"invalid FSK bitrate: {value}")
        return FSKDataRate(bitrate=value)
    raise InvalidValueError(f"unexpected datarate type: {type(value).__name__}")


class Rxpk(BaseModel):
    time: datetime.datetime = Field(
        ..., description="UTC time of pkt RX, us precision, ISO 8601 'compact' format"
    )
    tmms: U64 | None = Field(
        None, description="GPS time of pkt RX, milliseconds since 06.Jan.1980"
    )
    tmst: U32 = Field(..., description="Internal timestamp of 'RX finished' event")
    freq: float = Field(..., description="RX central frequency in MHz")
    chan: int = Field(..., description="Concentrator IF channel used for RX")
    rfch: int = Field(..., description="Concentrator RF chain used for RX")
    stat: CRC = Field(..., description="CRC status: 1 = OK, -1 = fail, 0 = no CRC")
    modu: Modulation = Field(..., description="Modulation identifier LORA or FSK")
    datr: DataRate = Field(..., description="LoRa datarate (SF12BW500) or FSK bitrate")
    codr: CodeRate | None = Field(None, description="LoRa ECC coding rate")
    rssi: int = Field(..., description="RSSI in dBm, 1 dB precision")
    lsnr: float | None = Field(None, description="LoRa SNR ratio in dB")
    size: U8 = Field(..., description="RF packet payload size in bytes")
    data: str = Field(..., description="Base64 encoded RF packet payload, padded")

    @field_validator("time", mode="before")
    @classmethod
    def _decode_time(cls, value: Any) -> Any:  # pyright: ignore[reportExplicitAny, reportAny]
        if isinstance(value, str):
            return parse_compact_time(value)
        return value  # pyright: ignore[reportAny]

    @field_validator("modu", mode="before")
    @classmethod
    def _decode_modu(cls, value: object) -> Modulation:
        return Modulation.decode(value)

    @field_validator("datr", mode="before")
    @classmethod
    def _decode_datr(cls, value: object) -> DataRate:
        return decode_datarate(value)

    @field_validator("codr", mode="before")
    @classmethod
    def _decode_codr(cls, value: object) -> CodeRate | None:
        return CodeRate.decode(value)

    @field_serializer("time")
    def _encode_time(self, value: datetime.datetime) -> str:
        return format_compact_time(value)

    @field_serializer("datr")
    def _encode_datr(self, value: DataRate) -> str | int:
        return encode_datarate(value)

    @field_serializer("codr")
    def _encode_codr(self, value: CodeRate | None) -> str | None:
        return value.encode() if value is not None else None

    @model_serializer(mode="wrap")
    def _skip_missing_tmms(
        self, handler: SerializerFunctionWrapHandler
    ) -> dict[str, Any]:  # pyright: ignore[reportExplicitAny]
        data: dict[str, Any] = handler(self)  # pyright: ignore[reportExplicitAny]
        if self.tmms is None:
            _ = data.pop("tmms", None)
        return data


class Stat(BaseModel):
    time: datetime.datetime = Field(
        ..., description="UTC 'system' time of the gateway, ISO 8601 'expanded' format"
    )
    lati: float = Field(0.0, description="GPS latitude of the gateway in degree, N is +")
    long: float = Field(0.0, description="GPS longitude of the gateway in degree, E is +")
    alti: int = Field(0, description="GPS altitude of the gateway in meter")
    rxnb: int = Field(0, description="Number of radio packets received")
    rxok: int = Field(0, description="Number of radio packets received with a valid PHY CRC")
    rxfw: int = Field(0, description="Number of radio packets forwarded")
    ackr: float = Field(0.0, description="Percentage of upstream datagrams acknowledged")
    dwnb: int = Field(0, description="Number of downlink datagrams received")
    txnb: int = Field(0, description="Number of packets emitted")

    @field_validator("time", mode="before")
    @classmethod
    def _decode_time(cls, value: Any) -> Any:  # pyright: ignore[reportExplicitAny, reportAny]
        if isinstance(value, str):
            return parse_expanded_time(value)
        return value  # pyright: ignore[reportAny]

    @field_serializer("time")
    def _encode_time(self, value: datetime.datetime) -> str:
        return format_expanded_time(value)


class Txpk(BaseModel):
    imme: StrictBool | None = Field(
        None, description="Send packet immediately (ignores tmst & tmms)"
    )
    tmst: U32 | None = Field(None, description="Send packet on a certain timestamp value")
    tmms: U64 | None = Field(None, description="Send packet at a certain GPS time")
    freq: float = Field(..., description="TX central frequency in MHz")
    rfch: U8 = Field(..., description="Concentrator RF chain used for TX")
    powe: U8 = Field(..., description="TX output power in dBm")
    modu: Modulation = Field(..., description="Modulation identifier LORA or FSK")
    datr: DataRate = Field(..., description="LoRa datarate (SF12BW500) or FSK bitrate")
    codr: CodeRate | None = Field(None, description="LoRa ECC coding rate identifier")
    fdev: U32 | None = Field(None, description="FSK frequency deviation in Hz")
    ipol: StrictBool | None = Field(None, description="LoRa polarization inversion")
    prea: U8 | None = Field(None, description="RF preamble size")
    size: U8 = Field(..., description="RF packet payload size in bytes")
    data: str = Field(..., description="Base64 encoded RF packet payload")
    ncrc: StrictBool | None = Field(None, description="Disable the physical layer CRC")

    @field_validator("modu", mode="before")
    @classmethod
    def _decode_modu(cls, value: object) -> Modulation:
        return Modulation.decode(value)

    @field_validator("datr", mode="before")
    @classmethod
    def _decode_datr(cls, value: object) -> DataRate:
        return decode_datarate(value)

    @field_validator("codr", mode="before")
    @classmethod
    def _decode_codr(cls, value: object) -> CodeRate | None:
        return CodeRate.decode(value)

    @field_serializer("datr")
    def _encode_datr(self, value: DataRate) -> str | int:
        return encode_datarate(value)

    @field_serializer("codr")
    def _encode_codr(self, value: CodeRate | None) -> str | None:
        return value.encode() if value is not None else None


class PushDataPayload(BaseModel):
    rxpk: list[Rxpk] = Field(default_factory=list, description="Received packet(s)")
    stat: Stat | None = Field(None, description="Gateway status")


class PullRespPayload(BaseModel):
    txpk: Txpk = Field(..., description="Packet to emit")


class TxAckError(BaseModel):
    error: str = Field("", description="Empty when the packet was scheduled, else the reason")


class TxAckPayload(BaseModel):
    txpk_ack: TxAckError = Field(default_factory=TxAckError)
