"""
Control-plane messages exchanged with the radio-facing side of the bridge.

Field names follow the ChirpStack gateway API (``gw`` package). Every message
converts to and from a JSON friendly dict: bytes are base64 strings,
timestamps ISO 8601 strings and durations ``{"seconds", "nanos"}`` objects.
"""

import abc
import base64
import datetime
from abc import abstractmethod
from enum import IntEnum
from typing import Any, Self, TypeAlias, override

DictMessage: TypeAlias = dict[str, Any]  # pyright: ignore[reportExplicitAny]


def try_int(data: DictMessage, key: str, default: int = 0) -> int:
    try:
        return int(data.get(key, default))  # pyright: ignore[reportAny]
    except (TypeError, ValueError):
        return default


def try_float(data: DictMessage, key: str, default: float = 0.0) -> float:
    try:
        return float(data.get(key, default))  # pyright: ignore[reportAny]
    except (TypeError, ValueError):
        return default


def try_bool(data: DictMessage, key: str, default: bool = False) -> bool:
    value = data.get(key, default)
    return value if isinstance(value, bool) else default


def try_dict(data: DictMessage, key: str) -> DictMessage | None:
    value = data.get(key)
    return value if isinstance(value, dict) else None  # pyright: ignore[reportUnknownVariableType]


def bytes_to_str(value: bytes) -> str:
    return base64.b64encode(value).decode()


def str_to_bytes(value: object) -> bytes:
    if not value or not isinstance(value, str):
        return b""
    return base64.b64decode(value)


def time_to_str(value: datetime.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def str_to_time(value: object) -> datetime.datetime | None:
    if not value or not isinstance(value, str):
        return None
    return datetime.datetime.fromisoformat(value)


def duration_to_dict(value: datetime.timedelta | None) -> dict[str, int] | None:
    if value is None:
        return None
    return {
        "seconds": value.days * 86_400 + value.seconds,
        "nanos": value.microseconds * 1000,
    }


def dict_to_duration(value: DictMessage | None) -> datetime.timedelta | None:
    if value is None:
        return None
    return datetime.timedelta(
        seconds=try_int(value, "seconds"),
        microseconds=try_int(value, "nanos") // 1000,
    )


class AbstractMessage(abc.ABC):
    @abstractmethod
    def to_dict(self) -> DictMessage:
        return {}

    @classmethod
    @abstractmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls()

    @override
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AbstractMessage) or type(other) is not type(self):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None  # pyright: ignore[reportAssignmentType]

    @override
    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.to_dict()!r})"


class CrcStatus(IntEnum):
    """
    CRC status reported by the concentrator

    - NO_CRC: the packet has no CRC
    - BAD_CRC: the CRC check failed
    - CRC_OK: the CRC check passed
    """

    NO_CRC = 0
    BAD_CRC = 1
    CRC_OK = 2


class ModulationKind(IntEnum):
    LORA = 0
    FSK = 1


class DownlinkTiming(IntEnum):
    """
    When a downlink must be emitted

    - IMMEDIATELY: as soon as possible
    - DELAY: relative to the concentrator counter stored in the context
    - GPS_EPOCH: at a GPS time
    """

    IMMEDIATELY = 0
    DELAY = 1
    GPS_EPOCH = 2


class LoRaModulationInfo(AbstractMessage):
    def __init__(
        self,
        bandwidth: int = 0,
        spreading_factor: int = 0,
        code_rate: str = "",
        polarization_inversion: bool = False,
    ) -> None:
        super().__init__()
        self.bandwidth: int = bandwidth
        self.spreading_factor: int = spreading_factor
        self.code_rate: str = code_rate
        self.polarization_inversion: bool = polarization_inversion

    @override
    def to_dict(self) -> DictMessage:
        return {
            "bandwidth": self.bandwidth,
            "spreading_factor": self.spreading_factor,
            "code_rate": self.code_rate,
            "polarization_inversion": self.polarization_inversion,
        }

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls(
            try_int(data, "bandwidth"),
            try_int(data, "spreading_factor"),
            str(data.get("code_rate", "") or ""),
            try_bool(data, "polarization_inversion"),
        )


class FSKModulationInfo(AbstractMessage):
    def __init__(self, frequency_deviation: int = 0, datarate: int = 0) -> None:
        super().__init__()
        self.frequency_deviation: int = frequency_deviation
        self.datarate: int = datarate

    @override
    def to_dict(self) -> DictMessage:
        return {
            "frequency_deviation": self.frequency_deviation,
            "datarate": self.datarate,
        }

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls(try_int(data, "frequency_deviation"), try_int(data, "datarate"))


ModulationInfo: TypeAlias = LoRaModulationInfo | FSKModulationInfo


def modulation_info_to_dict(data: DictMessage, info: ModulationInfo | None) -> None:
    if isinstance(info, LoRaModulationInfo):
        data["lora_modulation_info"] = info.to_dict()
    elif isinstance(info, FSKModulationInfo):
        data["fsk_modulation_info"] = info.to_dict()


def modulation_info_from_dict(data: DictMessage) -> ModulationInfo | None:
    if (lora := try_dict(data, "lora_modulation_info")) is not None:
        return LoRaModulationInfo.from_dict(lora)
    if (fsk := try_dict(data, "fsk_modulation_info")) is not None:
        return FSKModulationInfo.from_dict(fsk)
    return None


class UplinkTxInfo(AbstractMessage):
    def __init__(
        self,
        frequency: int = 0,
        modulation: ModulationKind = ModulationKind.LORA,
        modulation_info: ModulationInfo | None = None,
    ) -> None:
        super().__init__()
        self.frequency: int = frequency
        self.modulation: ModulationKind = modulation
        self.modulation_info: ModulationInfo | None = modulation_info

    @override
    def to_dict(self) -> DictMessage:
        data: DictMessage = {
            "frequency": self.frequency,
            "modulation": self.modulation.name,
        }
        modulation_info_to_dict(data, self.modulation_info)
        return data

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls(
            try_int(data, "frequency"),
            ModulationKind[str(data.get("modulation", "LORA"))],
            modulation_info_from_dict(data),
        )


class UplinkRxInfo(AbstractMessage):
    """
    Reception metadata of an uplink

    :attr time: gateway time of reception, None when the gateway has no clock
    :attr time_since_gps_epoch: GPS time of reception, None without GPS
    :attr context: opaque concentrator context, the 32-bit counter of the
        'RX finished' event in big endian
    """

    def __init__(
        self,
        gateway_id: bytes = b"",
        time: datetime.datetime | None = None,
        time_since_gps_epoch: datetime.timedelta | None = None,
        rssi: int = 0,
        lora_snr: float = 0.0,
        channel: int = 0,
        rf_chain: int = 0,
        board: int = 0,
        antenna: int = 0,
        context: bytes = b"",
        crc_status: CrcStatus = CrcStatus.NO_CRC,
    ) -> None:
        super().__init__()
        self.gateway_id: bytes = gateway_id
        self.time: datetime.datetime | None = time
        self.time_since_gps_epoch: datetime.timedelta | None = time_since_gps_epoch
        self.rssi: int = rssi
        self.lora_snr: float = lora_snr
        self.channel: int = channel
        self.rf_chain: int = rf_chain
        self.board: int = board
        self.antenna: int = antenna
        self.context: bytes = context
        self.crc_status: CrcStatus = crc_status

    @override
    def to_dict(self) -> DictMessage:
        return {
            "gateway_id": self.gateway_id.hex(),
            "time": time_to_str(self.time),
            "time_since_gps_epoch": duration_to_dict(self.time_since_gps_epoch),
            "rssi": self.rssi,
            "lora_snr": self.lora_snr,
            "channel": self.channel,
            "rf_chain": self.rf_chain,
            "board": self.board,
            "antenna": self.antenna,
            "context": bytes_to_str(self.context),
            "crc_status": self.crc_status.name,
        }

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls(
            gateway_id=bytes.fromhex(str(data.get("gateway_id", "") or "")),
            time=str_to_time(data.get("time")),
            time_since_gps_epoch=dict_to_duration(try_dict(data, "time_since_gps_epoch")),
            rssi=try_int(data, "rssi"),
            lora_snr=try_float(data, "lora_snr"),
            channel=try_int(data, "channel"),
            rf_chain=try_int(data, "rf_chain"),
            board=try_int(data, "board"),
            antenna=try_int(data, "antenna"),
            context=str_to_bytes(data.get("context")),
            crc_status=CrcStatus[str(data.get("crc_status", "NO_CRC"))],
        )


class UplinkFrame(AbstractMessage):
    def __init__(
        self,
        phy_payload: bytes = b"",
        tx_info: UplinkTxInfo | None = None,
        rx_info: UplinkRxInfo | None = None,
    ) -> None:
        super().__init__()
        self.phy_payload: bytes = phy_payload
        self.tx_info: UplinkTxInfo | None = tx_info
        self.rx_info: UplinkRxInfo | None = rx_info

    @override
    def to_dict(self) -> DictMessage:
        data: DictMessage = {"phy_payload": bytes_to_str(self.phy_payload)}
        if self.tx_info:
            data["tx_info"] = self.tx_info.to_dict()
        if self.rx_info:
            data["rx_info"] = self.rx_info.to_dict()
        return data

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        tx_info = try_dict(data, "tx_info")
        rx_info = try_dict(data, "rx_info")
        return cls(
            str_to_bytes(data.get("phy_payload")),
            UplinkTxInfo.from_dict(tx_info) if tx_info is not None else None,
            UplinkRxInfo.from_dict(rx_info) if rx_info is not None else None,
        )


class Location(AbstractMessage):
    def __init__(
        self, latitude: float = 0.0, longitude: float = 0.0, altitude: float = 0.0
    ) -> None:
        super().__init__()
        self.latitude: float = latitude
        self.longitude: float = longitude
        self.altitude: float = altitude

    @override
    def to_dict(self) -> DictMessage:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "altitude": self.altitude,
        }

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls(
            try_float(data, "latitude"),
            try_float(data, "longitude"),
            try_float(data, "altitude"),
        )


class GatewayStats(AbstractMessage):
    """Periodic counters of a gateway, aggregated since the previous report."""

    def __init__(
        self,
        gateway_id: bytes = b"",
        time: datetime.datetime | None = None,
        location: Location | None = None,
        rx_packets_received: int = 0,
        rx_packets_received_ok: int = 0,
        tx_packets_received: int = 0,
        tx_packets_emitted: int = 0,
    ) -> None:
        super().__init__()
        self.gateway_id: bytes = gateway_id
        self.time: datetime.datetime | None = time
        self.location: Location | None = location
        self.rx_packets_received: int = rx_packets_received
        self.rx_packets_received_ok: int = rx_packets_received_ok
        self.tx_packets_received: int = tx_packets_received
        self.tx_packets_emitted: int = tx_packets_emitted

    @override
    def to_dict(self) -> DictMessage:
        data: DictMessage = {
            "gateway_id": self.gateway_id.hex(),
            "time": time_to_str(self.time),
            "rx_packets_received": self.rx_packets_received,
            "rx_packets_received_ok": self.rx_packets_received_ok,
            "tx_packets_received": self.tx_packets_received,
            "tx_packets_emitted": self.tx_packets_emitted,
        }
        if self.location:
            data["location"] = self.location.to_dict()
        return data

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        location = try_dict(data, "location")
        return cls(
            gateway_id=bytes.fromhex(str(data.get("gateway_id", "") or "")),
            time=str_to_time(data.get("time")),
            location=Location.from_dict(location) if location is not None else None,
            rx_packets_received=try_int(data, "rx_packets_received"),
            rx_packets_received_ok=try_int(data, "rx_packets_received_ok"),
            tx_packets_received=try_int(data, "tx_packets_received"),
            tx_packets_emitted=try_int(data, "tx_packets_emitted"),
        )


class ImmediatelyTimingInfo(AbstractMessage):
    @override
    def to_dict(self) -> DictMessage:
        return {}

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls()


class DelayTimingInfo(AbstractMessage):
    def __init__(self, delay: datetime.timedelta | None = None) -> None:
        super().__init__()
        self.delay: datetime.timedelta = delay or datetime.timedelta(0)

    @override
    def to_dict(self) -> DictMessage:
        return {"delay": duration_to_dict(self.delay)}

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls(dict_to_duration(try_dict(data, "delay")))


class GpsEpochTimingInfo(AbstractMessage):
    def __init__(self, time_since_gps_epoch: datetime.timedelta | None = None) -> None:
        super().__init__()
        self.time_since_gps_epoch: datetime.timedelta = (
            time_since_gps_epoch or datetime.timedelta(0)
        )

    @override
    def to_dict(self) -> DictMessage:
        return {"time_since_gps_epoch": duration_to_dict(self.time_since_gps_epoch)}

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        return cls(dict_to_duration(try_dict(data, "time_since_gps_epoch")))


TimingInfo: TypeAlias = ImmediatelyTimingInfo | DelayTimingInfo | GpsEpochTimingInfo

_TIMING_INFO_KEYS: dict[str, type[TimingInfo]] = {
    "immediately_timing_info": ImmediatelyTimingInfo,
    "delay_timing_info": DelayTimingInfo,
    "gps_epoch_timing_info": GpsEpochTimingInfo,
}


class DownlinkTxInfo(AbstractMessage):
    """
    Transmission parameters of a downlink

    :attr frequency: TX frequency in Hz
    :attr power: TX power in dBm
    :attr context: opaque concentrator context, for DELAY timing the 32-bit
        counter value the delay is relative to
    """

    def __init__(
        self,
        frequency: int = 0,
        power: int = 0,
        modulation: ModulationKind = ModulationKind.LORA,
        modulation_info: ModulationInfo | None = None,
        board: int = 0,
        antenna: int = 0,
        context: bytes = b"",
        timing: DownlinkTiming = DownlinkTiming.IMMEDIATELY,
        timing_info: TimingInfo | None = None,
    ) -> None:
        super().__init__()
        self.frequency: int = frequency
        self.power: int = power
        self.modulation: ModulationKind = modulation
        self.modulation_info: ModulationInfo | None = modulation_info
        self.board: int = board
        self.antenna: int = antenna
        self.context: bytes = context
        self.timing: DownlinkTiming = timing
        self.timing_info: TimingInfo | None = timing_info

    @override
    def to_dict(self) -> DictMessage:
        data: DictMessage = {
            "frequency": self.frequency,
            "power": self.power,
            "modulation": self.modulation.name,
            "board": self.board,
            "antenna": self.antenna,
            "context": bytes_to_str(self.context),
            "timing": self.timing.name,
        }
        modulation_info_to_dict(data, self.modulation_info)
        for key, timing_type in _TIMING_INFO_KEYS.items():
            if isinstance(self.timing_info, timing_type):
                data[key] = self.timing_info.to_dict()
        return data

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        timing_info: TimingInfo | None = None
        for key, timing_type in _TIMING_INFO_KEYS.items():
            if (value := try_dict(data, key)) is not None:
                timing_info = timing_type.from_dict(value)
                break
        return cls(
            frequency=try_int(data, "frequency"),
            power=try_int(data, "power"),
            modulation=ModulationKind[str(data.get("modulation", "LORA"))],
            modulation_info=modulation_info_from_dict(data),
            board=try_int(data, "board"),
            antenna=try_int(data, "antenna"),
            context=str_to_bytes(data.get("context")),
            timing=DownlinkTiming[str(data.get("timing", "IMMEDIATELY"))],
            timing_info=timing_info,
        )


class DownlinkFrameItem(AbstractMessage):
    def __init__(
        self, phy_payload: bytes = b"", tx_info: DownlinkTxInfo | None = None
    ) -> None:
        super().__init__()
        self.phy_payload: bytes = phy_payload
        self.tx_info: DownlinkTxInfo | None = tx_info

    @override
    def to_dict(self) -> DictMessage:
        data: DictMessage = {"phy_payload": bytes_to_str(self.phy_payload)}
        if self.tx_info:
            data["tx_info"] = self.tx_info.to_dict()
        return data

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        tx_info = try_dict(data, "tx_info")
        return cls(
            str_to_bytes(data.get("phy_payload")),
            DownlinkTxInfo.from_dict(tx_info) if tx_info is not None else None,
        )


class DownlinkFrame(AbstractMessage):
    """
    Downlink handed to the radio-facing side

    :attr downlink_id: caller supplied identifier of the downlink operation
    :attr gateway_id: gateway that must emit the frame
    :attr items: transmission candidates, tried in order
    """

    def __init__(
        self,
        downlink_id: bytes = b"",
        gateway_id: bytes = b"",
        items: list[DownlinkFrameItem] | None = None,
    ) -> None:
        super().__init__()
        self.downlink_id: bytes = downlink_id
        self.gateway_id: bytes = gateway_id
        self.items: list[DownlinkFrameItem] = items or []

    @override
    def to_dict(self) -> DictMessage:
        return {
            "downlink_id": self.downlink_id.hex(),
            "gateway_id": self.gateway_id.hex(),
            "items": [item.to_dict() for item in self.items],
        }

    @override
    @classmethod
    def from_dict(cls, data: DictMessage) -> Self:
        items = data.get("items") or []
        return cls(
            bytes.fromhex(str(data.get("downlink_id", "") or "")),
            bytes.fromhex(str(data.get("gateway_id", "") or "")),
            [DownlinkFrameItem.from_dict(item) for item in items if isinstance(item, dict)],  # pyright: ignore[reportUnknownArgumentType, reportUnknownVariableType]
        )
