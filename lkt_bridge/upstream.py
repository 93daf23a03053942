import datetime
import logging
import math

from lkt_bridge.errors import InvalidValueError, MissingFieldError
from lkt_bridge.helpers import Clock, encode_payload, utc_now
from lkt_bridge.messages import (
    CrcStatus,
    FSKModulationInfo,
    GatewayStats,
    LoRaModulationInfo,
    UplinkFrame,
)
from lkt_bridge.packets import (
    CRC,
    CodeRate,
    DataRate,
    FSKDataRate,
    LoRaDataRate,
    Modulation,
    Rxpk,
    Stat,
)

CRC_STATUS: dict[CrcStatus, CRC] = {
    CrcStatus.NO_CRC: CRC.NO_CRC,
    CrcStatus.BAD_CRC: CRC.FAIL,
    CrcStatus.CRC_OK: CRC.OK,
}

CODE_RATES: dict[str, CodeRate] = {
    "4/5": CodeRate.LORA_4_5,
    "4/6": CodeRate.LORA_4_6,
    "4/7": CodeRate.LORA_4_7,
    "4/8": CodeRate.LORA_4_8,
}

U32_MAX = 0xFFFF_FFFF


def code_rate_from_str(code_rate: str) -> CodeRate | None:
    """Unknown coding rates are dropped, they never become ``CodeRate.UNDEFINED``."""
    return CODE_RATES.get(code_rate)


def saturate_u32(value: float) -> int:
    """Truncate to an unsigned 32-bit integer, clamping out of range values; NaN is 0."""
    if math.isnan(value):
        return 0
    if math.isinf(value):
        return U32_MAX if value > 0 else 0
    return min(max(int(value), 0), U32_MAX)


def tmst_from_context(context: bytes) -> int:
    """Concentrator counter of the 'RX finished' event, stored big endian in the context."""
    if len(context) != 4:
        raise InvalidValueError(f"expected a 4 bytes context, got: {len(context)}")
    return int.from_bytes(context, "big")


def rxpk_from_uplink_frame(frame: UplinkFrame, clock: Clock = utc_now) -> Rxpk:
    """
    Convert an uplink frame into the rxpk the packet forwarder would have sent.

    :param frame: uplink with its rx_info and tx_info
    :param clock: read when the gateway did not timestamp the reception

    :raises MissingFieldError: rx_info, tx_info or modulation_info missing
    :raises InvalidValueError: the context is not a 32-bit counter, or the
        GPS time is negative
    """
    rx_info = frame.rx_info
    if rx_info is None:
        raise MissingFieldError("rx_info must not be None")

    tx_info = frame.tx_info
    if tx_info is None:
        raise MissingFieldError("tx_info must not be None")

    info = tx_info.modulation_info
    datr: DataRate
    if isinstance(info, LoRaModulationInfo):
        modu = Modulation.LORA
        datr = LoRaDataRate(
            spreading_factor=info.spreading_factor, bandwidth=info.bandwidth
        )
        codr = code_rate_from_str(info.code_rate)
        lsnr: float | None = rx_info.lora_snr
    elif isinstance(info, FSKModulationInfo):
        modu = Modulation.FSK
        datr = FSKDataRate(bitrate=info.datarate)
        codr = None
        lsnr = None
    else:
        raise MissingFieldError("modulation_info must not be None")

    tmms = None
    if rx_info.time_since_gps_epoch is not None:
        gps = rx_info.time_since_gps_epoch
        if gps < datetime.timedelta(0):
            raise InvalidValueError(f"negative time_since_gps_epoch: {gps}")
        seconds = gps.days * 86_400 + gps.seconds
        tmms = seconds * 1000 + gps.microseconds // 1000

    rxpk = Rxpk(
        time=rx_info.time if rx_info.time is not None else clock(),
        tmms=tmms,
        tmst=tmst_from_context(rx_info.context),
        freq=tx_info.frequency / 1_000_000,
        chan=rx_info.channel,
        rfch=rx_info.rf_chain,
        stat=CRC_STATUS[rx_info.crc_status],
        modu=modu,
        datr=datr,
        codr=codr,
        rssi=rx_info.rssi,
        lsnr=lsnr,
        # the wire field is a single byte, larger payloads wrap
        size=len(frame.phy_payload) & 0xFF,
        data=encode_payload(frame.phy_payload),
    )
    logging.debug(f"rxpk: {rxpk.model_dump_json()}")
    return rxpk


def stat_from_gateway_stats(stats: GatewayStats, clock: Clock = utc_now) -> Stat:
    """Convert gateway statistics into a stat object; rxfw and ackr are always 0."""
    location = stats.location
    latitude = location.latitude if location else 0.0
    longitude = location.longitude if location else 0.0
    altitude = location.altitude if location else 0.0

    stat = Stat(
        time=stats.time if stats.time is not None else clock(),
        lati=latitude,
        long=longitude,
        alti=saturate_u32(altitude),
        rxnb=stats.rx_packets_received,
        rxok=stats.rx_packets_received_ok,
        rxfw=0,
        ackr=0.0,
        dwnb=stats.tx_packets_received,
        txnb=stats.tx_packets_emitted,
    )
    logging.debug(f"stat: {stat.model_dump_json()}")
    return stat
