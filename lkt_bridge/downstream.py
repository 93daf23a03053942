import datetime
import logging

from lkt_bridge.errors import InvalidValueError, MissingFieldError
from lkt_bridge.helpers import decode_payload
from lkt_bridge.messages import (
    DelayTimingInfo,
    DownlinkFrame,
    DownlinkFrameItem,
    DownlinkTiming,
    DownlinkTxInfo,
    FSKModulationInfo,
    GpsEpochTimingInfo,
    ImmediatelyTimingInfo,
    LoRaModulationInfo,
    ModulationKind,
)
from lkt_bridge.packets import FSKDataRate, LoRaDataRate, Modulation, Txpk


def set_timing(tx_info: DownlinkTxInfo, txpk: Txpk) -> None:
    """
    Resolve when the txpk must be emitted: imme, then tmst, then tmms.

    For tmst the delay stays 0 and the raw counter goes into the context,
    the gateway side resolves the emission time from it.
    """
    if txpk.imme:
        tx_info.timing = DownlinkTiming.IMMEDIATELY
        tx_info.timing_info = ImmediatelyTimingInfo()
    elif txpk.tmst is not None:
        tx_info.timing = DownlinkTiming.DELAY
        tx_info.timing_info = DelayTimingInfo(delay=datetime.timedelta(0))
        tx_info.context = txpk.tmst.to_bytes(4, "big")
    elif txpk.tmms is not None:
        try:
            gps_time = datetime.timedelta(milliseconds=txpk.tmms)
        except OverflowError as e:
            raise InvalidValueError(f"tmms out of range: {txpk.tmms}") from e
        tx_info.timing = DownlinkTiming.GPS_EPOCH
        tx_info.timing_info = GpsEpochTimingInfo(time_since_gps_epoch=gps_time)
    else:
        raise MissingFieldError("no timing information found")


def set_modulation(tx_info: DownlinkTxInfo, txpk: Txpk) -> None:
    match txpk.modu:
        case Modulation.LORA:
            if not isinstance(txpk.datr, LoRaDataRate):
                raise MissingFieldError("LoRa datarate expected")
            if txpk.codr is None:
                raise MissingFieldError("codr must not be None")
            tx_info.modulation = ModulationKind.LORA
            tx_info.modulation_info = LoRaModulationInfo(
                bandwidth=txpk.datr.bandwidth,
                spreading_factor=txpk.datr.spreading_factor,
                # CodeRate.UNDEFINED maps to the empty string
                code_rate=txpk.codr.value,
                polarization_inversion=txpk.ipol if txpk.ipol is not None else True,
            )
        case Modulation.FSK:
            if not isinstance(txpk.datr, FSKDataRate):
                raise MissingFieldError("FSK datarate expected")
            if txpk.fdev is None:
                raise MissingFieldError("fdev must not be None")
            tx_info.modulation = ModulationKind.FSK
            tx_info.modulation_info = FSKModulationInfo(
                frequency_deviation=txpk.fdev, datarate=txpk.datr.bitrate
            )


def txpk_to_downlink_frame(
    txpk: Txpk, downlink_id: bytes, gateway_id: bytes
) -> DownlinkFrame:
    """
    Convert a txpk received in a PULL_RESP into a downlink frame with one item.

    :param txpk: decoded txpk
    :param downlink_id: identifier of the downlink operation, copied as is
    :param gateway_id: gateway that must emit the frame

    :raises MissingFieldError: no timing selector, datarate/modulation
        mismatch, or codr/fdev missing for the modulation
    :raises InvalidValueError: the payload is not valid base64, or tmms
        does not fit a timedelta
    """
    tx_info = DownlinkTxInfo(
        frequency=int(txpk.freq * 1_000_000),
        power=txpk.powe,
    )
    set_timing(tx_info, txpk)
    set_modulation(tx_info, txpk)

    frame = DownlinkFrame(
        downlink_id=downlink_id,
        gateway_id=gateway_id,
        items=[
            DownlinkFrameItem(
                phy_payload=decode_payload(txpk.data),
                tx_info=tx_info,
            )
        ],
    )
    logging.debug(
        f"downlink {downlink_id.hex()} for {gateway_id.hex()}: {tx_info.timing.name}, {txpk.modu}, {tx_info.frequency} Hz"
    )
    return frame
