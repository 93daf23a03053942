"""
pytest configuration and fixtures for the packet forwarder codec tests.

Provides:
- Hypothesis profiles (HYPOTHESIS_PROFILE=ci|dev)
- a fixed clock and the gateway/downlink ids used by the reference vectors
- LoRa and FSK uplink frames
"""

import datetime
import os

import pytest
from hypothesis import settings

from lkt_bridge.messages import (
    CrcStatus,
    FSKModulationInfo,
    LoRaModulationInfo,
    ModulationKind,
    UplinkFrame,
    UplinkRxInfo,
    UplinkTxInfo,
)

settings.register_profile("default", max_examples=100, deadline=None)
settings.register_profile("ci", max_examples=500, deadline=None)
settings.register_profile("dev", max_examples=10, deadline=None)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.UTC)
GATEWAY_ID = bytes([1, 2, 3, 4, 5, 6, 7, 8])
DOWNLINK_ID = bytes(16)
TOKEN = 123


@pytest.fixture
def gateway_id() -> bytes:
    return GATEWAY_ID


@pytest.fixture
def downlink_id() -> bytes:
    return DOWNLINK_ID


@pytest.fixture
def fixed_clock():
    """Clock stuck on 2024-05-06 07:08:09.250 UTC."""
    now = datetime.datetime(2024, 5, 6, 7, 8, 9, 250_000, tzinfo=datetime.UTC)
    return lambda: now


def make_rx_info(**kwargs) -> UplinkRxInfo:
    values = {
        "gateway_id": GATEWAY_ID,
        "time": EPOCH,
        "time_since_gps_epoch": datetime.timedelta(seconds=1),
        "rssi": -160,
        "lora_snr": 5.5,
        "channel": 1,
        "rf_chain": 1,
        "board": 2,
        "antenna": 3,
        "context": bytes([1, 2, 3, 4]),
        "crc_status": CrcStatus.CRC_OK,
    }
    values.update(kwargs)
    return UplinkRxInfo(**values)


@pytest.fixture
def lora_uplink() -> UplinkFrame:
    return UplinkFrame(
        phy_payload=bytes([1, 2, 3]),
        tx_info=UplinkTxInfo(
            frequency=868_300_000,
            modulation=ModulationKind.LORA,
            modulation_info=LoRaModulationInfo(
                bandwidth=125_000,
                spreading_factor=12,
                code_rate="4/5",
                polarization_inversion=True,
            ),
        ),
        rx_info=make_rx_info(),
    )


@pytest.fixture
def fsk_uplink() -> UplinkFrame:
    return UplinkFrame(
        phy_payload=bytes([1, 2, 3]),
        tx_info=UplinkTxInfo(
            frequency=868_300_000,
            modulation=ModulationKind.FSK,
            modulation_info=FSKModulationInfo(datarate=50_000),
        ),
        rx_info=make_rx_info(rf_chain=2, lora_snr=0.0),
    )
