import datetime
import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from conftest import GATEWAY_ID, TOKEN
from lkt_bridge import frames
from lkt_bridge.errors import FormatError, InvalidValueError
from lkt_bridge.frames import (
    PullAck,
    PullData,
    PullResp,
    PushAck,
    PushData,
    TxAck,
    generate_header,
    parse_header,
)
from lkt_bridge.packets import (
    CodeRate,
    GatewayPacketType,
    LoRaDataRate,
    Modulation,
    PullRespPayload,
    PushDataPayload,
    Stat,
    Txpk,
)
from lkt_bridge.upstream import rxpk_from_uplink_frame

TXPK_IMMEDIATELY = b"""{"txpk":{
    "imme":true,
    "freq":864.123456,
    "rfch":0,
    "powe":14,
    "modu":"LORA",
    "datr":"SF11BW125",
    "codr":"4/6",
    "ipol":false,
    "size":32,
    "data":"H3P3N2i9qc4yt7rK7ldqoeCVJGBybzPY5h1Dd7P7p8s="}}"""


class TestHeader:
    @pytest.mark.parametrize(
        "pkt_type, gateway_id, expected",
        [
            (GatewayPacketType.PKT_PUSH_DATA, GATEWAY_ID, [2, 0, 123, 0, 1, 2, 3, 4, 5, 6, 7, 8]),
            (GatewayPacketType.PKT_PUSH_ACK, None, [2, 0, 123, 1]),
            (GatewayPacketType.PKT_PULL_DATA, GATEWAY_ID, [2, 0, 123, 2, 1, 2, 3, 4, 5, 6, 7, 8]),
            (GatewayPacketType.PKT_PULL_RESP, None, [2, 0, 123, 3]),
            (GatewayPacketType.PKT_PULL_ACK, None, [2, 0, 123, 4]),
            (GatewayPacketType.PKT_TX_ACK, GATEWAY_ID, [2, 0, 123, 5, 1, 2, 3, 4, 5, 6, 7, 8]),
        ],
    )
    def test_generate(self, pkt_type, gateway_id, expected):
        assert generate_header(TOKEN, pkt_type, gateway_id) == bytes(expected)

    def test_token_is_big_endian(self):
        assert generate_header(0xABCD, GatewayPacketType.PKT_PUSH_ACK)[1:3] == b"\xab\xcd"

    @given(st.integers(min_value=0, max_value=0xFFFF))
    def test_token_round_trip(self, token):
        header = generate_header(token, GatewayPacketType.PKT_PULL_ACK)
        assert parse_header(header, GatewayPacketType.PKT_PULL_ACK)[0] == token

    def test_length_is_checked_before_version(self):
        with pytest.raises(FormatError, match="expected 4 bytes, got: 5"):
            parse_header(bytes([1, 0, 123, 1, 0]), GatewayPacketType.PKT_PUSH_ACK)

    def test_version_is_checked_before_identifier(self):
        with pytest.raises(FormatError, match="protocol version"):
            parse_header(bytes([1, 0, 123, 4]), GatewayPacketType.PKT_PUSH_ACK)

    def test_identifier(self):
        with pytest.raises(FormatError, match="invalid identifier: 4"):
            parse_header(bytes([2, 0, 123, 4]), GatewayPacketType.PKT_PUSH_ACK)

    def test_payload_required(self):
        with pytest.raises(FormatError, match="at least 5 bytes"):
            parse_header(bytes([2, 0, 123, 3]), GatewayPacketType.PKT_PULL_RESP, with_payload=True)


class TestPushData:
    def test_rxpk_lora(self, lora_uplink):
        push_data = PushData(
            random_token=TOKEN,
            gateway_id=GATEWAY_ID,
            payload=PushDataPayload(rxpk=[rxpk_from_uplink_frame(lora_uplink)]),
        )
        b = push_data.to_bytes()
        assert b[:12] == bytes([2, 0, 123, 0, 1, 2, 3, 4, 5, 6, 7, 8])
        assert b[12:].decode() == (
            '{"rxpk":[{"time":"1970-01-01T00:00:00+00:00","tmms":1000,"tmst":16909060,'
            '"freq":868.3,"chan":1,"rfch":1,"stat":1,"modu":"LORA","datr":"SF12BW125",'
            '"codr":"4/5","rssi":-160,"lsnr":5.5,"size":3,"data":"AQID"}],"stat":null}'
        )

    def test_rxpk_fsk(self, fsk_uplink):
        push_data = PushData(
            random_token=TOKEN,
            gateway_id=GATEWAY_ID,
            payload=PushDataPayload(rxpk=[rxpk_from_uplink_frame(fsk_uplink)]),
        )
        b = push_data.to_bytes()
        assert b[:12] == bytes([2, 0, 123, 0, 1, 2, 3, 4, 5, 6, 7, 8])
        assert b[12:].decode() == (
            '{"rxpk":[{"time":"1970-01-01T00:00:00+00:00","tmms":1000,"tmst":16909060,'
            '"freq":868.3,"chan":1,"rfch":2,"stat":1,"modu":"FSK","datr":50000,'
            '"codr":null,"rssi":-160,"lsnr":null,"size":3,"data":"AQID"}],"stat":null}'
        )

    def test_stat(self):
        stat = Stat(
            time=datetime.datetime(1970, 1, 1, tzinfo=datetime.UTC),
            lati=1.123,
            long=2.123,
            alti=3,
            rxnb=10,
            rxok=5,
            dwnb=14,
            txnb=7,
        )
        b = PushData(
            random_token=TOKEN, gateway_id=GATEWAY_ID, payload=PushDataPayload(stat=stat)
        ).to_bytes()
        assert b[12:].decode() == (
            '{"rxpk":[],"stat":{"time":"1970-01-01 00:00:00 UTC","lati":1.123,"long":2.123,'
            '"alti":3,"rxnb":10,"rxok":5,"rxfw":0,"ackr":0.0,"dwnb":14,"txnb":7}}'
        )

    def test_decode(self, lora_uplink):
        push_data = PushData(
            random_token=TOKEN,
            gateway_id=GATEWAY_ID,
            payload=PushDataPayload(rxpk=[rxpk_from_uplink_frame(lora_uplink)]),
        )
        assert PushData.from_bytes(push_data.to_bytes()) == push_data

    def test_decode_invalid_json(self):
        with pytest.raises(InvalidValueError):
            PushData.from_bytes(generate_header(TOKEN, GatewayPacketType.PKT_PUSH_DATA, GATEWAY_ID) + b"{")

    def test_gateway_id_length(self):
        with pytest.raises(ValueError):
            PushData(random_token=TOKEN, gateway_id=b"\x01\x02")


class TestAcks:
    def test_push_ack(self):
        assert PushAck.from_bytes(bytes([2, 0, 123, 1])).random_token == 123

    def test_pull_ack(self):
        assert PullAck.from_bytes(bytes([2, 0, 123, 4])).random_token == 123

    @pytest.mark.parametrize("envelope", [PushAck, PullAck])
    def test_header_only(self, envelope):
        with pytest.raises(FormatError):
            envelope.from_bytes(envelope(random_token=TOKEN).to_bytes() + b"{}")

    def test_push_ack_is_not_pull_ack(self):
        with pytest.raises(FormatError, match="invalid identifier"):
            PushAck.from_bytes(PullAck(random_token=TOKEN).to_bytes())

    def test_encode(self):
        assert PushAck(random_token=TOKEN).to_bytes() == bytes([2, 0, 123, 1])
        assert PullAck(random_token=TOKEN).to_bytes() == bytes([2, 0, 123, 4])


class TestPullData:
    def test_encode(self):
        pull_data = PullData(random_token=TOKEN, gateway_id=GATEWAY_ID)
        assert pull_data.to_bytes() == bytes([2, 0, 123, 2, 1, 2, 3, 4, 5, 6, 7, 8])

    def test_decode(self):
        pull_data = PullData.from_bytes(bytes([2, 0, 123, 2, 1, 2, 3, 4, 5, 6, 7, 8]))
        assert pull_data.random_token == TOKEN
        assert pull_data.gateway_id == GATEWAY_ID

    def test_decode_short(self):
        with pytest.raises(FormatError, match="expected 12 bytes"):
            PullData.from_bytes(bytes([2, 0, 123, 2, 1, 2, 3]))


class TestPullResp:
    def test_decode(self):
        pull_resp = PullResp.from_bytes(bytes([2, 0, 123, 3]) + TXPK_IMMEDIATELY)
        assert pull_resp.random_token == 123
        txpk = pull_resp.payload.txpk
        assert txpk.imme is True
        assert txpk.modu is Modulation.LORA
        assert txpk.datr == LoRaDataRate(spreading_factor=11, bandwidth=125_000)
        assert txpk.codr is CodeRate.LORA_4_6
        assert txpk.ipol is False

    def test_round_trip(self):
        pull_resp = PullResp.from_bytes(bytes([2, 0, 123, 3]) + TXPK_IMMEDIATELY)
        b = pull_resp.to_bytes()
        assert b[:4] == bytes([2, 0, 123, 3])
        assert json.loads(b[4:]) == json.loads(TXPK_IMMEDIATELY)
        assert PullResp.from_bytes(b) == pull_resp

    def test_encode_omits_absent_fields(self):
        txpk = Txpk(
            imme=True,
            freq=869.525,
            rfch=0,
            powe=27,
            modu=Modulation.LORA,
            datr=LoRaDataRate(spreading_factor=9, bandwidth=125_000),
            codr=CodeRate.LORA_4_5,
            size=3,
            data="AQID",
        )
        b = PullResp(random_token=TOKEN, payload=PullRespPayload(txpk=txpk)).to_bytes()
        assert b[4:].decode() == (
            '{"txpk":{"imme":true,"freq":869.525,"rfch":0,"powe":27,"modu":"LORA",'
            '"datr":"SF9BW125","codr":"4/5","size":3,"data":"AQID"}}'
        )

    def test_header_only(self):
        with pytest.raises(FormatError):
            PullResp.from_bytes(bytes([2, 0, 123, 3]))

    def test_version(self):
        with pytest.raises(FormatError, match="protocol version"):
            PullResp.from_bytes(bytes([1, 0, 123, 3]) + TXPK_IMMEDIATELY)

    def test_invalid_modulation(self):
        with pytest.raises(InvalidValueError):
            PullResp.from_bytes(bytes([2, 0, 123, 3]) + TXPK_IMMEDIATELY.replace(b"LORA", b"lora"))

    def test_invalid_datarate(self):
        with pytest.raises(InvalidValueError):
            PullResp.from_bytes(bytes([2, 0, 123, 3]) + TXPK_IMMEDIATELY.replace(b"SF11BW125", b"SF11"))

    def test_not_json(self):
        with pytest.raises(InvalidValueError):
            PullResp.from_bytes(bytes([2, 0, 123, 3]) + b"txpk")


class TestTxAck:
    def test_too_late(self):
        b = TxAck.for_error(TOKEN, GATEWAY_ID, "TOO_LATE").to_bytes()
        assert b[:12] == bytes([2, 0, 123, 5, 1, 2, 3, 4, 5, 6, 7, 8])
        assert b[12:].decode() == '{"txpk_ack":{"error":"TOO_LATE"}}'

    def test_success(self):
        b = TxAck.for_error(TOKEN, GATEWAY_ID).to_bytes()
        assert b[12:].decode() == '{"txpk_ack":{"error":""}}'

    def test_decode(self):
        tx_ack = TxAck.from_bytes(TxAck.for_error(TOKEN, GATEWAY_ID, "COLLISION_PACKET").to_bytes())
        assert tx_ack.error == "COLLISION_PACKET"
        assert tx_ack.gateway_id == GATEWAY_ID

    def test_decode_without_payload(self):
        tx_ack = TxAck.from_bytes(bytes([2, 0, 123, 5, 1, 2, 3, 4, 5, 6, 7, 8]))
        assert tx_ack.error == ""


class TestDecode:
    @pytest.mark.parametrize(
        "envelope",
        [
            PushData(random_token=TOKEN, gateway_id=GATEWAY_ID),
            PushAck(random_token=TOKEN),
            PullData(random_token=TOKEN, gateway_id=GATEWAY_ID),
            PullAck(random_token=TOKEN),
            TxAck.for_error(TOKEN, GATEWAY_ID, "TX_FREQ"),
        ],
    )
    def test_dispatch(self, envelope):
        decoded = frames.decode(envelope.to_bytes())
        assert type(decoded) is type(envelope)
        assert decoded == envelope

    def test_dispatch_pull_resp(self):
        decoded = frames.decode(bytes([2, 0, 123, 3]) + TXPK_IMMEDIATELY)
        assert isinstance(decoded, PullResp)

    def test_unknown_identifier(self):
        with pytest.raises(FormatError, match="invalid identifier: 6"):
            frames.decode(bytes([2, 0, 123, 6]))

    def test_too_short(self):
        with pytest.raises(FormatError):
            frames.decode(bytes([2, 0]))

    def test_version(self):
        with pytest.raises(FormatError, match="protocol version"):
            frames.decode(bytes([1, 0, 123, 1]))
