import logging

from pydantic import BaseModel, field_validator


def _validate_hex(value: str, size: int) -> str:
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        raise ValueError(f"{value!r} is not an hex string") from None
    if len(raw) != size:
        raise ValueError(f"expected {size} bytes, got: {len(raw)}")
    return value.lower()


class ConfigGateway(BaseModel):
    gateway_id: str = "0000000000000000"

    @field_validator("gateway_id")
    @classmethod
    def _check_gateway_id(cls, value: str) -> str:
        return _validate_hex(value, 8)

    @property
    def gateway_eui(self) -> bytes:
        return bytes.fromhex(self.gateway_id)


class ConfigDownlink(BaseModel):
    downlink_id: str = "00" * 16

    @field_validator("downlink_id")
    @classmethod
    def _check_downlink_id(cls, value: str) -> str:
        return _validate_hex(value, 16)


class ConfigLogging(BaseModel):
    level: str = "INFO"
    show_path: bool = False

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        if value.upper() not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {value}")
        return value.upper()


class Config(BaseModel):
    gateway: ConfigGateway = ConfigGateway()
    downlink: ConfigDownlink = ConfigDownlink()
    logging: ConfigLogging = ConfigLogging()
