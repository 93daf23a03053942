import base64
import binascii
import datetime
from collections.abc import Callable

from lkt_bridge.errors import InvalidValueError

COMPACT_TIME_STR = "%Y-%m-%dT%H:%M:%S"
EXPANDED_TIME_STR = "%Y-%m-%d %H:%M:%S %Z"

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    # naive datetimes are taken as UTC, never as local time
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


def format_compact_time(value: datetime.datetime) -> str:
    """
    ISO 8601 'compact' time of an rxpk, e.g. ``2013-03-31T16:21:17.528002+00:00``.

    The fraction is dropped when zero, written with 3 digits when the value is
    millisecond aligned and with 6 digits otherwise.
    """
    value = _as_utc(value)
    fraction = ""
    if value.microsecond % 1000:
        fraction = f".{value.microsecond:06d}"
    elif value.microsecond:
        fraction = f".{value.microsecond // 1000:03d}"
    return f"{value.strftime(COMPACT_TIME_STR)}{fraction}+00:00"


def parse_compact_time(value: str) -> datetime.datetime:
    try:
        return _as_utc(datetime.datetime.fromisoformat(value))
    except ValueError as e:
        raise InvalidValueError(f"invalid compact time {value!r}: {e}") from e


def format_expanded_time(value: datetime.datetime) -> str:
    """ISO 8601 'expanded' time of a stat object, e.g. ``2014-01-12 08:59:28 UTC``."""
    return _as_utc(value).strftime(EXPANDED_TIME_STR)


def parse_expanded_time(value: str) -> datetime.datetime:
    try:
        parsed = datetime.datetime.strptime(value, EXPANDED_TIME_STR)
    except ValueError as e:
        raise InvalidValueError(f"invalid expanded time {value!r}: {e}") from e
    return parsed.replace(tzinfo=datetime.UTC)


def encode_payload(data: bytes) -> str:
    """Standard base64 alphabet, padded."""
    return base64.b64encode(data).decode()


def decode_payload(data: str) -> bytes:
    """Decode a base64 payload, padding optional."""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except binascii.Error as e:
        raise InvalidValueError(f"base64 decode payload error: {e}") from e
