class CodecError(Exception):
    """Base class for every failure raised by the packet-forwarder codec."""


class FormatError(CodecError):
    """
    The datagram envelope is malformed

    - wrong buffer length
    - wrong protocol version byte
    - wrong or unknown identifier byte
    """


class InvalidValueError(CodecError, ValueError):
    """A field value could not be decoded (datarate, modulation, base64, JSON schema)."""


class MissingFieldError(CodecError):
    """A field required by the selected translation branch is absent or of the wrong variant."""
