"""
OSC Packet Codec

Stateless encoding of a single-argument OSC message.

Only the two argument types the display engine needs are supported:
32-bit signed integers (tag `i`) and UTF-8 strings (tag `s`). Framing
(null termination, 4-byte padding, big-endian ints) is done by python-osc.

Usage:
    packet = encode_packet(connect_address(3, 1), 1)
    address, value = decode_packet(packet)
"""

from typing import Tuple, Union

from pythonosc.osc_message import OscMessage, ParseError
from pythonosc.osc_message_builder import BuildError, OscMessageBuilder

from .errors import EncodingError

OscArgument = Union[int, str]

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

# Resolume-style address patterns
TEXT_ADDRESS = "/composition/layers/{layer}/clips/{slot}/video/source/textgenerator/text/params/lines"
CONNECT_ADDRESS = "/composition/layers/{layer}/clips/{slot}/connect"
PING_ADDRESS = "/ping"


def text_address(layer: int, slot: int) -> str:
    """Address of the text-generator `lines` parameter for a clip."""
    return TEXT_ADDRESS.format(layer=layer, slot=slot)


def connect_address(layer: int, slot: int) -> str:
    """Address that activates (connects) a clip."""
    return CONNECT_ADDRESS.format(layer=layer, slot=slot)


def _type_tag(value: OscArgument) -> str:
    # bool is an int subclass but has its own OSC tags; not supported here
    if isinstance(value, bool):
        raise EncodingError.unsupported_type(value)
    if isinstance(value, int):
        if not INT32_MIN <= value <= INT32_MAX:
            raise EncodingError(
                f"Integer {value} does not fit in 32 bits", EncodingError.OUT_OF_RANGE
            )
        return OscMessageBuilder.ARG_TYPE_INT
    if isinstance(value, str):
        return OscMessageBuilder.ARG_TYPE_STRING
    raise EncodingError.unsupported_type(value)


def encode_packet(address: str, value: OscArgument) -> bytes:
    """
    Encode an address and one argument into an OSC datagram.

    Args:
        address: OSC address path, must start with '/'
        value: int (encoded as int32) or str (encoded as UTF-8)

    Returns:
        Datagram bytes, length is always a multiple of 4

    Raises:
        EncodingError: unsupported argument type, int out of range or bad address
    """
    if not isinstance(address, str) or not address.startswith("/"):
        raise EncodingError(
            f"Invalid OSC address: {address!r}", EncodingError.INVALID_ADDRESS
        )

    builder = OscMessageBuilder(address=address)
    builder.add_arg(value, _type_tag(value))
    try:
        return builder.build().dgram
    except BuildError as e:
        raise EncodingError(str(e)) from e


def decode_packet(packet: bytes) -> Tuple[str, OscArgument]:
    """
    Decode a single-argument datagram produced by encode_packet.

    Used by diagnostics and tests.

    Raises:
        EncodingError: malformed datagram or not exactly one int/str argument
    """
    try:
        message = OscMessage(packet)
    except ParseError as e:
        raise EncodingError(f"Malformed OSC packet: {e}") from e

    params = message.params
    if len(params) != 1:
        raise EncodingError(f"Expected one argument, got {len(params)}")
    value = params[0]
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise EncodingError.unsupported_type(value)
    return message.address, value
