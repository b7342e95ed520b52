# stream_framing.py
"""
WIPC frame codec: magic-prefixed, length-delimited frames for byte streams.

  offset  size  field
  0       4     magic ("WIPC")
  4       1     type
  5       4     payload length (uint32, little-endian)
  9       N     payload
"""
from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Optional, Tuple, Union

MAGIC = b"WIPC"
HEADER = struct.Struct("<4sBI")
HEADER_SIZE = HEADER.size  # 9
MAX_PAYLOAD = 0xFFFFFFFF

BytesLike = Union[bytes, bytearray, memoryview]


class ChannelError(Exception):
    """Base class for errors surfaced by a WIPC channel."""


class InvalidArgument(ValueError):
    pass


class MessageType(enum.IntEnum):
    OPEN = 0x00
    CLOSE = 0x01
    CALL = 0x02
    DATA = 0x03


class DecodeStatus(enum.Enum):
    INCOMPLETE = "incomplete"
    INVALID = "invalid"


INCOMPLETE = DecodeStatus.INCOMPLETE
INVALID = DecodeStatus.INVALID


def normalize_type(type_byte: int) -> int:
    try:
        return MessageType(type_byte)
    except ValueError:
        # reserved 0x04-0xFF: structurally valid, kept as a raw byte
        return type_byte


@dataclass(frozen=True)
class Frame:
    """
    One protocol message. A decoded frame's payload is a memoryview into the
    buffer it was decoded from; use copy() to get a frame that owns its bytes.
    """
    type: int
    payload: BytesLike = b""

    @property
    def message_type(self) -> Optional[MessageType]:
        try:
            return MessageType(self.type)
        except ValueError:
            return None

    def copy(self) -> "Frame":
        return Frame(type=self.type, payload=bytes(self.payload))

    def __len__(self) -> int:
        return HEADER_SIZE + len(self.payload)


def encode(type: int, payload: Optional[BytesLike] = None) -> bytes:
    body = b"" if payload is None else payload
    if not 0 <= int(type) <= 0xFF:
        raise InvalidArgument(f"message type out of range: {type}")
    length = body.nbytes if isinstance(body, memoryview) else len(body)
    if length > MAX_PAYLOAD:
        raise InvalidArgument(f"payload too large: {length} > {MAX_PAYLOAD}")
    return HEADER.pack(MAGIC, int(type), length) + body


def read_header(view: BytesLike) -> Tuple[int, int]:
    """Return (type, payload_length) from a buffer holding at least a full header."""
    _magic, type_byte, length = HEADER.unpack_from(view, 0)
    return type_byte, length


def decode(data: BytesLike) -> Union[Frame, DecodeStatus]:
    """
    Decode a single frame at the start of data.

    Returns INCOMPLETE when more bytes are needed, INVALID when data does not
    start with the magic. Never reads past 9 + length bytes; the payload is a
    view, so decoding is constant-time in payload size.
    """
    view = data if isinstance(data, memoryview) else memoryview(data)
    if len(view) < HEADER_SIZE:
        return INCOMPLETE
    if view[:4] != MAGIC:
        return INVALID
    type_byte, length = read_header(view)
    end = HEADER_SIZE + length
    if len(view) < end:
        return INCOMPLETE
    return Frame(type=normalize_type(type_byte), payload=view[HEADER_SIZE:end])
