# frame_dispatch.py
"""
Named-type dispatch for decoded frames. Any slot left as None ignores its type.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional

from stream_framing import BytesLike, ChannelError, Frame, MessageType


class UnknownMessageType(ChannelError):
    def __init__(self, type_byte: int) -> None:
        super().__init__(f"unknown frame type: 0x{int(type_byte):02x}")
        self.type_byte = int(type_byte)


def decode_json(payload: BytesLike) -> Any:
    return json.loads(bytes(payload).decode("utf-8"))


@dataclass
class FrameHandlers:
    on_open: Optional[Callable[[], None]] = None
    on_close: Optional[Callable[[], None]] = None
    on_call: Optional[Callable[[BytesLike], None]] = None
    on_data: Optional[Callable[[BytesLike], None]] = None

    def dispatch(self, frame: Frame) -> None:
        kind = frame.message_type
        if kind is MessageType.OPEN:
            if self.on_open:
                self.on_open()
        elif kind is MessageType.CLOSE:
            if self.on_close:
                self.on_close()
        elif kind is MessageType.CALL:
            if self.on_call:
                self.on_call(frame.payload)
        elif kind is MessageType.DATA:
            if self.on_data:
                self.on_data(frame.payload)
        else:
            raise UnknownMessageType(frame.type)
