# stream_demux.py
"""
Incremental demultiplexer for WIPC streams.

Consumes arbitrarily chunked bytes, extracts frames and hands every byte that
is not part of a frame back as passthrough, in wire order. Resynchronizes on
the next magic after garbage. A magic split across two chunks is retained
(never flushed as passthrough) until the following chunk decides it.

Payload and passthrough views are memoryviews into the accumulator. They are
only guaranteed valid until the next feed() call; copy with bytes() to keep.
"""
from __future__ import annotations

import enum
import json
import logging
from typing import Callable, List, Optional

from stream_framing import (
    HEADER_SIZE,
    MAGIC,
    ChannelError,
    Frame,
    normalize_type,
    read_header,
)

DEFAULT_MAX_PAYLOAD_BYTES = 16 * 1024 * 1024


class OversizedFrame(ChannelError):
    def __init__(self, declared: int, limit: int) -> None:
        super().__init__(f"frame declares {declared} payload bytes, limit is {limit}")
        self.declared = declared
        self.limit = limit


class ChannelClosed(ChannelError):
    pass


class DemuxState(enum.Enum):
    SCANNING = "scanning"
    HEADER_WAIT = "header_wait"
    PAYLOAD_WAIT = "payload_wait"
    DISPATCH_READY = "dispatch_ready"


def _ignore(_item) -> None:
    return None


def partial_magic_suffix(buf: bytes, start: int, end: int) -> int:
    """Length (0-3) of the longest suffix of buf[start:end] that is a strict prefix of MAGIC."""
    for size in range(len(MAGIC) - 1, 0, -1):
        if end - size >= start and buf[end - size:end] == MAGIC[:size]:
            return size
    return 0


class StreamDemultiplexer:
    def __init__(self,
                 on_frame: Optional[Callable[[Frame], None]] = None,
                 on_passthrough: Optional[Callable[[memoryview], None]] = None,
                 max_payload_bytes: Optional[int] = DEFAULT_MAX_PAYLOAD_BYTES) -> None:
        self.on_frame = on_frame or _ignore
        self.on_passthrough = on_passthrough or _ignore
        # 0 or None disables the size guard
        self.max_payload_bytes = max_payload_bytes or None
        self._buffer = b""
        self._view = memoryview(self._buffer)
        self._offset = 0
        # chunks not yet joined into _buffer, while waiting on a known byte count
        self._pending: List[bytes] = []
        self._pending_len = 0
        self._wanted = 1
        self._state = DemuxState.SCANNING
        self._closed = False
        self._draining = False

    @property
    def state(self) -> DemuxState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        """Bytes received but not yet classified as passthrough or frame."""
        return len(self._buffer) - self._offset + self._pending_len

    def feed(self, chunk: bytes) -> None:
        if self._closed:
            raise ChannelClosed("demultiplexer is closed")
        if self._draining:
            raise RuntimeError("feed() called from inside a frame/passthrough callback")
        if not chunk:
            return
        self._pending.append(bytes(chunk))
        self._pending_len += len(self._pending[-1])
        if self.buffered < self._wanted:
            return
        self._join()
        self._draining = True
        try:
            self._drain()
        finally:
            self._draining = False

    def finish(self) -> bytes:
        """
        Signal end of stream. A retained partial magic can no longer complete, so
        it is emitted as passthrough. Bytes of an incomplete frame are returned.
        """
        if self._closed:
            return b""
        self._join()
        self._draining = True
        try:
            self._drain()
        finally:
            self._draining = False
        remaining = self._view[self._offset:]
        leftover = b""
        if len(remaining) and self._state is DemuxState.SCANNING:
            self._offset = len(self._buffer)
            self.on_passthrough(remaining)
        elif len(remaining):
            leftover = bytes(remaining)
            logging.warning(json.dumps({"event": "truncated_frame", "bytes": len(leftover)}))
        self.close()
        return leftover

    def close(self) -> None:
        self._clear()
        self._closed = True

    def reset(self) -> None:
        self._clear()
        self._closed = False

    def _clear(self) -> None:
        self._buffer = b""
        self._view = memoryview(self._buffer)
        self._offset = 0
        self._pending = []
        self._pending_len = 0
        self._wanted = 1
        self._state = DemuxState.SCANNING

    def _join(self) -> None:
        if not self._pending:
            return
        self._buffer = b"".join([self._view[self._offset:]] + self._pending)
        self._view = memoryview(self._buffer)
        self._offset = 0
        self._pending = []
        self._pending_len = 0

    def _drain(self) -> None:
        buf = self._buffer
        view = self._view
        end = len(buf)
        # if a callback raises, the next feed rescans from the committed offset
        self._wanted = 1

        while self._offset < end:
            pos = self._offset
            idx = buf.find(MAGIC, pos)
            if idx < 0:
                tail = partial_magic_suffix(buf, pos, end)
                self._state = DemuxState.SCANNING
                self._wanted = tail + 1
                if end - tail > pos:
                    self._offset = end - tail
                    self.on_passthrough(view[pos:end - tail])
                return

            if idx > pos:
                logging.debug(json.dumps({"event": "resync", "skipped": idx - pos}))
                self._offset = idx
                self.on_passthrough(view[pos:idx])
                pos = idx

            if end - pos < HEADER_SIZE:
                self._state = DemuxState.HEADER_WAIT
                self._wanted = HEADER_SIZE
                return

            type_byte, length = read_header(view[pos:pos + HEADER_SIZE])
            if self.max_payload_bytes is not None and length > self.max_payload_bytes:
                self._oversized(length)

            frame_size = HEADER_SIZE + length
            if end - pos < frame_size:
                self._state = DemuxState.PAYLOAD_WAIT
                self._wanted = frame_size
                return

            frame = Frame(type=normalize_type(type_byte),
                          payload=view[pos + HEADER_SIZE:pos + frame_size])
            self._offset = pos + frame_size
            self._state = DemuxState.DISPATCH_READY
            self.on_frame(frame)

        self._state = DemuxState.SCANNING
        self._wanted = 1
        # fully classified; drop our reference so old views keep only what they need
        self._buffer = b""
        self._view = memoryview(self._buffer)
        self._offset = 0

    def _oversized(self, length: int) -> None:
        limit = self.max_payload_bytes
        logging.warning(json.dumps({"event": "oversized_frame", "declared": length, "limit": limit}))
        self.close()
        raise OversizedFrame(length, limit)
