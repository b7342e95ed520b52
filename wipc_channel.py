# wipc_channel.py
"""
Duplex WIPC channel over a pair of byte streams (e.g. a child's stdout/stdin).

The receive side (feed/pump) and the send side (send) share no state beyond
the transport, so one thread may pump while another sends. Concurrent
senders are serialized by a lock.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import BinaryIO, Callable, Optional

from capture_log import CaptureLogger
from channel_config import ChannelConfig
from frame_dispatch import FrameHandlers, UnknownMessageType
from stream_demux import ChannelClosed, OversizedFrame, StreamDemultiplexer
from stream_framing import (
    HEADER_SIZE,
    MAGIC,
    BytesLike,
    ChannelError,
    Frame,
    encode,
    normalize_type,
    read_header,
)


def write_frame(writer: BinaryIO, type: int, payload: Optional[BytesLike] = None) -> None:
    writer.write(encode(type, payload))
    writer.flush()


def _read_exact(reader: BinaryIO, size: int) -> Optional[bytes]:
    parts = []
    remaining = size
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            return None  # EOF
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def read_frame(reader: BinaryIO, max_payload_bytes: Optional[int] = None) -> Optional[Frame]:
    """
    Blocking read of the next frame. Bytes before a magic are discarded.
    Returns None at EOF, including EOF in the middle of a frame. A
    max_payload_bytes of None or 0 disables the size check.
    """
    matched = 0
    while matched < len(MAGIC):
        b = _read_exact(reader, 1)
        if b is None:
            return None
        if b[0] == MAGIC[matched]:
            matched += 1
        else:
            matched = 1 if b[0] == MAGIC[0] else 0

    rest = _read_exact(reader, HEADER_SIZE - len(MAGIC))
    if rest is None:
        return None
    type_byte, length = read_header(MAGIC + rest)
    if max_payload_bytes and length > max_payload_bytes:
        raise OversizedFrame(length, max_payload_bytes)
    payload = _read_exact(reader, length) if length else b""
    if payload is None:
        return None
    return Frame(type=normalize_type(type_byte), payload=payload)


class Channel:
    def __init__(self,
                 reader: Optional[BinaryIO] = None,
                 writer: Optional[BinaryIO] = None,
                 handlers: Optional[FrameHandlers] = None,
                 on_passthrough: Optional[Callable[[memoryview], None]] = None,
                 config: Optional[ChannelConfig] = None,
                 capture: Optional[CaptureLogger] = None) -> None:
        self.config = config or ChannelConfig()
        self.handlers = handlers or FrameHandlers()
        self.on_passthrough = on_passthrough
        self.capture = capture
        self._reader = reader
        self._writer = writer
        self._send_lock = threading.Lock()
        self._closing = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None
        self.demux = StreamDemultiplexer(
            on_frame=self._handle_frame,
            on_passthrough=self._handle_passthrough,
            max_payload_bytes=self.config.max_payload_bytes,
        )

    @property
    def closed(self) -> bool:
        return self._closing.is_set() or self.demux.closed

    # --- outbound -----------------------------------------------------------
    def send(self, type: int, payload: Optional[BytesLike] = None) -> None:
        if self._writer is None:
            raise ChannelClosed("channel has no writer")
        data = encode(type, payload)
        with self._send_lock:
            # close() closes the writer under this lock
            if self._closing.is_set():
                raise ChannelClosed("channel is closed")
            self._writer.write(data)
            self._writer.flush()
            if self.capture:
                self.capture.write("out", Frame(type=normalize_type(type), payload=payload or b""))

    def send_json(self, type: int, msg) -> None:
        self.send(type, json.dumps(msg).encode("utf-8"))

    # --- inbound ------------------------------------------------------------
    def feed(self, chunk: BytesLike) -> None:
        self.demux.feed(chunk)

    def pump(self) -> None:
        """
        Read and demultiplex until EOF or close(). Any error raised while reading or
        dispatching closes the channel and propagates.
        """
        if self._reader is None:
            raise ChannelClosed("channel has no reader")
        read = getattr(self._reader, "read1", None) or self._reader.read
        size = self.config.read_chunk_size
        try:
            while not self._closing.is_set():
                data = read(size)
                if not data:
                    leftover = self.demux.finish()
                    if leftover:
                        logging.warning(json.dumps({"event": "eof_mid_frame", "bytes": len(leftover)}))
                    break
                self.demux.feed(data)
        except OversizedFrame as e:
            self.error = e
            logging.error(json.dumps({"event": "channel_closed", "reason": "oversized_frame",
                                      "declared": e.declared, "limit": e.limit}))
            self._closing.set()
            raise
        except Exception as e:
            self.error = e
            logging.error(json.dumps({"event": "channel_closed", "reason": type(e).__name__, "detail": str(e)}))
            self._closing.set()
            raise
        finally:
            if self._closing.is_set() and not self.demux.closed:
                self.demux.close()

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self._pump_thread, name="wipc-pump", daemon=True)
        self._thread.start()
        return self._thread

    def wait(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def close(self) -> None:
        """
        Stop the channel. Safe from any thread, including frame handlers; the pump
        notices on its next iteration. Closes the writer so the peer sees EOF.
        """
        self._closing.set()
        if self._writer is not None:
            with self._send_lock:
                try:
                    self._writer.close()
                except (BrokenPipeError, OSError) as e:
                    logging.debug("writer close failed: %s", e)

    def _pump_thread(self) -> None:
        try:
            self.pump()
        except ChannelError as e:
            self.error = e
        except Exception as e:
            self.error = e
            logging.exception("wipc pump failed: %s", e)

    def _handle_frame(self, frame: Frame) -> None:
        if self.capture:
            self.capture.write("in", frame)
        try:
            self.handlers.dispatch(frame)
        except UnknownMessageType as e:
            if self.config.strict_types:
                raise
            logging.warning(json.dumps({"event": "unknown_type", "type": e.type_byte,
                                        "length": len(frame.payload)}))

    def _handle_passthrough(self, data: memoryview) -> None:
        if self.on_passthrough:
            self.on_passthrough(data)
