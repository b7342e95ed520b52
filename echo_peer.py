#!/usr/bin/env python3
"""
Continuous echo responder: reads frames from stdin and writes each one back
to stdout. Exits after echoing CLOSE, or at EOF.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import BinaryIO, Optional

from stream_framing import MessageType
from wipc_channel import read_frame, write_frame


def echo_loop(reader: BinaryIO, writer: BinaryIO, banner: Optional[bytes] = None,
              max_payload_bytes: Optional[int] = None) -> int:
    if banner:
        # unframed output shares the stream, like a guest's print()
        writer.write(banner)
        writer.flush()
    count = 0
    while True:
        frame = read_frame(reader, max_payload_bytes=max_payload_bytes)
        if frame is None:
            break
        write_frame(writer, frame.type, frame.payload)
        count += 1
        if frame.type == MessageType.CLOSE:
            break
    return count


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--banner", default="", help="unframed text written to stdout before echoing")
    ap.add_argument("--max-payload", type=int, default=0, help="reject larger frames (0 = unlimited)")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s",
                        stream=sys.stderr)
    banner = (args.banner + "\n").encode("utf-8") if args.banner else None
    count = echo_loop(sys.stdin.buffer, sys.stdout.buffer, banner=banner,
                      max_payload_bytes=args.max_payload or None)
    logging.info(json.dumps({"event": "echo_done", "frames": count}))


if __name__ == "__main__":
    main()
