#!/usr/bin/env python3
"""
Test harness that runs key checks and outputs a clear report.
"""
from __future__ import annotations

import os
import subprocess
import sys
import tempfile

from capture_log import CaptureLogger
from capture_replay import verify_capture
from stream_demux import OversizedFrame, StreamDemultiplexer
from stream_framing import INCOMPLETE, MessageType, decode, encode

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _print(name: str, ok: bool, detail: str = ""):
    status = "PASS" if ok else "FAIL"
    print(f"[{status}] {name}{' - ' + detail if detail else ''}")


def check_wire_vectors():
    assert encode(MessageType.OPEN) == bytes.fromhex("574950430000000000")
    assert encode(MessageType.DATA, b"hi") == bytes.fromhex("5749504303020000006869")
    assert decode(b"WIPC") is INCOMPLETE
    return True


def check_split_magic():
    frames, passthrough = [], []
    demux = StreamDemultiplexer(frames.append, lambda d: passthrough.append(bytes(d)))
    wire = encode(MessageType.DATA, b"payload")
    demux.feed(wire[:3])
    demux.feed(wire[3:])
    assert passthrough == [] and len(frames) == 1
    return True


def check_oversized_guard():
    demux = StreamDemultiplexer(max_payload_bytes=1024)
    try:
        demux.feed(b"WIPC\x03\xff\xff\xff\xff")
    except OversizedFrame:
        return demux.closed
    return False


def check_capture_replay():
    key = os.urandom(32)
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "capture.log")
        logger = CaptureLogger(path, key)
        frame = decode(encode(MessageType.DATA, b"env1"))
        logger.write("out", frame)
        logger.write("in", frame)
        ok, records, _err = verify_capture(path, key)
        # also exercise the real CLI path
        cmd = [sys.executable, os.path.join(ROOT, "capture_replay.py"), "--log", path, "--log-key-hex", key.hex()]
        return ok and len(records) == 2 and subprocess.call(cmd) == 0


def check_self_test():
    cmd = [sys.executable, os.path.join(ROOT, "scripts", "self_test.py")]
    return subprocess.call(cmd) == 0


def main():
    checks = [
        ("Wire Vectors", check_wire_vectors),
        ("Split Magic Retention", check_split_magic),
        ("Oversized Frame Guard", check_oversized_guard),
        ("Capture Replay", check_capture_replay),
        ("Echo Peer Self-Test", check_self_test),
    ]

    passed = 0
    for name, fn in checks:
        try:
            ok = fn()
        except Exception as e:
            ok = False
            _print(name, ok, detail=str(e) or type(e).__name__)
        else:
            _print(name, ok)
        if ok:
            passed += 1

    print(f"\nSummary: {passed}/{len(checks)} passed")
    sys.exit(0 if passed == len(checks) else 1)


if __name__ == "__main__":
    main()
