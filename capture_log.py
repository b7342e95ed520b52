# capture_log.py
"""
Sealed, hash-chained capture of the frames crossing a channel.
Records frame metadata and a payload digest, never the payload itself.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict

from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from stream_framing import Frame

GENESIS = b"\x00" * 32
AAD = b"wipc-capture"
DIRECTIONS = ("in", "out")


@dataclass
class CaptureRecord:
    ts: float
    seq: int
    direction: str
    type: int
    length: int
    payload_hash: str
    chain_hash: str


def capture_nonce(key: bytes, chain: bytes, seq: int) -> bytes:
    # deterministic nonce derived from capture key + previous chain hash + seq
    return hmac.new(key, chain + seq.to_bytes(8, "big"), hashlib.sha256).digest()[:12]


def canonical_json(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")


class CaptureLogger:
    def __init__(self, log_path: str, log_key: bytes) -> None:
        if len(log_key) != 32:
            raise ValueError("capture key must be 32 bytes")
        self.log_path = log_path
        self._log_key = log_key
        self._aead = ChaCha20Poly1305(log_key)
        self._seq = 0
        self._chain = GENESIS
        # inbound and outbound frames are recorded from different threads
        self._lock = threading.Lock()
        parent = os.path.dirname(log_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

    def write(self, direction: str, frame: Frame) -> CaptureRecord:
        if direction not in DIRECTIONS:
            raise ValueError(f"unknown direction: {direction}")
        with self._lock:
            self._seq += 1
            chain_prev = self._chain
            record = {
                "ts": time.time(),
                "seq": self._seq,
                "direction": direction,
                "type": int(frame.type),
                "length": len(frame.payload),
                "payload_hash": hashlib.sha256(frame.payload).hexdigest(),
                "chain_prev": chain_prev.hex(),
            }
            self._chain = hashlib.sha256(chain_prev + canonical_json(record)).digest()
            record["chain_hash"] = self._chain.hex()

            nonce = capture_nonce(self._log_key, chain_prev, self._seq)
            sealed = self._aead.encrypt(nonce, json.dumps(record).encode("utf-8"), AAD)
            with open(self.log_path, "ab") as f:
                f.write(base64.b64encode(sealed) + b"\n")

        return CaptureRecord(
            ts=record["ts"],
            seq=record["seq"],
            direction=direction,
            type=record["type"],
            length=record["length"],
            payload_hash=record["payload_hash"],
            chain_hash=record["chain_hash"],
        )
