#!/usr/bin/env python3
"""
Verify and replay sealed frame captures. Validates AEAD and hash-chain integrity.
"""
from __future__ import annotations

import argparse
import base64
import binascii
import hashlib
import json
from typing import Any, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

from capture_log import AAD, GENESIS, canonical_json, capture_nonce
from stream_framing import MessageType


def verify_capture(log_path: str, log_key: bytes) -> Tuple[bool, List[Dict[str, Any]], Optional[str]]:
    """Return (ok, records verified so far, error message or None)."""
    aead = ChaCha20Poly1305(log_key)
    chain = GENESIS
    records: List[Dict[str, Any]] = []
    count = 0

    with open(log_path, "rb") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            count += 1
            nonce = capture_nonce(log_key, chain, count)
            try:
                sealed = base64.b64decode(line)
                record_bytes = aead.decrypt(nonce, sealed, AAD)
            except (InvalidTag, binascii.Error):
                return False, records, f"record {count}: AEAD decrypt failed"

            record = json.loads(record_bytes.decode("utf-8"))
            if bytes.fromhex(record.get("chain_prev", "")) != chain:
                return False, records, f"record {count}: chain_prev mismatch"

            # recompute chain hash from the record sans chain_hash
            record_for_hash = dict(record)
            record_for_hash.pop("chain_hash", None)
            chain = hashlib.sha256(chain + canonical_json(record_for_hash)).digest()
            if record.get("chain_hash") != chain.hex():
                return False, records, f"record {count}: chain_hash mismatch"
            records.append(record)

    return True, records, None


def _type_name(type_byte: int) -> str:
    try:
        return MessageType(type_byte).name
    except ValueError:
        return f"0x{type_byte:02x}"


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--log", required=True, help="path to a capture written by CaptureLogger")
    ap.add_argument("--log-key-hex", required=True, help="hex-encoded 32-byte capture key")
    ap.add_argument("--limit", type=int, default=0, help="max records to print (0 = all)")
    args = ap.parse_args()

    ok, records, error = verify_capture(args.log, bytes.fromhex(args.log_key_hex))
    shown = records if not args.limit else records[:args.limit]
    for record in shown:
        arrow = "<-" if record["direction"] == "in" else "->"
        print(f"{record['seq']:>6} {arrow} [{_type_name(record['type'])}] {record['length']} B {record['payload_hash'][:16]}")

    if not ok:
        raise SystemExit(f"[FAIL] {error}")
    print(f"[OK] verified {len(records)} records")


if __name__ == "__main__":
    main()
