#!/usr/bin/env python3
"""
Interactive WIPC host: spawns a child process, speaks frames over its
stdin/stdout and prints everything the child sends back.

Usage:
  python interactive_cli.py                       # talks to echo_peer.py
  python interactive_cli.py -- node guest.js      # any WIPC-speaking command
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import subprocess
import sys
import time
from typing import List, Optional, TextIO

from capture_log import CaptureLogger
from channel_config import load_channel_config
from frame_dispatch import FrameHandlers
from stream_framing import BytesLike, MessageType
from wipc_channel import Channel

HELP = """Commands:
  open               - send OPEN frame
  close              - send CLOSE frame and exit
  call <text>        - send CALL frame with text payload
  data <text>        - send DATA frame with text payload
  bench <ops> <text> - send <ops> DATA frames with text payload
  <anything>         - send as DATA frame
"""


def _text(payload: BytesLike) -> str:
    return bytes(payload).decode("utf-8", errors="replace")


class CliSession:
    def __init__(self, out: TextIO = sys.stderr) -> None:
        self.out = out
        self.channel: Optional[Channel] = None
        self.benching = False
        self.peer_closed = False
        self.handlers = FrameHandlers(
            on_open=self.on_open,
            on_close=self.on_close,
            on_call=self.on_call,
            on_data=self.on_data,
        )

    def _print(self, text: str) -> None:
        self.out.write(text)
        self.out.flush()

    def on_open(self) -> None:
        self._print("<- [OPEN]\n")

    def on_close(self) -> None:
        self._print("<- [CLOSE]\n")
        self.peer_closed = True

    def on_call(self, payload: BytesLike) -> None:
        self._print(f"<- [CALL] {_text(payload)}\n")

    def on_data(self, payload: BytesLike) -> None:
        if self.benching:
            return
        self._print(f"<- [DATA] {_text(payload)}\n")

    def on_passthrough(self, data: memoryview) -> None:
        self._print(f"[stdout] {_text(data)}")

    def handle_line(self, line: str) -> bool:
        """Run one command line. Returns False once the session should stop reading input."""
        trimmed = line.strip()
        if not trimmed:
            return True
        self.benching = False
        channel = self.channel

        if trimmed == "open":
            self._print("-> [OPEN]\n")
            channel.send(MessageType.OPEN)
        elif trimmed == "close":
            self._print("-> [CLOSE]\n")
            channel.send(MessageType.CLOSE)
            return False
        elif trimmed.startswith("call "):
            text = trimmed[5:]
            self._print(f"-> [CALL] {text}\n")
            channel.send(MessageType.CALL, text.encode("utf-8"))
        elif trimmed.startswith("data "):
            text = trimmed[5:]
            self._print(f"-> [DATA] {text}\n")
            channel.send(MessageType.DATA, text.encode("utf-8"))
        elif trimmed.startswith("bench ") or trimmed == "bench":
            self._bench(trimmed[6:])
        else:
            self._print(f"-> [DATA] {trimmed}\n")
            channel.send(MessageType.DATA, trimmed.encode("utf-8"))
        return True

    def _bench(self, args: str) -> None:
        ops_str, _, text = args.partition(" ")
        try:
            count = int(ops_str)
        except ValueError:
            count = 0
        if count <= 0:
            self._print(f"Invalid count: {ops_str}\n")
            return
        if not text:
            self._print("Missing text payload\n")
            return

        payload = text.encode("utf-8")
        self.benching = True
        start = time.perf_counter()
        for _ in range(count):
            self.channel.send(MessageType.DATA, payload)
        elapsed_ms = max(1e-3, (time.perf_counter() - start) * 1000.0)
        ops_per_sec = round(count / elapsed_ms * 1000)
        self._print(f'-> [BENCH] {count}x "{text}" ({elapsed_ms:.2f}ms, {ops_per_sec} ops/s)\n')


def _capture_from_env(path: Optional[str]) -> Optional[CaptureLogger]:
    if not path:
        return None
    key_hex = os.environ.get("WIPC_CAPTURE_KEY", "")
    if not key_hex:
        raise SystemExit("--capture-log needs WIPC_CAPTURE_KEY (hex-encoded 32-byte key)")
    return CaptureLogger(path, bytes.fromhex(key_hex))


def main(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default=None, help="channel YAML config")
    ap.add_argument("--capture-log", default=None, help="write a sealed frame capture here")
    ap.add_argument("command", nargs=argparse.REMAINDER, help="child command (default: echo peer)")
    args = ap.parse_args(argv)

    config = load_channel_config(args.config)
    logging.basicConfig(level=config.log_level, format="%(asctime)s [%(levelname)s] %(message)s")
    capture = _capture_from_env(args.capture_log)

    command = args.command[1:] if args.command[:1] == ["--"] else args.command
    if not command:
        command = [sys.executable, os.path.join(os.path.dirname(os.path.abspath(__file__)), "echo_peer.py")]

    try:
        child = subprocess.Popen(command, stdin=subprocess.PIPE, stdout=subprocess.PIPE)
    except OSError as e:
        raise SystemExit(f"failed to spawn {command[0]}: {e}")
    logging.info(json.dumps({"event": "spawned", "pid": child.pid, "command": command,
                             "config": config.config_hash[:12]}))

    session = CliSession()
    channel = Channel(child.stdout, child.stdin, handlers=session.handlers,
                      on_passthrough=session.on_passthrough, config=config, capture=capture)
    session.channel = channel
    channel.start()

    session._print("WIPC Interactive Test\n" + HELP + "\n")
    try:
        while not session.peer_closed and not channel.closed:
            session._print("> ")
            line = sys.stdin.readline()
            if not line:
                break
            if not session.handle_line(line):
                break
    except (BrokenPipeError, KeyboardInterrupt):
        pass
    finally:
        channel.wait(timeout=1.0)
        channel.close()
        try:
            code = child.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            child.kill()
            code = child.wait()
        session._print(f"\nchild process exited (code {code})\n")
        if channel.error:
            raise SystemExit(f"channel error: {channel.error}")


if __name__ == "__main__":
    main()
