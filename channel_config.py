# channel_config.py
"""
Load channel settings from YAML, with WIPC_* environment overrides.
"""
from __future__ import annotations

import hashlib
import json
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

import yaml

from stream_demux import DEFAULT_MAX_PAYLOAD_BYTES
from stream_framing import MAX_PAYLOAD

ENV_PREFIX = "WIPC_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ChannelConfig:
    max_payload_bytes: Optional[int] = DEFAULT_MAX_PAYLOAD_BYTES
    read_chunk_size: int = 65536
    strict_types: bool = False
    log_level: str = "INFO"

    @property
    def config_hash(self) -> str:
        return hashlib.sha256(_canonical_json(asdict(self)).encode("utf-8")).hexdigest()


def _canonical_json(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_max_payload(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", "none", "null")):
        return None
    size = int(value)
    if size < 0 or size > MAX_PAYLOAD:
        raise ValueError(f"max_payload_bytes out of range: {size}")
    # 0 disables the guard
    return size or None


def _build(raw: Mapping[str, Any]) -> ChannelConfig:
    defaults = ChannelConfig()
    chunk = int(raw.get("read_chunk_size", defaults.read_chunk_size))
    if chunk <= 0:
        raise ValueError(f"read_chunk_size must be positive: {chunk}")
    level = str(raw.get("log_level", defaults.log_level)).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"unknown log_level: {level}")
    return ChannelConfig(
        max_payload_bytes=_parse_max_payload(raw.get("max_payload_bytes", defaults.max_payload_bytes)),
        read_chunk_size=chunk,
        strict_types=_parse_bool(raw.get("strict_types", defaults.strict_types)),
        log_level=level,
    )


def load_channel_config(path: Optional[str] = None,
                        env: Optional[Mapping[str, str]] = None) -> ChannelConfig:
    raw: Dict[str, Any] = {}
    if path is not None:
        if not os.path.isfile(path):
            raise FileNotFoundError(f"channel config not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            doc = yaml.safe_load(f) or {}
        section = doc.get("channel", {}) if isinstance(doc, dict) else None
        if not isinstance(section, dict):
            raise ValueError(f"{path}: 'channel' must be a mapping")
        raw.update(section)

    env = os.environ if env is None else env
    for key in ("max_payload_bytes", "read_chunk_size", "strict_types", "log_level"):
        name = ENV_PREFIX + key.upper()
        if name in env:
            raw[key] = env[name]
    return _build(raw)
