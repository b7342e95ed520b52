import os

import pytest

from channel_config import ChannelConfig, load_channel_config
from stream_demux import DEFAULT_MAX_PAYLOAD_BYTES

REPO_CONFIG = os.path.join(os.path.dirname(__file__), "..", "config", "channel.yaml")


def test_defaults_without_file_or_env():
    cfg = load_channel_config(env={})
    assert cfg == ChannelConfig()
    assert cfg.max_payload_bytes == DEFAULT_MAX_PAYLOAD_BYTES
    assert cfg.read_chunk_size == 65536
    assert cfg.strict_types is False
    assert cfg.log_level == "INFO"


def test_repo_config_loads():
    cfg = load_channel_config(REPO_CONFIG, env={})
    assert cfg.max_payload_bytes == 16 * 1024 * 1024
    assert cfg.strict_types is False


def test_yaml_values(tmp_path):
    path = tmp_path / "channel.yaml"
    path.write_text("channel:\n  max_payload_bytes: 1024\n  read_chunk_size: 512\n"
                    "  strict_types: true\n  log_level: debug\n", encoding="utf-8")
    cfg = load_channel_config(str(path), env={})
    assert cfg == ChannelConfig(max_payload_bytes=1024, read_chunk_size=512, strict_types=True, log_level="DEBUG")


def test_zero_or_null_disables_guard(tmp_path):
    path = tmp_path / "channel.yaml"
    path.write_text("channel:\n  max_payload_bytes: null\n", encoding="utf-8")
    assert load_channel_config(str(path), env={}).max_payload_bytes is None
    assert load_channel_config(env={"WIPC_MAX_PAYLOAD_BYTES": "0"}).max_payload_bytes is None


def test_env_overrides_file(tmp_path):
    path = tmp_path / "channel.yaml"
    path.write_text("channel:\n  read_chunk_size: 512\n", encoding="utf-8")
    cfg = load_channel_config(str(path), env={"WIPC_READ_CHUNK_SIZE": "4096", "WIPC_STRICT_TYPES": "yes"})
    assert cfg.read_chunk_size == 4096
    assert cfg.strict_types is True


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_channel_config("/nonexistent/channel.yaml", env={})


@pytest.mark.parametrize("env", [
    {"WIPC_READ_CHUNK_SIZE": "0"},
    {"WIPC_MAX_PAYLOAD_BYTES": "-1"},
    {"WIPC_MAX_PAYLOAD_BYTES": str(2 ** 32)},
    {"WIPC_STRICT_TYPES": "maybe"},
    {"WIPC_LOG_LEVEL": "LOUD"},
])
def test_invalid_values(env):
    with pytest.raises(ValueError):
        load_channel_config(env=env)


def test_channel_section_must_be_mapping(tmp_path):
    path = tmp_path / "channel.yaml"
    path.write_text("channel: 5\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_channel_config(str(path), env={})


def test_config_hash_is_stable():
    assert ChannelConfig().config_hash == ChannelConfig().config_hash
    assert ChannelConfig().config_hash != ChannelConfig(strict_types=True).config_hash
