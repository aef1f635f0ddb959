"""Tests for configuration loading."""

import os
from pathlib import Path

import pytest

from cgplayer.config import (
    Config,
    ConfigError,
    dict_to_config,
    load_config,
    load_env_config,
    load_yaml_config,
    merge_configs,
    validate_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of the tests."""
    for name in list(os.environ):
        if name.startswith("CGPLAYER_"):
            monkeypatch.delenv(name)


class TestDefaults:
    """Tests for default values."""

    def test_defaults_are_valid(self) -> None:
        config = Config()
        validate_config(config)
        assert config.player.backend == "silent"
        assert config.server.port == 8790
        assert config.storage.persist_queue is True


class TestYaml:
    """Tests for the YAML file."""

    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_yaml_config(tmp_path / "nope.yaml") == {}

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_yaml_config(path) == {}

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("api: [unclosed")
        with pytest.raises(ConfigError, match="parsing YAML"):
            load_yaml_config(path)

    def test_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            """
api:
  base_url: https://choir.example.com/
  email: singer@example.com
  password: secret
player:
  backend: local
  device: USB
  volume: 0.5
storage:
  queue_file: ~/rehearsal/queue.json
server:
  port: 9000
logging:
  level: debug
"""
        )
        config = load_config(path)

        assert config.api.base_url == "https://choir.example.com"
        assert config.api.email == "singer@example.com"
        assert config.player.backend == "local"
        assert config.player.device == "USB"
        assert config.player.volume == 0.5
        assert config.storage.queue_file == Path("~/rehearsal/queue.json").expanduser()
        assert config.server.port == 9000
        assert config.logging.level == "debug"


class TestEnvironment:
    """Tests for environment variables."""

    def test_env_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CGPLAYER_API_URL", "http://env:1")
        monkeypatch.setenv("CGPLAYER_CONTROL_PORT", "9100")
        monkeypatch.setenv("CGPLAYER_VOLUME", "0.3")
        monkeypatch.setenv("CGPLAYER_AUTOPLAY", "no")

        env = load_env_config()
        assert env["api"]["base_url"] == "http://env:1"
        assert env["server"]["port"] == 9100
        assert env["player"]["volume"] == 0.3
        assert env["player"]["autoplay"] is False

    def test_bad_numbers_skipped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CGPLAYER_CONTROL_PORT", "eighty")
        monkeypatch.setenv("CGPLAYER_VOLUME", "loud")
        assert load_env_config() == {}


class TestPriority:
    """Tests for source priority."""

    def test_cli_over_env_over_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("server:\n  port: 9000\n  bind_address: 0.0.0.0\nplayer:\n  device: A\n")
        monkeypatch.setenv("CGPLAYER_CONTROL_PORT", "9100")
        monkeypatch.setenv("CGPLAYER_AUDIO_DEVICE", "B")

        config = load_config(path, {"server": {"port": 9200}})

        assert config.server.port == 9200
        assert config.server.bind_address == "0.0.0.0"
        assert config.player.device == "B"

    def test_merge_is_deep(self) -> None:
        merged = merge_configs({"api": {"token": "a", "email": "x"}}, {"api": {"token": "b"}})
        assert merged == {"api": {"token": "b", "email": "x"}}


class TestValidation:
    """Tests for validate_config."""

    @pytest.mark.parametrize(
        "data, message",
        [
            ({"api": {"base_url": "ftp://x"}}, "Invalid API URL"),
            ({"api": {"email": "a@b.c"}}, "email and password"),
            ({"player": {"backend": "dlna"}}, "Invalid backend"),
            ({"player": {"volume": 1.5}}, "Invalid volume"),
            ({"server": {"port": 70000}}, "Invalid control port"),
            ({"logging": {"level": "loud"}}, "Invalid log level"),
        ],
    )
    def test_invalid(self, data: dict, message: str) -> None:
        with pytest.raises(ConfigError, match=message):
            validate_config(dict_to_config(data))

    def test_port_ignored_when_disabled(self) -> None:
        validate_config(dict_to_config({"server": {"enabled": False, "port": 0}}))

    def test_bad_type(self) -> None:
        with pytest.raises(ConfigError, match="Invalid configuration value"):
            load_config(None, {"player": {"volume": "very"}})

    def test_all_errors_reported(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            validate_config(dict_to_config({"player": {"backend": "x", "volume": 2}}))
        message = str(exc_info.value)
        assert "Invalid backend" in message
        assert "Invalid volume" in message
