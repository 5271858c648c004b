"""Tests for configuration loading."""

from __future__ import annotations

import pytest

from mpdlink.config import (
    Config,
    ConnectionConfig,
    get_config_dir,
    get_config_file,
    load_config,
)


class TestConfigPaths:
    def test_config_dir(self, temp_config_home):
        assert get_config_dir() == temp_config_home
        assert get_config_file() == temp_config_home / "config.toml"


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_file(self, temp_config_home, clean_env):
        config = load_config()

        assert config == Config()
        assert config.connection.port == 6600
        assert config.logging.level == "warning"

    def test_load_from_file(self, temp_config_home, clean_env):
        (temp_config_home / "config.toml").write_text(
            "[connection]\n"
            'host = "music.local"\n'
            "port = 6601\n"
            "timeout = 2.5\n"
            "\n"
            "[logging]\n"
            'level = "debug"\n'
        )

        config = load_config()

        assert config.connection == ConnectionConfig(
            host="music.local", port=6601, timeout=2.5
        )
        assert config.logging.level == "debug"

    def test_explicit_path(self, tmp_path, clean_env):
        path = tmp_path / "other.toml"
        path.write_text('[connection]\nurl = "ws://localhost:8080/mpd"\n')

        assert load_config(path).connection.url == "ws://localhost:8080/mpd"


class TestEnvironment:
    """Tests for MPD_HOST and MPD_PORT."""

    def test_host_and_port(self, temp_config_home, clean_env, monkeypatch):
        monkeypatch.setenv("MPD_HOST", "192.168.1.10")
        monkeypatch.setenv("MPD_PORT", "6700")

        connection = load_config().connection

        assert connection.host == "192.168.1.10"
        assert connection.port == 6700
        assert connection.socket == ""

    def test_socket_path(self, temp_config_home, clean_env, monkeypatch):
        monkeypatch.setenv("MPD_HOST", "/run/mpd/socket")

        connection = load_config().connection

        assert connection.socket == "/run/mpd/socket"
        assert connection.host == "localhost"

    def test_host_overrides_file_socket(self, temp_config_home, clean_env, monkeypatch):
        (temp_config_home / "config.toml").write_text(
            '[connection]\nsocket = "/run/mpd/socket"\n'
        )
        monkeypatch.setenv("MPD_HOST", "music.local")

        connection = load_config().connection

        assert connection.host == "music.local"
        assert connection.socket == ""

    def test_invalid_port(self, temp_config_home, clean_env, monkeypatch):
        monkeypatch.setenv("MPD_PORT", "sixty-six")

        with pytest.raises(ValueError, match="Invalid MPD_PORT"):
            load_config()
