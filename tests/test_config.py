"""Tests for settings loading."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from geolocbot.config import BotSettings, load_settings

CONFIG = """
homeserver_url = "https://matrix.example.org"
username = "geobot"
password = "from-file"
autojoin = true
history_max_pages = 3
"""


@pytest.fixture
def workdir(isolated_config):
    """Empty working directory with no BOT_* variables leaking in."""
    return isolated_config


class TestLoadSettings:
    def test_defaults_file(self, workdir):
        (workdir / "botconfig.toml").write_text(CONFIG)

        settings = load_settings()

        assert settings.username == "geobot"
        assert settings.password == "from-file"
        assert settings.history_max_pages == 3
        assert settings.ignore_own_messages is True
        assert settings.failure_reaction == "🚫"
        assert settings.history_page_size == 10

    def test_explicit_file(self, workdir):
        path = workdir / "other.toml"
        path.write_text(CONFIG)

        assert load_settings(str(path)).username == "geobot"

    def test_config_file_from_env(self, workdir, monkeypatch):
        path = workdir / "env.toml"
        path.write_text(CONFIG)
        monkeypatch.setenv("BOT_CONFIG_FILE", str(path))

        assert load_settings().username == "geobot"

    def test_env_overrides_file(self, workdir, monkeypatch):
        (workdir / "botconfig.toml").write_text(CONFIG)
        monkeypatch.setenv("BOT_PASSWORD", "from-env")
        monkeypatch.setenv("BOT_AUTOJOIN", "false")

        settings = load_settings()

        assert settings.password == "from-env"
        assert settings.autojoin is False

    def test_overrides_win(self, workdir, monkeypatch):
        (workdir / "botconfig.toml").write_text(CONFIG)
        monkeypatch.setenv("BOT_AUTOJOIN", "false")

        assert load_settings(autojoin=True, debug=True).debug is True
        assert load_settings(autojoin=True).autojoin is True

    def test_env_only(self, workdir, monkeypatch):
        monkeypatch.setenv("BOT_HOMESERVER_URL", "https://matrix.example.org")
        monkeypatch.setenv("BOT_USERNAME", "envbot")
        monkeypatch.setenv("BOT_PASSWORD", "pw")

        assert load_settings().username == "envbot"

    def test_missing_required(self, workdir):
        with pytest.raises(ValidationError) as exc_info:
            load_settings()

        missing = {err["loc"][0] for err in exc_info.value.errors()}
        assert {"homeserver_url", "username", "password"} <= missing

    def test_invalid_page_size(self, workdir):
        (workdir / "botconfig.toml").write_text(CONFIG + "history_page_size = 0\n")

        with pytest.raises(ValidationError):
            load_settings()

    def test_plain_http_warns(self, workdir, caplog):
        (workdir / "botconfig.toml").write_text(
            CONFIG.replace("https://matrix.example.org", "http://localhost:8008")
        )

        load_settings()

        assert "not HTTPS" in caplog.text


class TestDirectConstruction:
    """BotSettings(...) built inline by other tests sees only its own kwargs."""

    def test_runs_outside_the_checkout(self, isolated_config):
        assert Path.cwd().resolve() == isolated_config.resolve()
        assert not (isolated_config / "botconfig.toml").exists()
        assert not [key for key in os.environ if key.startswith("BOT_")]

    def test_defaults_apply(self):
        settings = BotSettings(
            homeserver_url="https://matrix.example.org",
            username="bot",
            password="secret",
        )

        assert settings.autojoin is True
        assert settings.failure_reaction == "🚫"
