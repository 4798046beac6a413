import json

import pytest

from voiceclip import config
from voiceclip.models import Config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    cfg_path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", cfg_path)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    return cfg_path


def test_load_default_config_when_missing():
    cfg = config.load_config()
    assert isinstance(cfg, Config)
    assert cfg.hotkey == "option+1"
    assert cfg.transcription_model == "whisper-large-v3-turbo"
    assert cfg.server_url is None


def test_save_and_load_config():
    config.save_config(Config(server_url="https://voice.example", api_key="secret"))

    loaded = config.load_config()
    assert loaded.server_url == "https://voice.example"
    assert loaded.api_key == "secret"


def test_update_config_validates_keys():
    config.update_config(display_seconds=5.0)
    assert config.load_config().display_seconds == 5.0

    try:
        config.update_config(unknown="value")
    except config.ConfigError:
        pass
    else:
        raise AssertionError("Expected ConfigError for invalid key")


def test_corrupt_file_raises_config_error(isolated_config):
    isolated_config.write_text("{not json")
    with pytest.raises(config.ConfigError):
        config.load_config()


def test_unknown_keys_in_file_raise_config_error(isolated_config):
    isolated_config.write_text(json.dumps({"backend": "whisper"}))
    with pytest.raises(config.ConfigError):
        config.load_config()


def test_environment_fills_missing_groq_key_without_persisting_it(isolated_config, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk-env")
    assert config.load_config().groq_api_key == "gsk-env"

    config.update_config(api_key="secret")
    assert "groq_api_key" not in json.loads(isolated_config.read_text())


def test_history_path_defaults_under_app_dir(tmp_path):
    assert config.history_path(Config()) == config.DEFAULT_HISTORY_PATH
    custom = tmp_path / "h.db"
    assert config.history_path(Config(history_path=str(custom))) == custom


def test_server_settings_from_env(monkeypatch):
    monkeypatch.setenv("API_KEY", "server-secret")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.delenv("MONGODB_URI", raising=False)
    monkeypatch.delenv("DB_NAME", raising=False)

    settings = config.ServerSettings.from_env()
    assert settings.api_key == "server-secret"
    assert settings.port == 8080
    assert settings.mongodb_uri == "mongodb://localhost:27017"
    assert settings.db_name == "voice_clipboard"


def test_server_settings_rejects_bad_port(monkeypatch):
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(config.ConfigError):
        config.ServerSettings.from_env()
