"""Persisted client configuration and environment-driven server settings."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Optional

from .models import Config

APP_DIR = Path.home() / ".voiceclip"
CONFIG_PATH = (APP_DIR / "config.json").expanduser()
DEFAULT_HISTORY_PATH = APP_DIR / "history.db"


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or saved."""


def _read_config() -> Config:
    if not CONFIG_PATH.exists():
        return Config()
    try:
        payload = json.loads(CONFIG_PATH.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
    unknown = sorted(set(payload) - {f.name for f in fields(Config)})
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
    return Config(**payload)


def load_config() -> Config:
    """Return the stored configuration, with GROQ_API_KEY filling an unset key."""

    config = _read_config()
    if not config.groq_api_key:
        config.groq_api_key = os.getenv("GROQ_API_KEY") or None
    return config


def save_config(config: Config) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    data = {k: v for k, v in asdict(config).items() if v is not None}
    CONFIG_PATH.write_text(json.dumps(data, indent=2))


def update_config(**kwargs: Any) -> Config:
    config = _read_config()
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ConfigError(f"Unknown configuration key: {key}")
    save_config(config)
    return config


def history_path(config: Config) -> Path:
    if config.history_path:
        return Path(config.history_path).expanduser()
    return DEFAULT_HISTORY_PATH


@dataclass(slots=True)
class ServerSettings:
    """Backend settings, read from the process environment."""

    api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    transcription_model: str = "whisper-large-v3-turbo"
    mongodb_uri: str = "mongodb://localhost:27017"
    db_name: str = "voice_clipboard"
    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_env(cls) -> "ServerSettings":
        port = os.getenv("PORT", "3000")
        try:
            port_number = int(port)
        except ValueError as exc:
            raise ConfigError(f"PORT must be an integer, got {port!r}") from exc
        return cls(
            api_key=os.getenv("API_KEY") or None,
            groq_api_key=os.getenv("GROQ_API_KEY") or None,
            transcription_model=os.getenv("VOICECLIP_TRANSCRIPTION_MODEL", "whisper-large-v3-turbo"),
            mongodb_uri=os.getenv("MONGODB_URI", "mongodb://localhost:27017"),
            db_name=os.getenv("DB_NAME", "voice_clipboard"),
            host=os.getenv("VOICECLIP_HOST", "0.0.0.0"),
            port=port_number,
        )
