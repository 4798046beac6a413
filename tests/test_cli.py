import json

import pytest
from typer.testing import CliRunner

from voiceclip import __version__, config, transcriber
from voiceclip.cli import app
from voiceclip.models import TranscriptionResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    cfg_path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", cfg_path)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    cfg_path.write_text(json.dumps({"history_path": str(tmp_path / "history.db")}))
    return cfg_path


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"voiceclip v{__version__}" in result.output


def test_days_when_empty():
    result = runner.invoke(app, ["days", "--offline"])
    assert result.exit_code == 0
    assert "No transcriptions yet" in result.output


def test_add_then_list_locally():
    result = runner.invoke(
        app,
        ["add", "Hello world", "--duration", "2.5", "--timestamp", "2025-12-16T10:30:00", "--offline"],
    )
    assert result.exit_code == 0, result.output
    assert "Saved transcription with id 1." in result.output

    result = runner.invoke(app, ["days", "--offline"])
    assert result.exit_code == 0
    assert "2025-12-16" in result.output

    result = runner.invoke(app, ["show", "2025-12-16", "--offline"])
    assert result.exit_code == 0
    assert "Hello world" in result.output
    assert "$0.000028" in result.output


def test_show_rejects_malformed_date():
    result = runner.invoke(app, ["show", "yesterday", "--offline"])
    assert result.exit_code == 1
    assert "Invalid date format. Use YYYY-MM-DD" in result.output


def test_config_normalizes_hotkey(isolated_config):
    result = runner.invoke(app, ["config", "--hotkey", "Alt+2"])
    assert result.exit_code == 0
    assert json.loads(isolated_config.read_text())["hotkey"] == "option+2"


def test_config_rejects_invalid_hotkey():
    result = runner.invoke(app, ["config", "--hotkey", "2"])
    assert result.exit_code == 1
    assert "modifier" in result.output


def test_config_rejects_unknown_clipboard():
    result = runner.invoke(app, ["config", "--clipboard", "xclip"])
    assert result.exit_code == 1
    assert "Unknown clipboard backend" in result.output


def test_login_stores_api_key(isolated_config):
    result = runner.invoke(app, ["login", "--api-key", "secret"])
    assert result.exit_code == 0
    assert json.loads(isolated_config.read_text())["api_key"] == "secret"


def test_health_without_server_url():
    result = runner.invoke(app, ["health"])
    assert result.exit_code == 1
    assert "No API server configured" in result.output


def test_offline_transcribe_delivers_text_when_history_is_unwritable(tmp_path, isolated_config, monkeypatch):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    isolated_config.write_text(json.dumps({"history_path": str(blocker / "history.db")}))
    audio = tmp_path / "a.wav"
    audio.write_bytes(b"RIFF....WAVE")

    class StubTranscriber:
        def __init__(self, *args, **kwargs):
            pass

        def transcribe(self, blob):
            return TranscriptionResult(text="Hello world", duration_seconds=2.5)

    monkeypatch.setattr(transcriber, "GroqTranscriber", StubTranscriber)

    result = runner.invoke(app, ["transcribe", str(audio), "--offline", "--no-copy"])

    assert result.exit_code == 0, result.output
    assert "Hello world" in result.output
    assert "Saved transcription" not in result.output
