"""Command line interface for voiceclip."""

from __future__ import annotations

import json
import logging
import mimetypes
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, NoReturn, Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from . import config as config_mod
from .client import ApiClient, describe_http_error
from .config import ConfigError
from .exceptions import PersistenceError, VoiceClipError
from .history import HistoryService, build_record, compute_cost, save_best_effort
from .hotkey import HotkeyBridge
from .models import AudioBlob, Config, RecordingState, TranscriptionData
from .storage import HistoryStore, SQLiteHistoryStore, connected

app = typer.Typer(add_completion=False, help="Record, transcribe and copy speech to the clipboard.")
console = Console()


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _use_remote(cfg: Config, offline: bool) -> bool:
    return not offline and bool(cfg.server_url)


def _store_for(cfg: Config, offline: bool) -> HistoryStore:
    if _use_remote(cfg, offline):
        return ApiClient.from_config(cfg)
    return SQLiteHistoryStore(config_mod.history_path(cfg))


@contextmanager
def _history(cfg: Config, offline: bool) -> Iterator[HistoryService]:
    try:
        with connected(_store_for(cfg, offline)) as store:
            yield HistoryService(store)
    except httpx.HTTPError as exc:
        _fail(describe_http_error(exc))
    except VoiceClipError as exc:
        _fail(str(exc))


def _save_locally(cfg: Config, data: TranscriptionData) -> Optional[str]:
    store = SQLiteHistoryStore(config_mod.history_path(cfg))
    try:
        store.connect()
    except PersistenceError as exc:
        logging.warning("Failed to save transcription to history: %s", exc)
        return None
    try:
        return save_best_effort(store, data)
    finally:
        store.disconnect()


def _format_timestamp(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _load_config() -> Config:
    try:
        return config_mod.load_config()
    except ConfigError as exc:
        _fail(str(exc))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    daemon: bool = typer.Option(False, "--daemon", "-d", help="Launch the menu bar daemon"),
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    if version:
        typer.echo(f"voiceclip v{__version__}")
        raise typer.Exit()

    if daemon:
        if ctx.invoked_subcommand is None:
            ctx.invoke(daemon_command)
        return

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command()
def transcribe(
    audio: Path = typer.Argument(..., exists=True, readable=True, help="Path to the audio file."),
    save: bool = typer.Option(True, "--save/--no-save", help="Persist the transcription to history."),
    copy: bool = typer.Option(True, "--copy/--no-copy", help="Copy the text to the clipboard."),
    offline: bool = typer.Option(False, "--offline", help="Call the provider directly instead of the API server."),
) -> None:
    """Transcribe an audio file."""

    cfg = _load_config()
    blob = AudioBlob(
        data=audio.read_bytes(),
        mime_type=mimetypes.guess_type(audio.name)[0] or "application/octet-stream",
        filename=audio.name,
    )

    try:
        if _use_remote(cfg, offline):
            with ApiClient.from_config(cfg) as client:
                # The server records history itself when asked to.
                result = client.transcribe(blob, save=save)
        else:
            from .transcriber import GroqTranscriber

            result = GroqTranscriber(cfg.groq_api_key, model=cfg.transcription_model).transcribe(blob)
            if save:
                record_id = _save_locally(cfg, build_record(result.text, result.duration_seconds))
                if record_id is not None:
                    typer.secho(f"Saved transcription with id {record_id}.", fg=typer.colors.BLUE, err=True)
        if copy:
            from .clipboard import get_clipboard

            get_clipboard(cfg.clipboard).write(result.text)
    except VoiceClipError as exc:
        _fail(str(exc))

    typer.echo(result.text)
    typer.secho(
        f"\nDuration: {result.duration_seconds:.2f}s  Cost: ${compute_cost(result.duration_seconds):.6f}",
        fg=typer.colors.GREEN,
        err=True,
    )


@app.command()
def days(
    offline: bool = typer.Option(False, "--offline", help="Use local history instead of the API server."),
) -> None:
    """List the days that have transcriptions."""

    cfg = _load_config()
    with _history(cfg, offline) as history:
        rows = history.list_days()

    if not rows:
        typer.echo("No transcriptions yet. Use `voiceclip record` to create one.")
        return
    table = Table(title="History")
    table.add_column("Date")
    table.add_column("Transcriptions", justify="right")
    for day in rows:
        table.add_row(day.date, str(day.count))
    console.print(table)


@app.command()
def show(
    date: str = typer.Argument(..., help="Day to display, as YYYY-MM-DD."),
    offline: bool = typer.Option(False, "--offline", help="Use local history instead of the API server."),
) -> None:
    """Show every transcription of one day, newest first."""

    cfg = _load_config()
    with _history(cfg, offline) as history:
        records = history.list_by_date(date)

    if not records:
        typer.echo(f"No transcriptions on {date}.")
        return
    table = Table(title=date)
    table.add_column("Time")
    table.add_column("Duration", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Text")
    for record in records:
        table.add_row(
            _format_timestamp(record.timestamp),
            f"{record.duration_seconds:.2f}s",
            f"${record.cost_usd:.6f}",
            record.text,
        )
    console.print(table)


@app.command()
def add(
    text: str = typer.Argument(..., help="Transcribed text."),
    duration: float = typer.Option(..., "--duration", min=0, help="Audio length in seconds."),
    timestamp: Optional[datetime] = typer.Option(None, "--timestamp", help="When the audio was recorded."),
    date: Optional[str] = typer.Option(None, "--date", help="Override the YYYY-MM-DD day bucket."),
    offline: bool = typer.Option(False, "--offline", help="Use local history instead of the API server."),
) -> None:
    """Add a history entry by hand."""

    cfg = _load_config()
    with _history(cfg, offline) as history:
        record_id = history.add(text, duration, timestamp=timestamp, date=date)
    typer.secho(f"Saved transcription with id {record_id}.", fg=typer.colors.BLUE)


_STATE_MESSAGES = {
    RecordingState.IDLE: ("Ready. Press Enter to record, q to quit.", typer.colors.WHITE),
    RecordingState.RECORDING: ("Recording… press Enter to stop.", typer.colors.RED),
    RecordingState.TRANSCRIBING: ("Transcribing…", typer.colors.YELLOW),
    RecordingState.SUCCESS: ("Copied to clipboard!", typer.colors.GREEN),
    RecordingState.ERROR: ("Error", typer.colors.RED),
}


@app.command()
def record(
    offline: bool = typer.Option(False, "--offline", help="Use local services instead of the API server."),
) -> None:  # pragma: no cover - interactive
    """Record from the microphone; Enter starts and stops, q quits."""

    from .clipboard import get_clipboard
    from .recorder import AudioRecorder
    from .transcriber import GroqTranscriber
    from .workflow import RecordingWorkflow

    cfg = _load_config()
    store = _store_for(cfg, offline)
    transcriber = store if isinstance(store, ApiClient) else GroqTranscriber(
        cfg.groq_api_key, model=cfg.transcription_model
    )

    def report(workflow: RecordingWorkflow) -> None:
        state = workflow.display_state
        message, colour = _STATE_MESSAGES[state]
        if state is RecordingState.ERROR and workflow.last_error:
            message = f"Error: {workflow.last_error}"
        typer.secho(message, fg=colour)
        if state is RecordingState.SUCCESS and workflow.last_result is not None:
            typer.echo(workflow.last_result.text)

    try:
        recorder = AudioRecorder()
        workflow = RecordingWorkflow(
            recorder,
            transcriber,
            store,
            get_clipboard(cfg.clipboard),
            display_seconds=cfg.display_seconds,
            on_change=report,
        )
    except VoiceClipError as exc:
        _fail(str(exc))

    bridge = HotkeyBridge()
    bridge.register(workflow.toggle)
    try:
        with connected(store):
            report(workflow)
            while True:
                line = input()
                if line.strip().lower() in {"q", "quit", "exit"}:
                    break
                bridge.fire()
    except (EOFError, KeyboardInterrupt):
        pass
    except VoiceClipError as exc:
        _fail(str(exc))
    finally:
        bridge.unregister()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Interface to bind (default: VOICECLIP_HOST or 0.0.0.0)."),
    port: Optional[int] = typer.Option(None, help="Port to listen on (default: PORT or 3000)."),
    log_level: str = typer.Option("info", help="uvicorn log level."),
) -> None:  # pragma: no cover - runs a server
    """Run the HTTP backend."""

    from .api import run

    try:
        run(host=host, port=port, log_level=log_level)
    except ConfigError as exc:
        _fail(str(exc))


@app.command()
def config(
    groq_api_key: Optional[str] = typer.Option(None, help="Groq API key for direct transcription."),
    transcription_model: Optional[str] = typer.Option(None, help="Whisper model id."),
    hotkey: Optional[str] = typer.Option(None, help="Global shortcut for the menu bar app, e.g. option+1."),
    server_url: Optional[str] = typer.Option(None, help="Base URL of the voiceclip API server."),
    api_key: Optional[str] = typer.Option(None, help="X-API-Key sent to the API server."),
    api_timeout: Optional[float] = typer.Option(None, help="HTTP client timeout (seconds) for API calls."),
    verify_ssl: Optional[bool] = typer.Option(
        None,
        "--verify-ssl/--no-verify-ssl",
        help="Toggle TLS certificate verification for API calls.",
    ),
    history_path: Optional[str] = typer.Option(None, help="Location of the local history database."),
    display_seconds: Optional[float] = typer.Option(None, help="How long success and error states stay visible."),
    clipboard: Optional[str] = typer.Option(None, help="Clipboard backend (pasteboard or pyperclip)."),
    show: bool = typer.Option(False, "--show", help="Display the active configuration."),
) -> None:
    """Update or inspect configuration settings."""

    updates: Dict[str, object] = {
        key: value
        for key, value in {
            "groq_api_key": groq_api_key,
            "transcription_model": transcription_model,
            "hotkey": hotkey,
            "server_url": server_url,
            "api_key": api_key,
            "api_timeout": api_timeout,
            "verify_ssl": verify_ssl,
            "history_path": history_path,
            "display_seconds": display_seconds,
            "clipboard": clipboard,
        }.items()
        if value is not None
    }

    if show or not updates:
        cfg = _load_config()
        typer.echo(json.dumps(asdict(cfg), indent=2, default=str))
        return

    if "hotkey" in updates:
        from .hotkey import normalize_hotkey

        try:
            updates["hotkey"] = normalize_hotkey(str(updates["hotkey"]))
        except ValueError as exc:
            _fail(str(exc))
    if clipboard is not None and clipboard not in {"pasteboard", "pyperclip"}:
        _fail(f"Unknown clipboard backend: {clipboard}")

    try:
        config_mod.update_config(**updates)
    except ConfigError as exc:
        _fail(str(exc))
    typer.secho("Configuration updated.", fg=typer.colors.BLUE)


@app.command()
def login(
    api_key: Optional[str] = typer.Option(
        None,
        "--api-key",
        help="API key for the voiceclip server.",
        prompt=True,
        hide_input=True,
    ),
) -> None:
    """Persist the API key sent as X-API-Key."""

    try:
        config_mod.update_config(api_key=api_key or None)
    except ConfigError as exc:
        _fail(str(exc))
    typer.secho("API key stored.", fg=typer.colors.BLUE)


@app.command()
def health() -> None:
    """Check connectivity to the configured API server."""

    cfg = _load_config()
    try:
        with ApiClient.from_config(cfg) as client:
            payload = client.health()
    except httpx.HTTPError as exc:
        _fail(describe_http_error(exc))
    except VoiceClipError as exc:
        _fail(str(exc))

    typer.echo(f"Status: {payload.get('status', 'unknown')}")


@app.command(name="daemon")
def daemon_command() -> None:  # pragma: no cover - interactive
    """Launch the macOS menu bar daemon."""

    try:
        from .menubar import run as run_menubar
    except ImportError as exc:
        typer.secho(
            "Missing dependencies for daemon mode. Install with `pip install "
            '"voiceclip[mac]"` or `pip install \'.[mac]\'` if you are using a local checkout.',
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1) from exc

    try:
        run_menubar()
    except (RuntimeError, VoiceClipError) as exc:
        _fail(str(exc))


if __name__ == "__main__":  # pragma: no cover
    app()
