import pytest
from fastapi.testclient import TestClient

from conftest import FIXED_NOW, FakeTranscriber, MemoryStore
from voiceclip.api import create_app
from voiceclip.config import ServerSettings
from voiceclip.exceptions import TranscriptionError
from voiceclip.history import build_record

AUTH = {"X-API-Key": "test-key"}
AUDIO = {"audio": ("audio.webm", b"\x1aE\xdf\xa3", "audio/webm")}


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def client(store, transcriber):
    app = create_app(store=store, transcriber=transcriber, settings=ServerSettings(api_key="test-key"))
    with TestClient(app) as test_client:
        yield test_client


def test_lifespan_connects_and_disconnects_store(store, transcriber):
    app = create_app(store=store, transcriber=transcriber, settings=ServerSettings(api_key="test-key"))
    with TestClient(app):
        assert store.connected
    assert not store.connected


def test_health_needs_no_key(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.parametrize("headers", [{}, {"X-API-Key": "wrong"}])
def test_missing_or_wrong_key_is_rejected(client, headers):
    response = client.get("/api/history/days", headers=headers)
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or missing API key"}


def test_unconfigured_server_secret_is_a_server_error(store, transcriber):
    app = create_app(store=store, transcriber=transcriber, settings=ServerSettings(api_key=None))
    with TestClient(app) as test_client:
        response = test_client.get("/api/history/days", headers=AUTH)
    assert response.status_code == 500
    assert response.json() == {"error": "API key not configured"}


def test_transcribe_without_audio(client):
    response = client.post("/api/transcribe", headers=AUTH, data={"note": "no file"})
    assert response.status_code == 400
    assert response.json() == {"error": "No audio file provided"}


def test_transcribe_saves_by_default(client, store, transcriber):
    response = client.post("/api/transcribe", headers=AUTH, files=AUDIO)

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": {"text": "Hello world", "durationSeconds": 2.5}}
    assert transcriber.blobs[0].mime_type == "audio/webm"
    assert transcriber.blobs[0].filename == "audio.webm"
    assert [r.text for r in store.records] == ["Hello world"]


@pytest.mark.parametrize("value", ["false", "0", "yes"])
def test_transcribe_save_only_for_literal_true(client, store, value):
    response = client.post("/api/transcribe", params={"save": value}, headers=AUTH, files=AUDIO)
    assert response.status_code == 200
    assert store.records == []


def test_transcribe_still_answers_when_save_fails(store, transcriber):
    store.fail_insert = True
    app = create_app(store=store, transcriber=transcriber, settings=ServerSettings(api_key="test-key"))
    with TestClient(app) as test_client:
        response = test_client.post("/api/transcribe", params={"save": "true"}, headers=AUTH, files=AUDIO)
    assert response.status_code == 200
    assert response.json()["data"]["text"] == "Hello world"


def test_transcription_failure_is_reported(client, transcriber):
    transcriber.error = TranscriptionError("Transcription request failed: upstream timeout")
    response = client.post("/api/transcribe", headers=AUTH, files=AUDIO)
    assert response.status_code == 500
    assert response.json() == {"error": "Transcription request failed: upstream timeout"}


def test_days_on_empty_store(client):
    response = client.get("/api/history/days", headers=AUTH)
    assert response.status_code == 200
    assert response.json() == {"success": True, "data": []}


def test_days_and_records_use_camel_case(client, store):
    store.insert(build_record("Hello world", 2.5, timestamp=FIXED_NOW))
    store.insert(build_record("Older", 1.0, timestamp=FIXED_NOW.replace(day=15)))

    days = client.get("/api/history/days", headers=AUTH).json()
    assert days["data"] == [{"date": "2025-12-16", "count": 1}, {"date": "2025-12-15", "count": 1}]

    records = client.get("/api/history/2025-12-16", headers=AUTH).json()["data"]
    assert len(records) == 1
    record = records[0]
    assert record["id"] == "1"
    assert record["text"] == "Hello world"
    assert record["durationSeconds"] == 2.5
    assert record["costUsd"] == pytest.approx(2.5 / 3600 * 0.04)
    assert record["date"] == "2025-12-16"
    assert record["timestamp"].startswith("2025-12-16T10:30:00")


def test_invalid_date_is_rejected_before_querying(client, store):
    response = client.get("/api/history/16-12-2025", headers=AUTH)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid date format. Use YYYY-MM-DD"}
    assert store.queried == []


def test_out_of_range_date_passes_format_check(client):
    response = client.get("/api/history/2025-13-01", headers=AUTH)
    assert response.status_code == 200
    assert response.json() == {"success": True, "data": []}


def test_add_history(client, store):
    response = client.post(
        "/api/history",
        headers=AUTH,
        json={"text": "Manual entry", "durationSeconds": 36, "timestamp": "2025-12-16T10:30:00Z"},
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "data": {"id": "1"}}
    [record] = store.records
    assert record.date == "2025-12-16"
    assert record.cost_usd == pytest.approx(0.0004)


@pytest.mark.parametrize("body", [{}, {"text": "no duration"}, {"durationSeconds": 3}, {"text": "", "durationSeconds": 3}])
def test_add_history_requires_fields(client, store, body):
    response = client.post("/api/history", headers=AUTH, json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Missing required fields: text, durationSeconds"}
    assert store.records == []


def test_add_history_rejects_malformed_body(client):
    response = client.post("/api/history", headers=AUTH, json={"text": "x", "durationSeconds": "long"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_date_with_trailing_newline_is_rejected(client, store):
    response = client.get("/api/history/2025-12-16%0A", headers=AUTH)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid date format. Use YYYY-MM-DD"}
    assert store.queried == []


@pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
def test_add_history_rejects_non_finite_duration(client, store, value):
    response = client.post(
        "/api/history",
        headers={**AUTH, "Content-Type": "application/json"},
        content=f'{{"text": "x", "durationSeconds": {value}}}',
    )
    assert response.status_code == 400
    assert "error" in response.json()
    assert store.records == []
