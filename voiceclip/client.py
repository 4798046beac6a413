"""HTTP client for the voiceclip backend.

``ApiClient`` satisfies both the transcription client and the history store
interfaces, so the recording workflow can run entirely against a remote
server.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import NotConnectedError, PersistenceError, TranscriptionError, VoiceClipError
from .history import as_utc
from .models import AudioBlob, Config, HistoryDay, TranscriptionData, TranscriptionRecord, TranscriptionResult
from .storage import NOT_CONNECTED


class ApiError(VoiceClipError):
    """Raised when the server answers with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def describe_http_error(exc: httpx.HTTPError) -> str:
    detail = str(exc)
    status_text = ""
    try:
        request = exc.request
    except RuntimeError:
        request = None
    if request is not None:
        status_text = f"{request.method} {request.url}"
    response = getattr(exc, "response", None)
    if response is not None:
        status_text = f"{response.status_code} {response.request.method} {response.request.url}"
        try:
            detail = response.json().get("error", detail)
        except ValueError:
            detail = response.text or detail
    return f"Request to API failed ({status_text}): {detail}" if status_text else detail


class ApiClient:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        verify: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._verify = verify
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_config(cls, config: Config) -> "ApiClient":
        if not config.server_url:
            raise VoiceClipError(
                "No API server configured. Run `voiceclip config --server-url https://host` first."
            )
        return cls(config.server_url, config.api_key, timeout=config.api_timeout, verify=config.verify_ssl)

    def connect(self) -> None:
        if self._client is not None:
            return
        headers: Dict[str, str] = {}
        if self._api_key:
            headers["X-API-Key"] = self._api_key
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=self._timeout,
            verify=self._verify,
            transport=self._transport,
        )

    def disconnect(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "ApiClient":
        self.connect()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.disconnect()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._client is None:
            raise NotConnectedError(NOT_CONNECTED)
        response = self._client.request(method, path, **kwargs)
        if response.is_error:
            try:
                message = response.json().get("error") or response.reason_phrase
            except ValueError:
                message = response.text or response.reason_phrase
            raise ApiError(f"{response.status_code}: {message}", status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ApiError(
                f"{response.status_code}: response is not valid JSON", status_code=response.status_code
            ) from exc
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/api/health")

    def transcribe(self, blob: AudioBlob, save: bool = False) -> TranscriptionResult:
        """Upload ``blob``. Saving is off by default because callers persist separately."""

        try:
            data = self._request(
                "POST",
                "/api/transcribe",
                params={"save": "true" if save else "false"},
                files={"audio": (blob.filename, blob.data, blob.mime_type)},
            )
        except (ApiError, httpx.HTTPError) as exc:
            raise TranscriptionError(str(exc)) from exc
        return TranscriptionResult(
            text=data.get("text") or "",
            duration_seconds=float(data.get("durationSeconds") or 0),
        )

    def insert(self, data: TranscriptionData) -> str:
        body = {
            "text": data.text,
            "durationSeconds": data.duration_seconds,
            "timestamp": as_utc(data.timestamp).isoformat(),
            "date": data.date,
        }
        try:
            created = self._request("POST", "/api/history", json=body)
        except (ApiError, httpx.HTTPError) as exc:
            raise PersistenceError(f"Failed to save transcription: {exc}") from exc
        return str(created["id"])

    def aggregate_by_date(self) -> List[HistoryDay]:
        try:
            rows = self._request("GET", "/api/history/days")
        except (ApiError, httpx.HTTPError) as exc:
            raise PersistenceError(f"Failed to get history days: {exc}") from exc
        return [HistoryDay(date=row["date"], count=int(row["count"])) for row in rows]

    def query_by_date(self, date: str) -> List[TranscriptionRecord]:
        try:
            rows = self._request("GET", f"/api/history/{date}")
        except (ApiError, httpx.HTTPError) as exc:
            raise PersistenceError(f"Failed to get transcriptions: {exc}") from exc
        return [_payload_to_record(row) for row in rows]


def _payload_to_record(row: Dict[str, Any]) -> TranscriptionRecord:
    return TranscriptionRecord(
        id=str(row["id"]),
        text=row.get("text", ""),
        duration_seconds=float(row.get("durationSeconds") or 0),
        cost_usd=float(row.get("costUsd") or 0),
        timestamp=as_utc(datetime.fromisoformat(row["timestamp"].replace("Z", "+00:00"))),
        date=row["date"],
    )
